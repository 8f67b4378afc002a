"""Translate redemption service failures into HTTP responses."""

from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from fastapi import HTTPException, status
from loguru import logger

from dealpass_api.services.redemptions.errors import (
    AlreadyRedeemedError,
    DealAlreadyClaimedError,
    DealExpiredError,
    DealNotFoundError,
    DealSoldOutError,
    LimitExceededError,
    PlanNotFoundError,
    RedemptionConflictError,
    RedemptionError,
    TierRequiredError,
    UserNotFoundError,
    UserRedemptionCapError,
    WalletItemNotFoundError,
)

GENERIC_FAILURE_MESSAGE = "Something went wrong, please try again"

_STATUS_BY_ERROR: Dict[type[RedemptionError], int] = {
    AlreadyRedeemedError: status.HTTP_409_CONFLICT,
    DealAlreadyClaimedError: status.HTTP_409_CONFLICT,
    DealSoldOutError: status.HTTP_409_CONFLICT,
    UserRedemptionCapError: status.HTTP_409_CONFLICT,
    RedemptionConflictError: status.HTTP_409_CONFLICT,
    LimitExceededError: status.HTTP_403_FORBIDDEN,
    TierRequiredError: status.HTTP_403_FORBIDDEN,
    DealExpiredError: status.HTTP_410_GONE,
    DealNotFoundError: status.HTTP_404_NOT_FOUND,
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    WalletItemNotFoundError: status.HTTP_404_NOT_FOUND,
}

_MESSAGE_BY_ERROR: Dict[type[RedemptionError], str] = {
    AlreadyRedeemedError: "You have already redeemed this deal",
    DealAlreadyClaimedError: "This deal is already in your wallet",
    DealSoldOutError: "This deal is sold out",
    UserRedemptionCapError: "You have reached the redemption limit for this deal",
    RedemptionConflictError: "This deal changed while we were redeeming it, please try again",
    LimitExceededError: "You have used all of your redemptions for this month",
    TierRequiredError: "Upgrade your membership to redeem this deal",
    DealExpiredError: "This deal has expired",
    DealNotFoundError: "Deal not found",
    UserNotFoundError: "Account not found",
    WalletItemNotFoundError: "This deal is not in your wallet",
}


def redemption_http_error(
    exc: RedemptionError,
    *,
    user_id: UUID,
    deal_id: UUID | None = None,
    step: str,
) -> HTTPException:
    """Build the HTTP error for a service failure.

    Configuration faults (a tier without an active plan) are never described
    to the member; they surface as a generic retryable failure.
    """

    if isinstance(exc, PlanNotFoundError) or not exc.user_facing:
        logger.error(
            "Redemption request failed on configuration",
            user_id=str(user_id),
            deal_id=str(deal_id) if deal_id else None,
            step=step,
            code=exc.code,
            error=str(exc),
        )
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": exc.code, "message": GENERIC_FAILURE_MESSAGE},
        )

    detail: Dict[str, Any] = {
        "code": exc.code,
        "message": _MESSAGE_BY_ERROR.get(type(exc), str(exc)),
    }
    if isinstance(exc, AlreadyRedeemedError):
        detail["softSuccess"] = True
    if isinstance(exc, LimitExceededError):
        detail["remaining"] = 0
        detail["limit"] = None if exc.limit == float("inf") else int(exc.limit)
    if isinstance(exc, TierRequiredError):
        detail["requiredTier"] = exc.required_tier
    return HTTPException(
        status_code=_STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )


def unexpected_http_error(
    exc: Exception,
    *,
    user_id: UUID,
    deal_id: UUID | None = None,
    step: str,
) -> HTTPException:
    logger.exception(
        "Redemption request failed unexpectedly",
        user_id=str(user_id),
        deal_id=str(deal_id) if deal_id else None,
        step=step,
        error=str(exc),
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "internal_error", "message": GENERIC_FAILURE_MESSAGE},
    )
