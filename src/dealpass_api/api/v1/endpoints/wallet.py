"""Wallet endpoints: saved deals that occupy redemption capacity."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from dealpass_api.api.dependencies.session import get_redemption_store, require_member_session
from dealpass_api.api.errors import redemption_http_error, unexpected_http_error
from dealpass_api.models.user import User
from dealpass_api.models.wallet import WalletItem, WalletItemStatus
from dealpass_api.services.redemptions.errors import RedemptionError
from dealpass_api.services.redemptions.store import SqlAlchemyRedemptionStore
from dealpass_api.services.redemptions.wallet import WalletService


router = APIRouter(prefix="/wallet", tags=["wallet"])


class WalletClaimRequest(BaseModel):
    dealId: UUID = Field(..., description="Deal to save to the wallet")


class WalletItemResponse(BaseModel):
    id: UUID
    dealId: UUID
    status: str
    claimedAt: datetime
    redeemedAt: Optional[datetime]
    removedAt: Optional[datetime]

    @classmethod
    def from_item(cls, item: WalletItem) -> "WalletItemResponse":
        return cls(
            id=item.id,
            dealId=item.deal_id,
            status=WalletItemStatus(item.status).value,
            claimedAt=item.claimed_at,
            redeemedAt=item.redeemed_at,
            removedAt=item.removed_at,
        )


@router.get("", response_model=List[WalletItemResponse], summary="List wallet items")
async def list_wallet(
    statuses: Optional[List[str]] = Query(None, alias="status"),
    member: User = Depends(require_member_session),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> List[WalletItemResponse]:
    resolved: list[WalletItemStatus] | None = None
    if statuses:
        resolved = []
        for value in statuses:
            try:
                resolved.append(WalletItemStatus(value))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=f"Unsupported wallet status: {value}") from exc

    items = await WalletService(store).list_wallet(member.id, statuses=resolved)
    return [WalletItemResponse.from_item(item) for item in items]


@router.post(
    "",
    response_model=WalletItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a deal to the wallet",
)
async def claim_deal(
    payload: WalletClaimRequest,
    member: User = Depends(require_member_session),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> WalletItemResponse:
    try:
        item = await WalletService(store).claim_deal(member.id, payload.dealId)
    except RedemptionError as exc:
        raise redemption_http_error(exc, user_id=member.id, deal_id=payload.dealId, step="claim") from exc
    except SQLAlchemyError as exc:
        raise unexpected_http_error(exc, user_id=member.id, deal_id=payload.dealId, step="claim") from exc
    return WalletItemResponse.from_item(item)


@router.delete(
    "/{deal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Remove a deal from the wallet",
)
async def release_deal(
    deal_id: UUID,
    member: User = Depends(require_member_session),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> Response:
    try:
        await WalletService(store).release_deal(member.id, deal_id)
    except RedemptionError as exc:
        raise redemption_http_error(exc, user_id=member.id, deal_id=deal_id, step="release") from exc
    except SQLAlchemyError as exc:
        raise unexpected_http_error(exc, user_id=member.id, deal_id=deal_id, step="release") from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
