"""Redeem deals and read redemption history."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from dealpass_api.api.dependencies.session import get_redemption_store, require_member_session
from dealpass_api.api.errors import redemption_http_error, unexpected_http_error
from dealpass_api.core.settings import settings
from dealpass_api.models.user import User
from dealpass_api.models.wallet import RedemptionRecord
from dealpass_api.services.redemptions.engine import RedemptionEngine
from dealpass_api.services.redemptions.errors import RedemptionError
from dealpass_api.services.redemptions.store import SqlAlchemyRedemptionStore
from dealpass_api.services.redemptions.wallet import WalletService


router = APIRouter(prefix="/redemptions", tags=["redemptions"])


class RedemptionRequest(BaseModel):
    dealId: UUID = Field(..., description="Deal being redeemed")
    redemptionStyle: Literal["online", "in_store"] | None = Field(
        None, description="How the member redeemed the deal"
    )


class RedemptionResponse(BaseModel):
    id: UUID
    dealId: UUID
    walletItemId: UUID | None
    redemptionStyle: str | None
    redeemedAt: datetime

    @classmethod
    def from_record(cls, record: RedemptionRecord) -> "RedemptionResponse":
        return cls(
            id=record.id,
            dealId=record.deal_id,
            walletItemId=record.wallet_item_id,
            redemptionStyle=record.redemption_style,
            redeemedAt=record.redeemed_at,
        )


@router.post(
    "",
    response_model=RedemptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Redeem a deal",
)
async def redeem_deal(
    payload: RedemptionRequest,
    member: User = Depends(require_member_session),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> RedemptionResponse:
    engine = RedemptionEngine(store)
    try:
        record = await engine.redeem_deal(member.id, payload.dealId, redemption_style=payload.redemptionStyle)
    except RedemptionError as exc:
        raise redemption_http_error(exc, user_id=member.id, deal_id=payload.dealId, step="redeem") from exc
    except SQLAlchemyError as exc:
        raise unexpected_http_error(exc, user_id=member.id, deal_id=payload.dealId, step="redeem") from exc
    return RedemptionResponse.from_record(record)


@router.get("", response_model=List[RedemptionResponse], summary="Member redemption history")
async def list_redemptions(
    limit: int = Query(settings.redemption_history_page_size, ge=1, le=500),
    member: User = Depends(require_member_session),
    store: SqlAlchemyRedemptionStore = Depends(get_redemption_store),
) -> List[RedemptionResponse]:
    records = await WalletService(store).list_redemption_history(member.id, limit=limit)
    return [RedemptionResponse.from_record(record) for record in records]
