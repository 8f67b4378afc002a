"""Wallet holdings and the append-only redemption log."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Index, String, func, text
from sqlalchemy.dialects.postgresql import UUID

from dealpass_api.db.base import Base


class WalletItemStatus(str, Enum):
    """Lifecycle of a claimed deal. ``redeemed`` is terminal."""

    ACTIVE = "active"
    REDEEMED = "redeemed"
    REMOVED = "removed"


class RedemptionStyle(str, Enum):
    ONLINE = "online"
    IN_STORE = "in_store"


class WalletItem(Base):
    """A user's claim on a deal."""

    __tablename__ = "wallet_items"
    __table_args__ = (
        Index(
            "uq_wallet_items_active_claim",
            "user_id",
            "deal_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_wallet_items_user_status", "user_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    deal_id = Column(UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        SqlEnum(
            WalletItemStatus,
            name="wallet_item_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=WalletItemStatus.ACTIVE,
        server_default=WalletItemStatus.ACTIVE.value,
    )
    claimed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    removed_at = Column(DateTime(timezone=True), nullable=True)


class RedemptionRecord(Base):
    """Immutable audit entry written when a deal is redeemed."""

    __tablename__ = "redemption_records"
    __table_args__ = (
        Index("ix_redemption_records_deal", "deal_id"),
        Index("ix_redemption_records_user_deal", "user_id", "deal_id"),
        Index("uq_redemption_records_wallet_item", "wallet_item_id", unique=True),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    deal_id = Column(UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    # Null for direct (unowned) redemptions
    wallet_item_id = Column(UUID(as_uuid=True), ForeignKey("wallet_items.id", ondelete="SET NULL"), nullable=True)
    redemption_style = Column(String(16), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
