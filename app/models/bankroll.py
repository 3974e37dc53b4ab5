"""Bankroll models: per-user settings and the wager entry ledger."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class BankrollSettings(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Bankroll size and staking policy. Created on first save, updated in place."""

    __tablename__ = "bankroll_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    current_bankroll: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    monthly_exposure_limit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    base_stake_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1"))
    smart_risk_adjustment: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false(), default=False)

    user: Mapped["User"] = relationship(back_populates="bankroll_settings", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return f"<BankrollSettings(user_id={self.user_id}, bankroll={self.current_bankroll})>"


class BankrollEntry(UUIDPrimaryKeyMixin, Base):
    """A single wager. ``profit_loss`` stays 0 until the entry is settled."""

    __tablename__ = "bankroll_entries"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    stake: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    odd_total: Mapped[Decimal | None] = mapped_column(Numeric(8, 3), nullable=True)
    bet_type: Mapped[str] = mapped_column(String(20), nullable=False, default="single")  # single, multiple
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")  # open, won, lost
    risk_level: Mapped[str | None] = mapped_column(String(20), nullable=True)  # low, medium, high
    profit_loss: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    linked_analysis_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_bankroll_entries_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<BankrollEntry(id={self.id}, stake={self.stake}, status={self.status})>"
