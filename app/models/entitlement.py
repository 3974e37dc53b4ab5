"""Entitlement model: the user's current plan, status and Stripe linkage."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.billing.plans import Plan, SubscriptionStatus
from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Entitlement(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Single source of truth for plan access, written by the Stripe reconciler."""

    __tablename__ = "entitlements"

    # One entitlement per user (UNIQUE enforces one-to-one)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, index=True, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Plan & status (canonical Plan / SubscriptionStatus values)
    plan: Mapped[str] = mapped_column(String(20), nullable=False, server_default=Plan.FREE.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default=SubscriptionStatus.ACTIVE.value)

    # None = no enforced expiry (free tier)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="entitlement", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    @property
    def plan_enum(self) -> Plan:
        try:
            return Plan.parse(self.plan)
        except ValueError:
            return Plan.FREE

    @property
    def status_enum(self) -> SubscriptionStatus:
        try:
            return SubscriptionStatus(self.status)
        except ValueError:
            return SubscriptionStatus.EXPIRED

    def __repr__(self) -> str:
        return f"<Entitlement(id={self.id}, user_id={self.user_id}, plan={self.plan}, status={self.status})>"
