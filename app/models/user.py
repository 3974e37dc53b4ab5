"""User model: authentication and profile."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Bettor account."""

    __tablename__ = "users"

    # Unique index doubles as the customer-email lookup used by the webhook fallback
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="user", nullable=False)

    # Relationships
    entitlement: Mapped["Entitlement | None"] = relationship(  # noqa: F821
        "Entitlement", back_populates="user", uselist=False, lazy="selectin"
    )
    bankroll_settings: Mapped["BankrollSettings | None"] = relationship(  # noqa: F821
        "BankrollSettings", back_populates="user", uselist=False, lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"
