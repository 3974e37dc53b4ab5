"""SQLAlchemy models for Bet Analizer.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from app.models.bankroll import BankrollEntry, BankrollSettings
from app.models.entitlement import Entitlement
from app.models.subscription_event import SubscriptionEvent
from app.models.user import User

__all__ = [
    "BankrollEntry",
    "BankrollSettings",
    "Entitlement",
    "SubscriptionEvent",
    "User",
]
