"""Plan gating dependencies: enforce usage limits based on the effective plan."""

import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_active_user
from app.bankroll.engine import start_of_day
from app.billing.features import Feature, can_access, required_plan
from app.billing.plans import Plan, get_plan
from app.database import get_db, utcnow
from app.models.bankroll import BankrollEntry
from app.models.user import User
from app.services.subscription_service import effective_plan, get_or_create_entitlement

logger = logging.getLogger(__name__)


async def get_effective_plan(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> Plan:
    """Resolve the plan the user is entitled to right now."""
    entitlement = await get_or_create_entitlement(db, user)
    return effective_plan(entitlement)


async def count_entries_today(db: AsyncSession, user: User) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(BankrollEntry)
        .where(
            BankrollEntry.user_id == user.id,
            BankrollEntry.created_at >= start_of_day(utcnow()),
        )
    )
    return result.scalar_one()


async def check_entry_limit(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
    plan: Plan = Depends(get_effective_plan),
) -> None:
    """Raise 402 if the user has reached their plan's daily bankroll entry quota."""
    limits = get_plan(plan)
    current_count = await count_entries_today(db, user)

    if current_count >= limits.bankroll_entries_per_day:
        logger.info("User %s hit daily entry quota (%d) on plan %s", user.id, current_count, plan.value)
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": f"Daily entry limit reached ({current_count}/{limits.bankroll_entries_per_day}). Upgrade your plan for more entries.",
                "limit": limits.bankroll_entries_per_day,
                "current": current_count,
                "plan": limits.name,
                "upgrade_url": "/api/v1/billing/checkout",
            },
        )


def feature_required_error(feature: Feature, plan: Plan) -> HTTPException:
    needed = get_plan(required_plan(feature))
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "message": f"{feature.value} requires the {needed.display_name} plan or higher.",
            "feature": feature.value,
            "plan": plan.value,
            "required_plan": needed.name,
            "upgrade_url": "/api/v1/billing/checkout",
        },
    )


def require_feature(feature: Feature):
    """Build a dependency that raises 402 unless the effective plan unlocks ``feature``."""

    async def _check(plan: Plan = Depends(get_effective_plan)) -> Plan:
        if not can_access(feature, plan):
            raise feature_required_error(feature, plan)
        return plan

    return _check
