"""Bankroll API router: settings, wager entries and derived exposure figures.

Every query filters on ``user_id``; a user never sees another user's rows.
Derived figures are recomputed from the stored rows on each request.
"""

from __future__ import annotations

import csv
import io
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    check_entry_limit,
    get_current_active_user,
    get_db,
    get_effective_plan,
    require_feature,
)
from app.bankroll.engine import (
    BankrollSummary,
    EntryStatus,
    ExposureWindow,
    adjusted_stake,
    settle_profit_loss,
    smart_risk_active,
    stake_base,
    summarize,
)
from app.billing.dependencies import feature_required_error
from app.billing.features import Feature, can_access
from app.billing.plans import Plan
from app.database import utcnow
from app.errors import NotFoundError
from app.models.bankroll import BankrollEntry, BankrollSettings
from app.models.user import User
from app.schemas.bankroll import (
    AlertResponse,
    BankrollEntryCreate,
    BankrollEntryListResponse,
    BankrollEntryResponse,
    BankrollEntrySettle,
    BankrollSettingsResponse,
    BankrollSettingsUpdate,
    BankrollSummaryResponse,
    ExposureWindowResponse,
    MonthlyStatsResponse,
    StakeResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/bankroll", tags=["bankroll"])

CSV_COLUMNS = (
    "created_at",
    "stake",
    "odd_total",
    "bet_type",
    "status",
    "risk_level",
    "profit_loss",
    "linked_analysis_id",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_settings(db: AsyncSession, user: User) -> BankrollSettings | None:
    result = await db.execute(select(BankrollSettings).where(BankrollSettings.user_id == user.id))
    return result.scalar_one_or_none()


async def _get_entries(db: AsyncSession, user: User) -> list[BankrollEntry]:
    """All of the user's entries, newest first."""
    result = await db.execute(
        select(BankrollEntry)
        .where(BankrollEntry.user_id == user.id)
        .order_by(BankrollEntry.created_at.desc())
    )
    return list(result.scalars().all())


def _settings_response(settings: BankrollSettings) -> BankrollSettingsResponse:
    return BankrollSettingsResponse(
        current_bankroll=settings.current_bankroll,
        monthly_exposure_limit=settings.monthly_exposure_limit,
        base_stake_percent=settings.base_stake_percent,
        smart_risk_adjustment=settings.smart_risk_adjustment,
        stake_base=stake_base(settings),
    )


def _window_response(window: ExposureWindow) -> ExposureWindowResponse:
    return ExposureWindowResponse(
        exposure=window.exposure,
        limit=window.limit,
        status=window.status.value,
    )


def _summary_response(summary: BankrollSummary) -> BankrollSummaryResponse:
    stats = summary.monthly_stats
    return BankrollSummaryResponse(
        plan=summary.plan.value,
        stake_base=summary.stake_base,
        daily=_window_response(summary.daily),
        weekly=_window_response(summary.weekly),
        monthly=_window_response(summary.monthly),
        monthly_stats=MonthlyStatsResponse(
            total_staked=stats.total_staked,
            total_entries=stats.total_entries,
            wins=stats.wins,
            losses=stats.losses,
            net_result=stats.net_result,
        ),
        entries_today=summary.entries_today,
        daily_entry_quota=summary.daily_entry_quota,
        can_add_entry=summary.can_add_entry,
        alerts=[
            AlertResponse(type=a.type, message=a.message, severity=a.severity.value)
            for a in summary.alerts
        ],
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/settings", response_model=BankrollSettingsResponse)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BankrollSettingsResponse:
    """Return the user's bankroll settings. 404 until they are first saved."""
    settings = await _get_settings(db, current_user)
    if settings is None:
        raise NotFoundError("Bankroll settings not found")
    return _settings_response(settings)


@router.put("/settings", response_model=BankrollSettingsResponse)
async def save_settings(
    body: BankrollSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    plan: Plan = Depends(get_effective_plan),
) -> BankrollSettingsResponse:
    """Create the settings on first save, update them in place afterwards."""
    update_data = body.model_dump(exclude_unset=True)

    if update_data.get("smart_risk_adjustment") and not can_access(Feature.SMART_RISK, plan):
        raise feature_required_error(Feature.SMART_RISK, plan)

    settings = await _get_settings(db, current_user)
    if settings is None:
        settings = BankrollSettings(user_id=current_user.id)
        db.add(settings)
        logger.info("Creating bankroll settings for user %s", current_user.id)

    for field, value in update_data.items():
        # Explicit null only makes sense for the optional monthly limit
        if value is None and field != "monthly_exposure_limit":
            continue
        setattr(settings, field, value)

    await db.flush()
    await db.refresh(settings)
    return _settings_response(settings)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@router.get("/entries", response_model=BankrollEntryListResponse)
async def list_entries(
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(50, ge=1, le=200, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    """Return a paginated list of the user's entries, newest first."""
    total_result = await db.execute(
        select(func.count()).select_from(BankrollEntry).where(BankrollEntry.user_id == current_user.id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(BankrollEntry)
        .where(BankrollEntry.user_id == current_user.id)
        .order_by(BankrollEntry.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return {"items": list(result.scalars().all()), "total": total}


@router.post(
    "/entries",
    response_model=BankrollEntryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_entry_limit)],
)
async def create_entry(
    body: BankrollEntryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BankrollEntry:
    """Record a new open wager. Subject to the plan's daily entry quota."""
    entry = BankrollEntry(user_id=current_user.id, **body.model_dump())
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    return entry


@router.get("/entries/export", dependencies=[Depends(require_feature(Feature.CSV_EXPORT))])
async def export_entries(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    """Download every entry as CSV."""
    entries = await _get_entries(db, current_user)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        writer.writerow(["" if getattr(entry, col) is None else getattr(entry, col) for col in CSV_COLUMNS])

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="bankroll.csv"'},
    )


@router.patch("/entries/{entry_id}", response_model=BankrollEntryResponse)
async def settle_entry(
    entry_id: uuid.UUID,
    body: BankrollEntrySettle,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BankrollEntry:
    """Settle an open entry as won or lost and book its profit or loss."""
    result = await db.execute(
        select(BankrollEntry).where(
            BankrollEntry.id == entry_id,
            BankrollEntry.user_id == current_user.id,
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Entry not found")
    if entry.status != EntryStatus.OPEN:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Entry already settled",
        )

    entry.status = body.status
    entry.profit_loss = settle_profit_loss(entry.stake, entry.odd_total, body.status)
    await db.flush()
    await db.refresh(entry)
    return entry


# ---------------------------------------------------------------------------
# Derived figures
# ---------------------------------------------------------------------------


@router.get("/summary", response_model=BankrollSummaryResponse)
async def get_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    plan: Plan = Depends(get_effective_plan),
) -> BankrollSummaryResponse:
    """Exposure per window, monthly stats, entry quota and alerts."""
    settings = await _get_settings(db, current_user)
    entries = await _get_entries(db, current_user)
    return _summary_response(summarize(settings, entries, plan, utcnow()))


@router.get("/stake", response_model=StakeResponse)
async def get_recommended_stake(
    risk_level: str | None = Query(None, pattern="^(low|medium|high)$"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    plan: Plan = Depends(get_effective_plan),
) -> StakeResponse:
    """Recommended stake for a ticket of the given risk level.

    A smart-risk toggle saved on a higher plan is ignored after a downgrade.
    """
    settings = await _get_settings(db, current_user)
    return StakeResponse(
        risk_level=risk_level,
        stake_base=stake_base(settings),
        recommended_stake=adjusted_stake(settings, plan, risk_level),
        smart_risk_adjustment=smart_risk_active(settings, plan),
    )
