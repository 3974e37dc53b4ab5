"""Pydantic v2 request/response schemas for bankroll endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BankrollSettingsUpdate(BaseModel):
    """Schema for saving bankroll settings. Omitted fields keep their stored value."""

    current_bankroll: Decimal | None = Field(None, ge=0)
    monthly_exposure_limit: Decimal | None = Field(None, ge=0)
    base_stake_percent: Decimal | None = Field(None, ge=Decimal("0.1"), le=10)
    smart_risk_adjustment: bool | None = None


class BankrollEntryCreate(BaseModel):
    """Schema for recording a new wager."""

    stake: Decimal = Field(..., gt=0)
    odd_total: Decimal | None = Field(None, gt=1)
    bet_type: str = Field("single", pattern="^(single|multiple)$")
    risk_level: str | None = Field(None, pattern="^(low|medium|high)$")
    linked_analysis_id: str | None = Field(None, max_length=64)


class BankrollEntrySettle(BaseModel):
    """Schema for settling an open wager."""

    status: str = Field(..., pattern="^(won|lost)$")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BankrollSettingsResponse(BaseModel):
    current_bankroll: Decimal
    monthly_exposure_limit: Decimal | None = None
    base_stake_percent: Decimal
    smart_risk_adjustment: bool
    stake_base: Decimal

    model_config = ConfigDict(from_attributes=True)


class BankrollEntryResponse(BaseModel):
    id: uuid.UUID
    stake: Decimal
    odd_total: Decimal | None = None
    bet_type: str
    status: str
    risk_level: str | None = None
    profit_loss: Decimal
    linked_analysis_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankrollEntryListResponse(BaseModel):
    """Paginated list of entries, newest first."""

    items: list[BankrollEntryResponse]
    total: int


class ExposureWindowResponse(BaseModel):
    exposure: Decimal
    limit: Decimal
    status: str

    model_config = ConfigDict(from_attributes=True)


class MonthlyStatsResponse(BaseModel):
    total_staked: Decimal
    total_entries: int
    wins: int
    losses: int
    net_result: Decimal

    model_config = ConfigDict(from_attributes=True)


class AlertResponse(BaseModel):
    type: str
    message: str
    severity: str

    model_config = ConfigDict(from_attributes=True)


class BankrollSummaryResponse(BaseModel):
    """Every derived bankroll figure for the current user at request time."""

    plan: str
    stake_base: Decimal
    daily: ExposureWindowResponse
    weekly: ExposureWindowResponse
    monthly: ExposureWindowResponse
    monthly_stats: MonthlyStatsResponse
    entries_today: int
    daily_entry_quota: int
    can_add_entry: bool
    alerts: list[AlertResponse]

    model_config = ConfigDict(from_attributes=True)


class StakeResponse(BaseModel):
    risk_level: str | None = None
    stake_base: Decimal
    recommended_stake: Decimal
    smart_risk_adjustment: bool
