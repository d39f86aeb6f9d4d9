"""Pydantic models for incoming deposit events."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from referral_engine.models.enums import CommissionSourceKind
from referral_engine.utils.datetime_utils import ensure_utc


class DepositConfirmedEvent(BaseModel):
    """Deposit confirmed by the upstream deposit detector.

    The sole trigger of commission distribution. Delivery is at-least-once,
    so the same event may arrive more than once.
    """

    model_config = ConfigDict(frozen=True)

    depositor_id: int = Field(..., ge=1, description="User who deposited")
    amount: Decimal = Field(..., gt=0, description="Confirmed deposit amount")
    source_kind: CommissionSourceKind = Field(
        default=CommissionSourceKind.GAS_FEE_TOPUP,
        description="Kind of event that produced the deposit",
    )
    source_event_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=255,
        description="Upstream event id; missing on legacy events",
    )
    confirmed_at: datetime = Field(..., description="When the deposit was confirmed")

    @field_validator("confirmed_at")
    @classmethod
    def normalize_confirmed_at(cls, v: datetime) -> datetime:
        """Store confirmation time in UTC."""
        return ensure_utc(v)
