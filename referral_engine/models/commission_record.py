"""
CommissionRecord model.

Immutable ledger entry: one commission paid to one upline referrer for one
deposit event at one referral level.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, validates

from referral_engine.config.constants import REFERRAL_LEVELS
from referral_engine.models.base import Base
from referral_engine.models.enums import CommissionSourceKind, CommissionStatus
from referral_engine.models.types import MoneyType, RatePercentType


def _enum_values(enum: type) -> list[str]:
    return [member.value for member in enum]


class CommissionRecord(Base):
    """
    CommissionRecord entity.

    Attributes:
        id: Primary key
        referrer_id: Upline user receiving the commission
        depositor_id: User whose deposit triggered the distribution
        level: Depth of the referrer in the depositor's chain (1-3)
        deposit_amount: Deposit the commission was computed from
        rate: Percentage applied, read from the tier-rate snapshot
        commission_amount: Amount rounded to the settlement unit
        source_kind: Kind of event that produced the commission
        source_event_id: Id of the triggering deposit event
        event_confirmed_at: When the triggering deposit was confirmed
        status: pending or paid
        paid_at: When the record became paid
        credited_at: When the amount was added to the referrer's total_earnings
        notes: Free-form operator notes
        created_at: When the record was written
    """

    __tablename__ = "commission_records"
    __table_args__ = (
        UniqueConstraint(
            "referrer_id",
            "depositor_id",
            "level",
            "source_event_id",
            name="uq_commission_records_dedup_key",
        ),
        Index("idx_commission_records_referrer_status", "referrer_id", "status"),
        Index("idx_commission_records_depositor", "depositor_id", "created_at"),
        Index("idx_commission_records_source_event", "source_event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Weak references into users; the reconciler reports unresolvable ids
    referrer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    depositor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    deposit_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    source_kind: Mapped[CommissionSourceKind] = mapped_column(
        SAEnum(
            CommissionSourceKind,
            name="commission_source_kind",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        index=True,
    )
    source_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[CommissionStatus] = mapped_column(
        SAEnum(
            CommissionStatus,
            name="commission_status",
            native_enum=False,
            values_callable=_enum_values,
        ),
        default=CommissionStatus.PENDING,
        nullable=False,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    credited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    @validates("level")
    def validate_level(self, key: str, value: int) -> int:
        """Only levels 1-3 may be written."""
        if value not in REFERRAL_LEVELS:
            raise ValueError(f"Commission level must be one of {REFERRAL_LEVELS}, got {value}")
        return value

    @validates("commission_amount")
    def validate_commission_amount(self, key: str, value: Decimal) -> Decimal:
        """Commission amounts are never negative."""
        if value < 0:
            raise ValueError("Commission amount cannot be negative")
        return value

    @property
    def dedup_key(self) -> tuple[int, int, int, str]:
        """Natural key guarding against double distribution."""
        return (self.referrer_id, self.depositor_id, self.level, self.source_event_id)

    @property
    def is_paid(self) -> bool:
        """Check if record counts towards the referrer's earnings."""
        return self.status == CommissionStatus.PAID

    def to_dict(self) -> dict:
        """Serialize for audit payloads and exports."""
        return {
            "id": self.id,
            "referrer_id": self.referrer_id,
            "depositor_id": self.depositor_id,
            "level": self.level,
            "deposit_amount": str(self.deposit_amount),
            "rate": str(self.rate),
            "commission_amount": str(self.commission_amount),
            "source_kind": self.source_kind.value,
            "source_event_id": self.source_event_id,
            "event_confirmed_at": (
                self.event_confirmed_at.isoformat() if self.event_confirmed_at else None
            ),
            "status": self.status.value,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "credited_at": self.credited_at.isoformat() if self.credited_at else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionRecord(id={self.id}, referrer_id={self.referrer_id}, "
            f"depositor_id={self.depositor_id}, level={self.level}, "
            f"amount={self.commission_amount}, status={self.status.value})>"
        )
