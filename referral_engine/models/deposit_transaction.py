"""
DepositTransaction model.

Confirmed deposits of a user as delivered by the upstream deposit detector.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.enums import CommissionSourceKind, DepositTransactionStatus
from referral_engine.models.types import MoneyType


class DepositTransaction(Base):
    """Deposit transaction - one confirmed deposit event per row."""

    __tablename__ = "deposit_transactions"
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_deposit_transaction_amount_positive'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    source_kind: Mapped[CommissionSourceKind] = mapped_column(
        SAEnum(
            CommissionSourceKind,
            name="deposit_source_kind",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    # Upstream delivery is at-least-once; the event id makes the insert idempotent
    source_event_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )

    status: Mapped[DepositTransactionStatus] = mapped_column(
        SAEnum(
            DepositTransactionStatus,
            name="deposit_transaction_status",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=DepositTransactionStatus.CONFIRMED,
        nullable=False,
        index=True,
    )

    confirmed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DepositTransaction(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, event={self.source_event_id})>"
        )
