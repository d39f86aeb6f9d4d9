"""
CommissionAuditEntry model.

Append-only audit trail for administrative changes to the ledger and to
user earnings.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base
from referral_engine.models.enums import AuditAction
from referral_engine.models.types import JSONType


class CommissionAuditEntry(Base):
    """Audit log entry for a ledger or earnings change."""

    __tablename__ = "commission_audit_log"
    __table_args__ = (
        Index("idx_commission_audit_user", "user_id", "created_at"),
        Index("idx_commission_audit_record", "record_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="commission_audit_action",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    record_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    operator: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionAuditEntry(id={self.id}, action={self.action.value}, "
            f"record_id={self.record_id}, user_id={self.user_id})>"
        )
