"""
ReconciliationCursor model.

Remembers the last user id a named reconciliation run finished, so an
interrupted run resumes instead of starting over.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_engine.models.base import Base


class ReconciliationCursor(Base):
    """Resumable position of a reconciliation run."""

    __tablename__ = "reconciliation_cursors"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    last_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
