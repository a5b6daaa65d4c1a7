"""
Database entity for usage records.
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class UsageRecordEntity(Base):
    """
    Per-user, per-billing-period usage counters.

    At most one row per (user_id, billing_period_start); the constraint is
    the conflict target of the increment upsert. Rows are kept for history.
    """

    __tablename__ = "usage_records"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    billing_period_start = Column(Date, nullable=False)
    billing_period_end = Column(Date, nullable=False)

    stories_generated = Column(Integer, nullable=False, default=0, server_default="0")
    premium_voices_used = Column(
        Integer, nullable=False, default=0, server_default="0"
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "billing_period_start", name="uq_usage_user_period"
        ),
    )
