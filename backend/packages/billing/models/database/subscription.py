"""
Database entity for subscriptions.
"""

from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class SubscriptionEntity(Base):
    """
    User subscription database entity.

    Stores subscription tier, status, Stripe IDs and period boundaries.
    One-to-one relationship with users table. Rows are never deleted,
    only transitioned back to free/canceled.
    """

    __tablename__ = "subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Subscription details
    tier = Column(
        String(50), nullable=False, index=True
    )  # free, dream_weaver, magic_circle, enchanted_library
    status = Column(
        String(50), nullable=False, index=True
    )  # incomplete, trialing, active, past_due, canceled
    billing_period = Column(String(20), nullable=True)  # monthly, annual
    scheduled_tier = Column(String(50), nullable=True)  # deferred downgrade target

    # External platform IDs
    stripe_customer_id = Column(String(255), nullable=True, unique=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, unique=True, index=True)

    # Billing cycle
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    # Standard timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_subscription_status_tier", "status", "tier"),)
