"""Subscription model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from paygate.models.base import Base


class Subscription(Base):
    """A user's entitlement to one plan; at most one row per (user, plan)"""
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "plan", name="uq_subscriptions_user_plan"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan = Column(String(50), nullable=False)  # 'premium', 'pro'
    status = Column(String(50), nullable=False)  # 'active', 'canceled'
    provider = Column(String(50), default="paystack", nullable=False)
    provider_plan_code = Column(String(255), nullable=True)  # last seen PLN_ code, informational
    last_paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    user = relationship("User", back_populates="subscriptions")
