"""Payment model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from paygate.models.base import Base


class Payment(Base):
    """One Paystack transaction attempt, keyed by the provider reference"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    provider = Column(String(50), default="paystack", nullable=False)
    reference = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(String(50), nullable=False)  # 'initialized', 'success', 'failed'
    amount_minor = Column(Integer, nullable=True)  # pesewas/kobo, unknown until the webhook arrives
    currency = Column(String(10), nullable=False)
    raw_init_response = Column(JSON, nullable=True)
    raw_webhook_event = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    user = relationship("User", back_populates="payments")
