"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from paygate.models.base import Base
from paygate.models.user import User
from paygate.models.payment import Payment
from paygate.models.subscription import Subscription

# Export all for convenience
__all__ = ["Base", "User", "Payment", "Subscription"]
