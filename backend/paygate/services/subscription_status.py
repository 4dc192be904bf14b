"""Subscription status lookups used to gate the chat feature"""
import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paygate.core.metrics import subscription_status_checks_counter
from paygate.db.gateway import find_user_by_email, list_user_subscriptions

logger = logging.getLogger(__name__)

FREE_STATUS = {"status": "free"}


def get_subscription_status(email: str, db: Session) -> Dict[str, Any]:
    """Return the active entitlement for an email, or the free status.

    When several plans are active at once, the most recently paid one is
    reported. Callers must not rely on which plan wins such a tie.

    Unknown users, accounts without an active plan and database failures
    all answer {"status": "free"}: the gate fails closed but never errors.
    """
    try:
        user = find_user_by_email(email, db)
        if not user:
            subscription_status_checks_counter.labels(status="free").inc()
            return dict(FREE_STATUS)

        active = next((s for s in list_user_subscriptions(user.id, db) if s.status == "active"), None)
    except SQLAlchemyError as e:
        logger.warning(f"Status check fallback (database unavailable): {e.__class__.__name__}: {e}")
        subscription_status_checks_counter.labels(status="fallback").inc()
        return dict(FREE_STATUS)

    if not active:
        subscription_status_checks_counter.labels(status="free").inc()
        return dict(FREE_STATUS)

    subscription_status_checks_counter.labels(status="active").inc()
    return {"status": "active", "plan": active.plan, "since": active.last_paid_at}
