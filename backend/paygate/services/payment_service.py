"""Business logic for starting Paystack checkouts"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paygate.core.config import PaystackConfig, settings
from paygate.db.gateway import create_payment_if_absent, get_or_create_user
from paygate.models.user import User
from paygate.services import paystack_client
from paygate.services.plans import plan_code_for

logger = logging.getLogger(__name__)

CHECKOUT_SOURCE = "math-gpt-landing"


def callback_url() -> str:
    return f"{settings.PUBLIC_URL.rstrip('/')}/payment/callback"


def _best_effort_user(email: str, db: Session) -> Optional[User]:
    try:
        return get_or_create_user(email, db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Database not ready, skipping user persistence for {email}: {e.__class__.__name__}")
        return None


def initialize_plan_payment(email: str, plan: str, db: Session, config: PaystackConfig) -> Dict[str, Any]:
    """Start a recurring (plan) checkout and record the attempt.

    Returns {"authorization_url", "reference"}.

    Raises:
        ValueError: missing input, unconfigured secret or unknown plan
        PaystackAPIError: Paystack rejected or never answered the request
    """
    if not email or not plan:
        raise ValueError("email and plan required")
    if not config.webhook_secret:
        raise ValueError("Paystack not configured: PAYSTACK_SECRET_KEY missing")

    plan_code = plan_code_for(plan, config)
    if not plan_code:
        raise ValueError(f"Unknown plan '{plan}'. Check PAYSTACK_PLAN_{plan.upper()}.")

    user = _best_effort_user(email, db)
    user_id = user.id if user else None

    data = paystack_client.initialize_transaction({
        "email": email,
        "plan": plan_code,
        "currency": config.currency,
        "callback_url": callback_url(),
        "metadata": {"user_id": user_id, "plan": plan, "source": CHECKOUT_SOURCE},
    }, secret_key=config.webhook_secret)

    reference = data.get("reference")
    if reference:
        try:
            create_payment_if_absent(reference, {
                "user_id": user_id,
                "status": "initialized",
                "currency": config.currency,
                "raw_init_response": data,
            }, db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Skipping payment init persistence (database not ready): {e.__class__.__name__}")

    logger.info(f"Initialized {plan} checkout for {email} (reference={reference})")
    return {"authorization_url": data.get("authorization_url"), "reference": reference}


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount (e.g. cedis) to minor units, rounding half up"""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount '{amount}'") from e
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Invalid amount '{amount}'")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def initialize_one_off_payment(email: str, amount: Any, config: PaystackConfig) -> Dict[str, Any]:
    """Start a single non-recurring checkout; used to diagnose the Paystack setup"""
    if not email:
        raise ValueError("email required")
    if not config.webhook_secret:
        raise ValueError("Paystack not configured: PAYSTACK_SECRET_KEY missing")

    data = paystack_client.initialize_transaction({
        "email": email,
        "amount": to_minor_units(amount),
        "currency": config.currency,
        "callback_url": callback_url(),
        "metadata": {"test_once": True},
    }, secret_key=config.webhook_secret)

    return {"authorization_url": data.get("authorization_url"), "reference": data.get("reference")}
