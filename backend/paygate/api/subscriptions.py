"""Subscriptions API routes"""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from paygate.db.session import get_db
from paygate.schemas.subscriptions import SubscriptionStatusResponse
from paygate.services.subscription_status import get_subscription_status

router = APIRouter(prefix="/api/subscription", tags=["subscriptions"])
logger = logging.getLogger(__name__)


@router.get(
    "/status/{email}",
    response_model=SubscriptionStatusResponse,
    response_model_exclude_none=True
)
def subscription_status(email: str, db: Session = Depends(get_db)):
    """Entitlement check used by the chat gate.

    Never distinguishes "unknown user" or "database down" from "free".
    """
    if not email.strip():
        return JSONResponse(status_code=400, content={"error": "email required"})
    return get_subscription_status(email, db)
