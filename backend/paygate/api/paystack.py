"""Paystack API routes"""
import logging
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from paygate.core.config import PaystackConfig, get_paystack_config, settings
from paygate.core.exceptions import MalformedPayloadError, PaystackAPIError, WebhookSignatureError
from paygate.core.metrics import webhook_deliveries_counter
from paygate.db.session import get_db
from paygate.schemas.paystack import (
    InitializeOnceRequest, InitializeRequest, InitializeResponse, PaystackDiagnostics
)
from paygate.services.payment_service import initialize_one_off_payment, initialize_plan_payment
from paygate.services.webhook_service import process_paystack_webhook
from paygate.services.webhook_signature import SIGNATURE_HEADER

router = APIRouter(prefix="/api/paystack", tags=["paystack"])
logger = logging.getLogger(__name__)


def _preview(code: str):
    return code[:8] + "…" if code else None


def _init_error_response(e: PaystackAPIError) -> JSONResponse:
    if e.transport:
        return JSONResponse(
            status_code=500,
            content={"error": "Payment initialization failed", "message": e.message, "raw": e.raw}
        )
    return JSONResponse(
        status_code=400,
        content={"error": "Paystack init failed", "message": e.message, "raw": e.raw}
    )


def _value_error_status(message: str) -> int:
    return 500 if "not configured" in message.lower() else 400


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    config: PaystackConfig = Depends(get_paystack_config)
):
    """Handle Paystack webhook events

    Note: This route must be excluded from any global JSON parsing middleware
    to ensure the request body remains as raw bytes for signature verification.
    """
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        await run_in_threadpool(process_paystack_webhook, payload, signature, db, config)
    except WebhookSignatureError:
        webhook_deliveries_counter.labels(outcome="rejected").inc()
        return Response(status_code=401)
    except MalformedPayloadError as e:
        # 5xx makes Paystack redeliver; a one-off corrupted body may not recur
        logger.error(f"Invalid webhook payload: {e}")
        webhook_deliveries_counter.labels(outcome="malformed").inc()
        return Response(status_code=500)
    except Exception as e:
        # Unexpected error - log but return 200 to prevent retries
        logger.error(f"Unexpected error processing webhook: {e}", exc_info=True)

    webhook_deliveries_counter.labels(outcome="acknowledged").inc()
    return Response(status_code=200)


@router.post("/initialize", response_model=InitializeResponse)
def initialize_payment(
    body: InitializeRequest,
    db: Session = Depends(get_db),
    config: PaystackConfig = Depends(get_paystack_config)
):
    """Start a Paystack checkout for a subscription plan"""
    try:
        return initialize_plan_payment(body.email, body.plan, db, config)
    except ValueError as e:
        error_msg = str(e)
        return JSONResponse(status_code=_value_error_status(error_msg), content={"error": error_msg})
    except PaystackAPIError as e:
        return _init_error_response(e)


@router.post("/initialize-once", response_model=InitializeResponse)
def initialize_once(
    body: InitializeOnceRequest,
    config: PaystackConfig = Depends(get_paystack_config)
):
    """Start a one-off (non-plan) checkout, for diagnosing the Paystack setup"""
    try:
        return initialize_one_off_payment(body.email, body.amount_ghs, config)
    except ValueError as e:
        error_msg = str(e)
        return JSONResponse(status_code=_value_error_status(error_msg), content={"error": error_msg})
    except PaystackAPIError as e:
        return _init_error_response(e)


@router.get("/diag", response_model=PaystackDiagnostics)
def paystack_diagnostics(config: PaystackConfig = Depends(get_paystack_config)):
    """Report which Paystack settings are present without exposing the secret"""
    if not config.webhook_secret:
        logger.warning("Paystack diagnostics requested while PAYSTACK_SECRET_KEY is unset")
    return PaystackDiagnostics(
        has_SECRET_KEY=bool(config.webhook_secret),
        PUBLIC_URL=settings.PUBLIC_URL,
        premiumPlanSet=bool(config.premium_plan_code),
        proPlanSet=bool(config.pro_plan_code),
        premiumPlanCode_preview=_preview(config.premium_plan_code),
        proPlanCode_preview=_preview(config.pro_plan_code),
    )
