"""Paystack webhook processing: verify, normalize, reconcile"""
from typing import Optional

from sqlalchemy.orm import Session

from paygate.core.config import PaystackConfig
from paygate.core.exceptions import WebhookSignatureError
from paygate.core.logging import security_logger, webhook_logger
from paygate.core.metrics import webhook_events_counter
from paygate.core.otel import tracer
from paygate.services.paystack_events import normalize_event
from paygate.services.reconciliation import ReconciliationOutcome, apply_payment_event
from paygate.services.webhook_signature import verify_signature


def process_paystack_webhook(
    payload: bytes,
    signature: Optional[str],
    db: Session,
    config: PaystackConfig
) -> ReconciliationOutcome:
    """Process one Paystack webhook delivery.

    Steps run strictly in order and nothing is parsed or persisted before
    the signature checks out. Database trouble during reconciliation is
    absorbed by the reconciliation layer, so a returned outcome always means
    the delivery should be acknowledged with 200.

    Args:
        payload: Raw request body as bytes (must not be parsed by middleware)
        signature: Value of the X-Paystack-Signature header, if any
        db: Database session
        config: Paystack secret and plan codes

    Raises:
        WebhookSignatureError: missing secret, missing header or mismatch
        MalformedPayloadError: body is not JSON
    """
    with tracer.start_as_current_span("paystack.webhook") as span:
        if not verify_signature(payload, signature, config.webhook_secret):
            reason = "no secret configured" if not config.webhook_secret else (
                "missing signature header" if not signature else "signature mismatch"
            )
            span.set_attribute("webhook.rejected", reason)
            security_logger.warning(f"Rejected Paystack webhook: {reason}")
            raise WebhookSignatureError(reason)

        event = normalize_event(payload)
        span.set_attribute("paystack.event", event.event_type or "")
        span.set_attribute("paystack.reference", event.reference or "")
        webhook_events_counter.labels(kind=event.kind.value).inc()
        webhook_logger.info(
            f"Paystack event {event.event_type!r} ({event.kind.value}) reference={event.reference} email={event.email}"
        )

        outcome = apply_payment_event(event, db, config)
        if outcome.degraded:
            span.set_attribute("reconciliation.failed_steps", ",".join(outcome.failed))
            webhook_logger.warning(
                f"Acknowledging {event.event_type!r} reference={event.reference} with skipped persistence steps: {outcome.failed}"
            )
        return outcome
