"""Reconciliation of Paystack events into payment and subscription state

Each persistence step is best effort. A database failure in one step is
logged, counted and skipped; earlier steps stay committed and later steps
still run. Nothing here raises past the webhook handler, because a non-2xx
answer makes Paystack redeliver an event whose side effects may already
have partially applied.

Known gap: a reconciliation dropped during an outage is not queued for
retry. It is visible only in logs and the
paygate_reconciliation_step_failures_total counter.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paygate.core.config import PaystackConfig
from paygate.core.metrics import reconciliation_failures_counter
from paygate.db.gateway import (
    find_user_by_email, get_or_create_user, upsert_payment, upsert_subscription,
    update_payments_by_reference, update_subscriptions_by_user_and_plan
)
from paygate.services.paystack_events import PaymentEvent, PaymentEventKind
from paygate.services.plans import PlanKey, resolve_plan

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ReconciliationOutcome:
    """What applying one event did; the webhook acknowledges regardless"""
    kind: PaymentEventKind
    plan: Optional[PlanKey] = None
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failed)


def _best_effort(step: str, outcome: ReconciliationOutcome, db: Session, operation: Callable[[], T]) -> Optional[T]:
    """Run one persistence step, swallowing and recording database failures"""
    try:
        result = operation()
    except SQLAlchemyError as e:
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.debug(f"Rollback after failed step '{step}' also failed", exc_info=True)
        logger.warning(f"Skipping {step} (database unavailable): {e.__class__.__name__}: {e}")
        reconciliation_failures_counter.labels(step=step).inc()
        outcome.failed.append(step)
        return None
    outcome.applied.append(step)
    return result


def _handle_charge_succeeded(event: PaymentEvent, db: Session, config: PaystackConfig, outcome: ReconciliationOutcome):
    if not event.email:
        outcome.skipped.append("missing_email")
        return

    user = _best_effort("user_get_or_create", outcome, db, lambda: get_or_create_user(event.email, db))
    user_id = user.id if user else None
    plan = resolve_plan(event.plan_code, config)
    outcome.plan = plan

    if event.reference:
        _best_effort("payment_upsert", outcome, db, lambda: upsert_payment(
            event.reference,
            {
                "user_id": user_id,
                "status": "success",
                "amount_minor": event.amount_minor,
                "currency": event.currency or config.currency,
                "raw_webhook_event": event.raw,
            },
            db
        ))
    else:
        # References come from Paystack; none is minted locally
        logger.warning(f"charge.success for {event.email} carries no reference; payment not recorded")
        outcome.skipped.append("payment_upsert")

    if plan == PlanKey.UNKNOWN:
        logger.info(f"Plan code {event.plan_code!r} is not configured; no subscription change for {event.email}")
        outcome.skipped.append("subscription_upsert")
        return
    if user_id is None:
        outcome.skipped.append("subscription_upsert")
        return

    _best_effort("subscription_upsert", outcome, db, lambda: upsert_subscription(
        user_id,
        plan.value,
        {
            "status": "active",
            "provider_plan_code": event.plan_code,
            "last_paid_at": datetime.now(timezone.utc),
        },
        db
    ))


def _handle_payment_failed(event: PaymentEvent, db: Session, outcome: ReconciliationOutcome):
    if not event.reference:
        outcome.skipped.append("payment_mark_failed")
        return
    updated = _best_effort("payment_mark_failed", outcome, db, lambda: update_payments_by_reference(
        event.reference, {"status": "failed"}, db
    ))
    if updated == 0:
        logger.info(f"No payment recorded for reference {event.reference}; failure not applied")


def _handle_subscription_disabled(event: PaymentEvent, db: Session, config: PaystackConfig, outcome: ReconciliationOutcome):
    if not event.email or not event.plan_code:
        outcome.skipped.append("subscription_cancel")
        return

    plan = resolve_plan(event.plan_code, config)
    outcome.plan = plan
    user = _best_effort("user_lookup", outcome, db, lambda: find_user_by_email(event.email, db))
    if user is None or plan == PlanKey.UNKNOWN:
        outcome.skipped.append("subscription_cancel")
        return

    _best_effort("subscription_cancel", outcome, db, lambda: update_subscriptions_by_user_and_plan(
        user.id, plan.value, {"status": "canceled"}, db
    ))


def apply_payment_event(event: PaymentEvent, db: Session, config: PaystackConfig) -> ReconciliationOutcome:
    """Apply one canonical event to persisted state; safe to repeat"""
    outcome = ReconciliationOutcome(kind=event.kind)

    if event.kind == PaymentEventKind.CHARGE_SUCCEEDED:
        _handle_charge_succeeded(event, db, config, outcome)
    elif event.kind in (PaymentEventKind.CHARGE_FAILED, PaymentEventKind.INVOICE_PAYMENT_FAILED):
        _handle_payment_failed(event, db, outcome)
    elif event.kind == PaymentEventKind.SUBSCRIPTION_DISABLED:
        _handle_subscription_disabled(event, db, config, outcome)
    else:
        logger.info(f"Ignoring unrecognized Paystack event {event.event_type!r}")

    return outcome
