"""Normalization of Paystack webhook payloads into canonical payment events"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from paygate.core.exceptions import MalformedPayloadError


class PaymentEventKind(str, Enum):
    CHARGE_SUCCEEDED = "charge_succeeded"
    CHARGE_FAILED = "charge_failed"
    INVOICE_PAYMENT_FAILED = "invoice_payment_failed"
    SUBSCRIPTION_DISABLED = "subscription_disabled"
    UNRECOGNIZED = "unrecognized"


# Paystack event type -> canonical kind. Anything else is UNRECOGNIZED.
EVENT_KINDS = {
    "charge.success": PaymentEventKind.CHARGE_SUCCEEDED,
    "charge.failed": PaymentEventKind.CHARGE_FAILED,
    "invoice.payment_failed": PaymentEventKind.INVOICE_PAYMENT_FAILED,
    "subscription.disable": PaymentEventKind.SUBSCRIPTION_DISABLED,
}


@dataclass(frozen=True)
class PaymentEvent:
    """One webhook delivery, decoded once and consumed once"""
    kind: PaymentEventKind
    event_type: Optional[str] = None
    email: Optional[str] = None
    reference: Optional[str] = None
    plan_code: Optional[str] = None
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    raw: Any = field(default=None, repr=False, compare=False)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _as_amount(value: Any) -> Optional[int]:
    # bool is an int subclass; true/false is not an amount
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def extract_email(data: Dict[str, Any]) -> Optional[str]:
    """data.customer.email"""
    return _as_text(_as_dict(data.get("customer")).get("email"))


def extract_reference(data: Dict[str, Any]) -> Optional[str]:
    """data.reference"""
    return _as_text(data.get("reference"))


def extract_plan_code(data: Dict[str, Any]) -> Optional[str]:
    """data.plan, falling back to data.plan_object.plan_code.

    subscription.* events carry `plan` as an object, so its `plan_code`
    is honoured too.
    """
    plan = data.get("plan")
    if isinstance(plan, dict):
        plan_code = _as_text(plan.get("plan_code"))
    else:
        plan_code = _as_text(plan)
    if plan_code:
        return plan_code
    return _as_text(_as_dict(data.get("plan_object")).get("plan_code"))


def extract_amount(data: Dict[str, Any]) -> Optional[int]:
    """data.amount, in minor units"""
    return _as_amount(data.get("amount"))


def extract_currency(data: Dict[str, Any]) -> Optional[str]:
    """data.currency"""
    return _as_text(data.get("currency"))


def normalize_event(raw_body: bytes) -> PaymentEvent:
    """Decode a verified webhook body into a PaymentEvent.

    Raises MalformedPayloadError when the body is not JSON or nests too
    deeply to decode. Well-formed JSON with missing or oddly-typed fields
    never fails: absent values become None and unmapped event types become
    UNRECOGNIZED.
    """
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise MalformedPayloadError(f"Webhook body is not valid JSON: {e}") from e

    envelope = _as_dict(payload)
    event_type = envelope.get("event") if isinstance(envelope.get("event"), str) else None
    data = _as_dict(envelope.get("data"))

    return PaymentEvent(
        kind=EVENT_KINDS.get(event_type, PaymentEventKind.UNRECOGNIZED),
        event_type=event_type,
        email=extract_email(data),
        reference=extract_reference(data),
        plan_code=extract_plan_code(data),
        amount_minor=extract_amount(data),
        currency=extract_currency(data),
        raw=payload,
    )
