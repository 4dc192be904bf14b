"""Thin client for the Paystack REST API"""
import logging
from typing import Any, Dict, Optional

import httpx

from paygate.core.config import settings
from paygate.core.exceptions import PaystackAPIError

logger = logging.getLogger(__name__)


def initialize_transaction(payload: Dict[str, Any], secret_key: Optional[str] = None) -> Dict[str, Any]:
    """POST /transaction/initialize and return the `data` object.

    Raises PaystackAPIError when Paystack answers status=false (transport=False)
    or when the call itself fails (transport=True).
    """
    secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
    url = f"{settings.PAYSTACK_BASE_URL.rstrip('/')}/transaction/initialize"

    try:
        with httpx.Client(timeout=settings.PAYSTACK_TIMEOUT_SECONDS) as client:
            response = client.post(
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {secret_key}",
                    "Content-Type": "application/json"
                }
            )
            response.raise_for_status()
            body = response.json()
    except httpx.HTTPStatusError as e:
        raw = _safe_json(e.response)
        message = raw.get("message") if isinstance(raw, dict) else None
        logger.error(f"Paystack initialize failed with HTTP {e.response.status_code}: {raw}")
        raise PaystackAPIError(message or str(e), raw=raw, transport=True) from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Paystack initialize request error: {e}")
        raise PaystackAPIError(str(e) or "Unknown error", transport=True) from e

    if not isinstance(body, dict) or not body.get("status"):
        message = body.get("message") if isinstance(body, dict) else None
        raise PaystackAPIError(message or "No message from Paystack", raw=body)

    return body.get("data") or {}


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
