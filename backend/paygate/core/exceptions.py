"""Exceptions raised by the payment and webhook services"""
from typing import Any, Optional


class WebhookSignatureError(Exception):
    """Webhook delivery failed HMAC verification (missing secret, header or mismatch)"""


class MalformedPayloadError(ValueError):
    """Webhook body could not be decoded as JSON"""


class PaystackAPIError(Exception):
    """Paystack REST call failed or returned status=false"""

    def __init__(self, message: str, raw: Optional[Any] = None, transport: bool = False):
        super().__init__(message)
        self.message = message
        self.raw = raw
        # True when the request never produced a usable Paystack response
        self.transport = transport
