"""Stripe-Signature verification for inbound webhook bytes.

The raw request body must reach this module untouched: Stripe signs the exact
bytes it sent, so any prior JSON decoding breaks verification.
"""
import json
import logging
from typing import Any, Dict, Optional

import stripe

from services.webhook_errors import AuthenticationFailed, MalformedPayload

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def _decode(payload: bytes) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return payload.decode("utf-8")
    except (UnicodeDecodeError, AttributeError) as e:
        raise MalformedPayload(f"Payload is not valid UTF-8: {e}") from e


def _parse_event(body: str) -> Dict[str, Any]:
    try:
        event = json.loads(body)
    except ValueError as e:
        raise MalformedPayload(f"Payload is not valid JSON: {e}") from e
    if not isinstance(event, dict):
        raise MalformedPayload("Payload is not a JSON object")
    event_type = event.get("type")
    if not event_type or not isinstance(event_type, str):
        raise MalformedPayload("Event has no type")
    data = event.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise MalformedPayload("Event has no data.object")
    return event


def verify_notification(
    payload: bytes,
    signature: Optional[str],
    secret: Optional[str],
    allow_unsigned: bool = False,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> Dict[str, Any]:
    """Authenticate and decode one webhook delivery.

    Args:
        payload: Raw request body.
        signature: Value of the Stripe-Signature header (may be empty).
        secret: Webhook signing secret for the current deployment mode.
        allow_unsigned: Development-mode flag. Only consulted when no secret
            is configured; production callers must pass False.
        tolerance: Max age of the signed timestamp, in seconds.

    Returns:
        The decoded event as a plain dict.

    Raises:
        AuthenticationFailed: signature missing/invalid, or no secret outside
            development mode.
        MalformedPayload: body is not a JSON event object.
    """
    body = _decode(payload)

    if secret:
        if not signature:
            raise AuthenticationFailed("Missing Stripe-Signature header")
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
        except stripe.SignatureVerificationError as e:
            raise AuthenticationFailed(f"Invalid signature: {e}") from e
    elif allow_unsigned:
        logger.warning("STRIPE_WEBHOOK_SECRET not set - skipping signature verification (development mode)")
    else:
        raise AuthenticationFailed(
            "Webhook secret is not configured and unsigned payloads are not allowed"
        )

    return _parse_event(body)
