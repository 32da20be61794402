"""Stripe Gateway - read-only Stripe lookups used while classifying events.

The Stripe SDK is synchronous; calls run in the default thread pool so one
slow lookup never blocks other deliveries on the event loop. Results are
returned as plain dicts.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import stripe

from services.webhook_errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)


def _to_plain(obj: Any) -> Any:
    if obj is None:
        return None
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return obj


class StripeGateway:
    """Line items, customers and subscriptions by id."""

    def __init__(self, api_key: Optional[str]):
        self._api_key = api_key or None

    async def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        if not self._api_key:
            raise CollaboratorUnavailable("stripe", "STRIPE_SECRET_KEY is not set")
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, fn)
        except stripe.StripeError as e:
            logger.error("Stripe %s failed: %s", operation, e)
            raise CollaboratorUnavailable("stripe", f"{operation}: {e}") from e
        return _to_plain(result)

    async def list_line_items(self, session_id: str) -> List[Dict[str, Any]]:
        result = await self._call(
            "checkout.Session.list_line_items",
            lambda: stripe.checkout.Session.list_line_items(session_id, api_key=self._api_key),
        )
        return list((result or {}).get("data") or [])

    async def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        result = await self._call(
            "Customer.retrieve",
            lambda: stripe.Customer.retrieve(customer_id, api_key=self._api_key),
        )
        return result or {}

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        result = await self._call(
            "Subscription.retrieve",
            lambda: stripe.Subscription.retrieve(subscription_id, api_key=self._api_key),
        )
        return result or {}
