"""Event Classifier - Stripe event -> DomainTransition.

Events handled:
- checkout.session.completed      -> SUBSCRIPTION_ACTIVATED
- customer.subscription.created   -> SUBSCRIPTION_STATUS_CHANGED
- customer.subscription.updated   -> SUBSCRIPTION_STATUS_CHANGED
- customer.subscription.deleted   -> SUBSCRIPTION_STATUS_CHANGED (inactive)
- invoice.payment_succeeded       -> SUBSCRIPTION_RENEWED

Everything else is IGNORED: Stripe adds event types over time and an unknown
type must never fail the delivery. Missing data and failed lookups also
degrade to IGNORED (with a reason) instead of raising.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from models import DomainTransition, IgnoreReason, PlanTier, TransitionKind
from services.capabilities import ReconciliationCapabilities
from services.expiration import from_unix_timestamp
from services.plan_registry import PlanRegistry
from services.webhook_errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

METADATA_PLAN_KEYS = ("planType", "plan_type")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def _items(obj: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = obj.get("items") or {}
    data = items.get("data") if isinstance(items, dict) else None
    return [i for i in (data or []) if isinstance(i, dict)]


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    subscription_id = _object_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    # Newer API versions nest it under parent.subscription_details
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _object_id(details.get("subscription"))


class EventClassifier:
    """Maps a verified Stripe event to a normalized transition."""

    def __init__(
        self,
        capabilities: ReconciliationCapabilities,
        plans: PlanRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._caps = capabilities
        self._plans = plans
        self._clock = clock

    async def classify(self, event: Dict[str, Any]) -> DomainTransition:
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        handlers = {
            "checkout.session.completed": self._classify_checkout_completed,
            "customer.subscription.created": self._classify_subscription_change,
            "customer.subscription.updated": self._classify_subscription_change,
            "customer.subscription.deleted": self._classify_subscription_change,
            "invoice.payment_succeeded": self._classify_invoice_paid,
        }

        handler = handlers.get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled event type: %s", event_type)
            return DomainTransition.ignored(
                IgnoreReason.UNHANDLED_EVENT_TYPE,
                event_type=event_type,
                source_event_id=event.get("id"),
                source_object_id=_object_id(data),
            )
        return await handler(data, event)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _classify_checkout_completed(self, session: Dict, event: Dict) -> DomainTransition:
        event_type = event.get("type")
        event_id = event.get("id")
        session_id = session.get("id")

        email = (session.get("customer_details") or {}).get("email")
        if not email:
            logger.info("Checkout session %s has no customer email - nothing to attribute", session_id)
            return DomainTransition.ignored(IgnoreReason.MISSING_EMAIL, event_type, event_id, session_id)

        plan = self._plan_from_metadata(session.get("metadata"))
        if plan is None:
            plan = await self._plan_from_line_items(session_id)
        if plan is None:
            logger.warning("No matching plan for checkout session %s", session_id)
            return DomainTransition.ignored(IgnoreReason.UNRESOLVED_PLAN, event_type, event_id, session_id)

        return DomainTransition(
            kind=TransitionKind.SUBSCRIPTION_ACTIVATED,
            event_type=event_type,
            email=email,
            plan=plan,
            is_active=True,
            source_event_id=event_id,
            source_object_id=session_id,
            customer_id=_object_id(session.get("customer")),
            session_id=session_id,
            subscription_id=_object_id(session.get("subscription")),
        )

    async def _classify_subscription_change(self, subscription: Dict, event: Dict) -> DomainTransition:
        event_type = event.get("type")
        event_id = event.get("id")
        subscription_id = subscription.get("id")

        customer_id = _object_id(subscription.get("customer"))
        if not customer_id:
            return DomainTransition.ignored(IgnoreReason.MISSING_CUSTOMER, event_type, event_id, subscription_id)

        plan = self._plan_from_subscription(subscription)
        if plan is None:
            logger.warning("Cannot determine plan for subscription %s", subscription_id)
            return DomainTransition.ignored(IgnoreReason.UNRESOLVED_PLAN, event_type, event_id, subscription_id)

        try:
            email = await self._email_for_customer(customer_id)
        except CollaboratorUnavailable as e:
            logger.error("Error retrieving customer %s: %s", customer_id, e)
            return DomainTransition.ignored(IgnoreReason.COLLABORATOR_UNAVAILABLE, event_type, event_id, subscription_id)
        if not email:
            logger.info("Customer %s has no email", customer_id)
            return DomainTransition.ignored(IgnoreReason.MISSING_EMAIL, event_type, event_id, subscription_id)

        return DomainTransition(
            kind=TransitionKind.SUBSCRIPTION_STATUS_CHANGED,
            event_type=event_type,
            email=email,
            plan=plan,
            expiration_date=self._period_end(subscription),
            is_active=subscription.get("status") == "active",
            source_event_id=event_id,
            source_object_id=subscription_id,
            customer_id=customer_id,
            subscription_id=subscription_id,
        )

    async def _classify_invoice_paid(self, invoice: Dict, event: Dict) -> DomainTransition:
        event_type = event.get("type")
        event_id = event.get("id")
        invoice_id = invoice.get("id")

        customer_id = _object_id(invoice.get("customer"))
        if not customer_id:
            return DomainTransition.ignored(IgnoreReason.MISSING_CUSTOMER, event_type, event_id, invoice_id)
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            logger.info("Invoice %s is not tied to a subscription", invoice_id)
            return DomainTransition.ignored(IgnoreReason.MISSING_SUBSCRIPTION, event_type, event_id, invoice_id)

        try:
            subscription = await self._caps.fetch_subscription(subscription_id)
            plan = self._plan_from_subscription(subscription)
            if plan is None:
                logger.warning("Cannot determine plan for subscription %s (invoice %s)", subscription_id, invoice_id)
                return DomainTransition.ignored(IgnoreReason.UNRESOLVED_PLAN, event_type, event_id, invoice_id)
            email = await self._email_for_customer(customer_id)
        except CollaboratorUnavailable as e:
            logger.error("Error processing invoice %s: %s", invoice_id, e)
            return DomainTransition.ignored(IgnoreReason.COLLABORATOR_UNAVAILABLE, event_type, event_id, invoice_id)

        if not email:
            logger.info("Customer %s has no email", customer_id)
            return DomainTransition.ignored(IgnoreReason.MISSING_EMAIL, event_type, event_id, invoice_id)

        paid_at = from_unix_timestamp((invoice.get("status_transitions") or {}).get("paid_at"))
        payment_date = paid_at or from_unix_timestamp(event.get("created")) or self._clock()

        return DomainTransition(
            kind=TransitionKind.SUBSCRIPTION_RENEWED,
            event_type=event_type,
            email=email,
            plan=plan,
            expiration_date=self._period_end(subscription),
            is_active=True,
            source_event_id=event_id,
            source_object_id=invoice_id,
            customer_id=customer_id,
            subscription_id=subscription.get("id") or subscription_id,
            invoice_id=invoice_id,
            payment_date=payment_date,
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    def _plan_from_metadata(self, metadata: Optional[Dict[str, Any]]) -> Optional[PlanTier]:
        metadata = metadata or {}
        for key in METADATA_PLAN_KEYS:
            raw = metadata.get(key)
            if not raw:
                continue
            plan = self._plans.get_plan_from_name(raw)
            if plan is None:
                logger.warning("Unrecognized plan name in session metadata: %r", raw)
            return plan
        return None

    async def _plan_from_line_items(self, session_id: Optional[str]) -> Optional[PlanTier]:
        if not session_id:
            return None
        try:
            line_items = await self._caps.fetch_line_items(session_id)
        except CollaboratorUnavailable as e:
            logger.error("Error getting line items for session %s: %s", session_id, e)
            return None
        if not line_items:
            return None
        price = line_items[0].get("price") or {}
        return self._plans.get_plan_from_product_id(_object_id(price.get("product")))

    def _plan_from_subscription(self, subscription: Dict[str, Any]) -> Optional[PlanTier]:
        legacy_plan = subscription.get("plan") or {}
        plan = self._plans.get_plan_from_product_id(_object_id(legacy_plan.get("product")))
        if plan:
            return plan
        for item in _items(subscription):
            price = item.get("price") or {}
            plan = self._plans.get_plan_from_product_id(_object_id(price.get("product")))
            if plan:
                return plan
        return None

    def _period_end(self, subscription: Dict[str, Any]) -> Optional[datetime]:
        period_end = from_unix_timestamp(subscription.get("current_period_end"))
        if period_end:
            return period_end
        # Newer API versions report the period per subscription item
        for item in _items(subscription):
            period_end = from_unix_timestamp(item.get("current_period_end"))
            if period_end:
                return period_end
        return None

    async def _email_for_customer(self, customer_id: str) -> Optional[str]:
        customer = await self._caps.fetch_customer(customer_id)
        return (customer or {}).get("email") or None
