"""Stripe Webhook Service - drives one delivery through the reconciliation engine.

Pipeline:
1. Signature verification (raw bytes + Stripe-Signature)
2. Classification into a DomainTransition
3. Company resolution from the payer email
4. Expiration + atomic upsert of the company's subscription document

Key Principles:
1. Redelivery is harmless: the upsert is last-write-wins field assignment
2. Unknown events, unknown plans and unknown payers are acknowledged, not failed
3. Failed Stripe/Mongo calls are logged and acknowledged; Stripe's own
   redelivery is the retry strategy, nothing is retried in-process
4. Only authentication failures and undecodable payloads are rejected
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from database import database
from models import DomainTransition, IgnoreReason, WebhookResult, WebhookStatus
from services.billing_config import get_stripe_secret_key, get_webhook_secret, is_development_mode
from services.capabilities import ReconciliationCapabilities
from services.entity_resolver import EntityResolver
from services.event_classifier import EventClassifier
from services.plan_registry import PlanRegistry
from services.signature_verifier import verify_notification
from services.stripe_gateway import StripeGateway
from services.subscription_reconciler import SubscriptionReconciler
from services.subscription_store import SubscriptionStore
from services.webhook_errors import CollaboratorUnavailable, UnresolvedReference

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _extract_webhook_context(event: Dict) -> Dict[str, Any]:
    """Safe fields for structured logging (event_id, event_type, livemode, object_id, customer_id)."""
    obj = (event.get("data") or {}).get("object") or {}
    customer = obj.get("customer")
    return {
        "event_id": event.get("id"),
        "event_type": event.get("type"),
        "livemode": event.get("livemode"),
        "object_id": obj.get("id"),
        "customer_id": customer if isinstance(customer, str) else (customer or {}).get("id"),
    }


class StripeWebhookService:
    """Verifies, classifies and reconciles Stripe webhook deliveries."""

    def __init__(
        self,
        capabilities: ReconciliationCapabilities,
        plans: PlanRegistry,
        webhook_secret: Optional[str],
        allow_unsigned: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._webhook_secret = webhook_secret
        self._allow_unsigned = allow_unsigned
        self.classifier = EventClassifier(capabilities, plans, clock)
        self.entity_resolver = EntityResolver(capabilities.lookup_entity)
        self.reconciler = SubscriptionReconciler(capabilities.upsert_subscription, clock)

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Main webhook entry point.

        Raises:
            AuthenticationFailed, MalformedPayload: the boundary answers 400.

        Returns:
            WebhookResult with status processed or ignored.
        """
        event = verify_notification(
            payload, signature, self._webhook_secret, allow_unsigned=self._allow_unsigned
        )

        ctx = _extract_webhook_context(event)
        logger.info(
            "WEBHOOK_RECEIVED event_id=%s event_type=%s livemode=%s object_id=%s customer_id=%s",
            ctx["event_id"], ctx["event_type"], ctx["livemode"], ctx["object_id"], ctx["customer_id"],
        )

        try:
            return await self._reconcile(event)
        except UnresolvedReference as e:
            return self._ignored(event, e.reason, str(e))
        except CollaboratorUnavailable as e:
            logger.error(
                "WEBHOOK_PROCESSING_FAILED event_id=%s event_type=%s error=%s",
                ctx["event_id"], ctx["event_type"], str(e),
            )
            return self._ignored(event, IgnoreReason.COLLABORATOR_UNAVAILABLE.value, str(e))

    async def _reconcile(self, event: Dict) -> WebhookResult:
        transition = await self.classifier.classify(event)
        if transition.is_ignored:
            return self._ignored(event, transition.reason.value if transition.reason else None)

        company_id = await self.entity_resolver.resolve(transition.email)
        if not company_id:
            raise UnresolvedReference(
                IgnoreReason.UNRESOLVED_COMPANY.value,
                f"No company for payer {transition.email}",
            )

        update = await self.reconciler.apply(company_id, transition)

        logger.info(
            "WEBHOOK_PROCESSED_OK event_id=%s event_type=%s company_id=%s",
            event.get("id"), event.get("type"), company_id,
        )
        return WebhookResult(
            status=WebhookStatus.PROCESSED,
            message="Processed",
            details=self._processed_details(event, company_id, transition, update),
        )

    @staticmethod
    def _processed_details(
        event: Dict, company_id: str, transition: DomainTransition, update: Dict[str, Any]
    ) -> Dict[str, Any]:
        return {
            "event_id": event.get("id"),
            "company_id": company_id,
            "transition": transition.kind.value,
            "plan": update.get("plan"),
            "is_subscribed": update.get("is_subscribed"),
            "expiration_date": update["expiration_date"].isoformat(),
        }

    @staticmethod
    def _ignored(event: Dict, reason: Optional[str], error: Optional[str] = None) -> WebhookResult:
        logger.info(
            "WEBHOOK_IGNORED event_id=%s event_type=%s reason=%s",
            event.get("id"), event.get("type"), reason,
        )
        details = {"event_id": event.get("id"), "reason": reason}
        if error:
            details["error"] = error
        return WebhookResult(status=WebhookStatus.IGNORED, message="Ignored", details=details)


def build_webhook_service() -> StripeWebhookService:
    """Wire the production capabilities: Stripe SDK lookups + MongoDB store."""
    gateway = StripeGateway(get_stripe_secret_key())
    store = SubscriptionStore(database.get_db)
    capabilities = ReconciliationCapabilities(
        lookup_entity=store.find_company_id_by_email,
        upsert_subscription=store.upsert_subscription,
        fetch_line_items=gateway.list_line_items,
        fetch_customer=gateway.retrieve_customer,
        fetch_subscription=gateway.retrieve_subscription,
    )
    return StripeWebhookService(
        capabilities,
        PlanRegistry.from_env(),
        webhook_secret=get_webhook_secret(),
        allow_unsigned=is_development_mode(),
    )
