"""Subscription Reconciler - applies a DomainTransition to a company's record.

The write is a single atomic upsert (see SubscriptionStore.upsert_subscription):
- first write for a company creates the document and sets created_at once;
- later writes merge only the transition-derived fields, last write wins;
- updated_at never moves backwards.

Re-applying the same transition with the same clock reading leaves the
document unchanged, which is what makes Stripe redeliveries harmless.

State machine: Unknown -> Active -> Active (renewed) -> Inactive -> Active ...
There is no terminal state.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from models import DomainTransition
from services.capabilities import UpsertSubscription
from services.expiration import resolve_expiration_date

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# transition attribute -> subscription document field
PROVENANCE_FIELDS = {
    "source_event_id": "last_event_id",
    "customer_id": "stripe_customer_id",
    "session_id": "stripe_session_id",
    "subscription_id": "stripe_subscription_id",
    "invoice_id": "last_invoice_id",
    "payment_date": "last_payment_date",
}


class SubscriptionReconciler:
    """Sole writer of subscription documents."""

    def __init__(
        self,
        upsert_subscription: UpsertSubscription,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._upsert_subscription = upsert_subscription
        self._clock = clock

    def build_update(self, transition: DomainTransition, now: datetime) -> Dict[str, Any]:
        """Merge fields for one transition. Provenance is only written when present."""
        update = {
            "is_subscribed": transition.is_active,
            "expiration_date": resolve_expiration_date(
                transition.plan, now, transition.expiration_date
            ),
            "plan": transition.plan.value if transition.plan else None,
        }
        for attr, field in PROVENANCE_FIELDS.items():
            value = getattr(transition, attr)
            if value is not None:
                update[field] = value
        return update

    async def apply(self, company_id: str, transition: DomainTransition) -> Dict[str, Any]:
        if not company_id:
            raise ValueError("company_id is required")
        if transition.is_ignored:
            raise ValueError("IGNORED transitions are never written")

        now = self._clock()
        update = self.build_update(transition, now)
        await self._upsert_subscription(company_id, update, now)

        logger.info(
            "SUBSCRIPTION_UPSERTED company_id=%s kind=%s plan=%s is_subscribed=%s expiration_date=%s event_id=%s",
            company_id,
            transition.kind.value,
            update["plan"],
            update["is_subscribed"],
            update["expiration_date"].isoformat(),
            transition.source_event_id,
        )
        return update
