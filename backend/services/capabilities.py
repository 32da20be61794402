"""Outbound capabilities the reconciliation engine depends on.

The engine never reaches for a global Stripe client or database handle; the
host wires these five callables in at startup (see
stripe_webhook_service.build_webhook_service) and tests pass fakes.

Every callable is async and raises CollaboratorUnavailable when the backing
call fails.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

LookupEntity = Callable[[str], Awaitable[Optional[str]]]
UpsertSubscription = Callable[[str, Dict[str, Any], datetime], Awaitable[None]]
FetchLineItems = Callable[[str], Awaitable[List[Dict[str, Any]]]]
FetchCustomer = Callable[[str], Awaitable[Dict[str, Any]]]
FetchSubscription = Callable[[str], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ReconciliationCapabilities:
    lookup_entity: LookupEntity              # email -> company_id
    upsert_subscription: UpsertSubscription  # (company_id, merge fields, now)
    fetch_line_items: FetchLineItems         # checkout session id -> line items
    fetch_customer: FetchCustomer            # customer id -> customer
    fetch_subscription: FetchSubscription    # subscription id -> subscription
