from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class PlanTier(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

class TransitionKind(str, Enum):
    SUBSCRIPTION_ACTIVATED = "SUBSCRIPTION_ACTIVATED"
    SUBSCRIPTION_RENEWED = "SUBSCRIPTION_RENEWED"
    SUBSCRIPTION_STATUS_CHANGED = "SUBSCRIPTION_STATUS_CHANGED"
    IGNORED = "IGNORED"

class IgnoreReason(str, Enum):
    UNHANDLED_EVENT_TYPE = "unhandled_event_type"
    MISSING_EMAIL = "missing_email"
    MISSING_CUSTOMER = "missing_customer"
    MISSING_SUBSCRIPTION = "missing_subscription"
    UNRESOLVED_PLAN = "unresolved_plan"
    UNRESOLVED_COMPANY = "unresolved_company"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"

class WebhookStatus(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"

# ============================================================================
# DOMAIN TRANSITION (derived from one Stripe event, never persisted)
# ============================================================================

class DomainTransition(BaseModel):
    kind: TransitionKind
    event_type: Optional[str] = None
    email: Optional[str] = None
    plan: Optional[PlanTier] = None
    expiration_date: Optional[datetime] = None  # authoritative period end, when the event carries one
    is_active: bool = False

    # Provenance
    source_event_id: Optional[str] = None
    source_object_id: Optional[str] = None
    customer_id: Optional[str] = None
    session_id: Optional[str] = None
    subscription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    payment_date: Optional[datetime] = None

    reason: Optional[IgnoreReason] = None

    model_config = {"frozen": True}

    @classmethod
    def ignored(
        cls,
        reason: IgnoreReason,
        event_type: Optional[str] = None,
        source_event_id: Optional[str] = None,
        source_object_id: Optional[str] = None,
    ) -> "DomainTransition":
        return cls(
            kind=TransitionKind.IGNORED,
            reason=reason,
            event_type=event_type,
            source_event_id=source_event_id,
            source_object_id=source_object_id,
        )

    @property
    def is_ignored(self) -> bool:
        return self.kind == TransitionKind.IGNORED

# ============================================================================
# SUBSCRIPTION RECORD (subscriptions collection, one document per company)
# ============================================================================

class SubscriptionRecord(BaseModel):
    company_id: str
    is_subscribed: bool = False
    expiration_date: Optional[datetime] = None
    plan: Optional[PlanTier] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    last_event_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_session_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    last_invoice_id: Optional[str] = None
    last_payment_date: Optional[datetime] = None

    model_config = {"extra": "ignore"}

class WebhookResult(BaseModel):
    status: WebhookStatus
    message: str
    details: dict = Field(default_factory=dict)
