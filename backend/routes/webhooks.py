"""Webhook Routes - Stripe subscription webhooks.

POST /webhook            - Stripe webhook endpoint (URL registered in the Stripe dashboard)
POST /api/webhook/stripe - Alias under the /api prefix

Only a bad signature or an undecodable body is answered with 400. Every
other outcome, including unknown event types and failed lookups, is a 200
so Stripe does not keep redelivering events this service will never apply.
"""
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Request, Header, status
from services.stripe_webhook_service import StripeWebhookService, build_webhook_service
from services.webhook_errors import AuthenticationFailed, MalformedPayload
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


@lru_cache(maxsize=1)
def get_webhook_service() -> StripeWebhookService:
    """Process-wide service, built on first delivery after env is loaded."""
    return build_webhook_service()


async def _handle_stripe_webhook(
    request: Request,
    stripe_signature: str,
    service: StripeWebhookService,
):
    """
    Core Stripe webhook handler.

    Handled Events:
    - checkout.session.completed
    - customer.subscription.created
    - customer.subscription.updated
    - customer.subscription.deleted
    - invoice.payment_succeeded
    """
    payload = await request.body()

    try:
        result = await service.process_webhook(payload=payload, signature=stripe_signature)
    except (AuthenticationFailed, MalformedPayload) as e:
        logger.warning("Stripe webhook rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")
    except Exception as e:
        logger.exception(f"Stripe webhook error: {e}")
        # Return 200 to prevent Stripe retries - we've logged the error
        return {"received": True, "status": "error", "message": str(e)}

    return {
        "received": True,
        "status": result.status.value,
        "message": result.message,
        "details": result.details,
    }


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    service: StripeWebhookService = Depends(get_webhook_service),
):
    """Handle Stripe webhooks at /webhook"""
    return await _handle_stripe_webhook(request, stripe_signature, service)


@router.post("/api/webhook/stripe")
async def stripe_webhook_alias(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    service: StripeWebhookService = Depends(get_webhook_service),
):
    """Handle Stripe webhooks at /api/webhook/stripe (alias)"""
    return await _handle_stripe_webhook(request, stripe_signature, service)
