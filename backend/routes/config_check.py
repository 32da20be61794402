"""Configuration diagnostics.

GET /api/config/check - which settings are present. Values are never echoed,
only booleans, so the endpoint is safe to expose to deploy checks.
"""
from fastapi import APIRouter
from database import database
from services.billing_config import (
    get_environment,
    get_stripe_secret_key,
    get_webhook_secret,
    is_development_mode,
    get_mongo_settings,
)
from services.plan_registry import PlanRegistry
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("/check")
async def config_check():
    mongo = get_mongo_settings()
    product_ids = PlanRegistry.from_env().configured_tiers()
    report = {
        "environment": get_environment(),
        "stripeConfigured": bool(get_stripe_secret_key()),
        "webhookSecretConfigured": bool(get_webhook_secret()),
        "unsignedWebhooksAllowed": is_development_mode(),
        "databaseConfigured": bool(mongo["mongo_url"] and mongo["db_name"]),
        "databaseConnected": database.is_connected(),
        "productIdsConfigured": product_ids,
    }
    if not all(product_ids.values()):
        logger.warning("CONFIG_CHECK missing product ids: %s", [t for t, ok in product_ids.items() if not ok])
    return report
