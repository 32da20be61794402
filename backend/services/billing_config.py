"""Billing configuration - environment-driven settings for the webhook service.

ENVIRONMENT=production selects the *_PROD Stripe keys, anything else the *_DEV
keys. An explicit STRIPE_WEBHOOK_SECRET / STRIPE_SECRET_KEY always wins.

Unsigned webhook payloads are only ever accepted when no webhook secret is
configured AND ALLOW_UNSIGNED_WEBHOOKS is on AND the deployment is not
production.
"""
import os
from typing import Dict, List


def _bool_env(name: str, default: bool = False) -> bool:
    raw = str(os.environ.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def get_environment() -> str:
    return _env("ENVIRONMENT").lower() or "development"


def is_production() -> bool:
    return get_environment() == "production"


def _mode_suffix() -> str:
    return "PROD" if is_production() else "DEV"


def get_stripe_secret_key() -> str:
    explicit = _env("STRIPE_SECRET_KEY")
    if explicit:
        return explicit
    return _env(f"STRIPE_SECRET_KEY_{_mode_suffix()}")


def get_webhook_secret() -> str:
    explicit = _env("STRIPE_WEBHOOK_SECRET")
    if explicit:
        return explicit
    return _env(f"STRIPE_WEBHOOK_SECRET_{_mode_suffix()}")


def is_development_mode() -> bool:
    """True only when unsigned payloads are explicitly allowed outside production."""
    if is_production():
        return False
    return _bool_env("ALLOW_UNSIGNED_WEBHOOKS", False)


# Env var per plan tier (values are tier names from models.PlanTier)
PRODUCT_ID_ENV_VARS = {
    "monthly": "STRIPE_PRODUCT_ID_MENSAL",
    "quarterly": "STRIPE_PRODUCT_ID_TRIMESTRAL",
    "annual": "STRIPE_PRODUCT_ID_ANUAL",
}


def get_product_ids() -> Dict[str, List[str]]:
    """Configured Stripe product ids per tier. Comma-separated values allow aliases."""
    return {
        tier: [p.strip() for p in _env(var).split(",") if p.strip()]
        for tier, var in PRODUCT_ID_ENV_VARS.items()
    }


def get_mongo_settings() -> Dict[str, str]:
    return {"mongo_url": _env("MONGO_URL"), "db_name": _env("DB_NAME")}
