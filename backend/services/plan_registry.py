"""Plan Registry - maps Stripe catalog identifiers and plan names to plan tiers.

Three tiers, one Stripe product each:
- monthly   (STRIPE_PRODUCT_ID_MENSAL)
- quarterly (STRIPE_PRODUCT_ID_TRIMESTRAL)
- annual    (STRIPE_PRODUCT_ID_ANUAL)

Product ids are opaque tokens and are matched exactly. Plan names come from
humans (checkout metadata, admin tools) and are lower-cased before matching
against the locale aliases below.
"""
from typing import Dict, Iterable, Mapping, Optional
import logging

from models import PlanTier
from services.billing_config import get_product_ids

logger = logging.getLogger(__name__)


# ============================================================================
# PLAN NAME ALIASES - Portuguese and English spellings accepted
# ============================================================================
PLAN_NAME_ALIASES: Dict[str, PlanTier] = {
    "mensal": PlanTier.MONTHLY,
    "monthly": PlanTier.MONTHLY,
    "month": PlanTier.MONTHLY,
    "trimestral": PlanTier.QUARTERLY,
    "quarterly": PlanTier.QUARTERLY,
    "quarter": PlanTier.QUARTERLY,
    "anual": PlanTier.ANNUAL,
    "annual": PlanTier.ANNUAL,
    "yearly": PlanTier.ANNUAL,
    "year": PlanTier.ANNUAL,
}


class PlanRegistry:
    """Product id / plan name -> PlanTier lookups. Unknown input yields None."""

    def __init__(self, product_ids: Mapping[str, Iterable[str]]):
        self._product_to_tier: Dict[str, PlanTier] = {}
        for tier_name, ids in product_ids.items():
            tier = PlanTier(tier_name)
            for product_id in ids:
                if not product_id:
                    continue
                existing = self._product_to_tier.get(product_id)
                if existing and existing != tier:
                    logger.warning(
                        "Product id %s configured for both %s and %s - keeping %s",
                        product_id, existing.value, tier.value, existing.value,
                    )
                    continue
                self._product_to_tier[product_id] = tier

    @classmethod
    def from_env(cls) -> "PlanRegistry":
        return cls(get_product_ids())

    def get_plan_from_product_id(self, product_id: Optional[str]) -> Optional[PlanTier]:
        if not product_id or not isinstance(product_id, str):
            return None
        return self._product_to_tier.get(product_id)

    def get_plan_from_name(self, plan_name: Optional[str]) -> Optional[PlanTier]:
        if not plan_name or not isinstance(plan_name, str):
            return None
        return PLAN_NAME_ALIASES.get(plan_name.strip().lower())

    def configured_tiers(self) -> Dict[str, bool]:
        """Which tiers have at least one product id (used by the config check)."""
        configured = set(self._product_to_tier.values())
        return {tier.value: tier in configured for tier in PlanTier}
