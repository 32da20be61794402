"""Entity Resolver - payer email -> owning company id."""
import logging
from typing import Optional

from services.capabilities import LookupEntity

logger = logging.getLogger(__name__)


class EntityResolver:
    """Exact, case-sensitive email match against the users collection.

    A payer without a matching account is an expected outcome (None), not an
    error. When several users share an email the store's first result wins;
    that ambiguity is not resolved here.
    """

    def __init__(self, lookup_entity: LookupEntity):
        self._lookup_entity = lookup_entity

    async def resolve(self, email: Optional[str]) -> Optional[str]:
        if not email:
            return None
        company_id = await self._lookup_entity(email)
        if not company_id:
            logger.info("No company found for payer email %s", email)
            return None
        return company_id
