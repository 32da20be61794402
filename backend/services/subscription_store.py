"""MongoDB access for the reconciliation engine.

Collections:
- users:         {email, company_id, ...}   read-only here
- subscriptions: {company_id, is_subscribed, expiration_date, plan,
                  created_at, updated_at, last_event_id, stripe_*_id, ...}
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from services.webhook_errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """users lookup + atomic subscription upsert."""

    def __init__(self, get_db: Callable[[], Any]):
        self._get_db = get_db

    def _db(self):
        db = self._get_db()
        if db is None:
            raise CollaboratorUnavailable("mongodb", "database is not connected")
        return db

    async def find_company_id_by_email(self, email: str) -> Optional[str]:
        """First user (insertion order) whose email matches exactly."""
        db = self._db()
        try:
            user = await db.users.find_one(
                {"email": email},
                {"_id": 0, "company_id": 1},
                sort=[("_id", ASCENDING)],
            )
        except PyMongoError as e:
            logger.error("Error getting company_id from email: %s", e)
            raise CollaboratorUnavailable("mongodb", str(e)) from e
        if not user:
            return None
        return user.get("company_id") or None

    async def upsert_subscription(self, company_id: str, fields: Dict[str, Any], now: datetime) -> None:
        """Create-or-merge in one update_one.

        $set carries the merge fields, $max keeps updated_at monotonic and
        $setOnInsert writes created_at only when the document is created.
        """
        db = self._db()
        update = {
            "$set": fields,
            "$max": {"updated_at": now},
            "$setOnInsert": {"company_id": company_id, "created_at": now},
        }
        try:
            try:
                await db.subscriptions.update_one({"company_id": company_id}, update, upsert=True)
            except DuplicateKeyError:
                # Lost an insert race on the unique company_id index; the document exists now
                logger.info("Subscription upsert race for company %s - reissuing update", company_id)
                await db.subscriptions.update_one({"company_id": company_id}, update, upsert=True)
        except PyMongoError as e:
            logger.error("Error updating subscription for company %s: %s", company_id, e)
            raise CollaboratorUnavailable("mongodb", str(e)) from e
