from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import logging
from pathlib import Path

from services.billing_config import get_mongo_settings

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        settings = get_mongo_settings()
        if not settings["mongo_url"] or not settings["db_name"]:
            # Webhooks are still acknowledged; writes report CollaboratorUnavailable
            logger.error("MONGO_URL / DB_NAME not set - running without a database")
            return
        try:
            self.client = AsyncIOMotorClient(settings["mongo_url"])
            self.db = self.client[settings["db_name"]]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {settings['db_name']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None

    def get_db(self):
        return self.db

    def is_connected(self) -> bool:
        return self.db is not None

    async def _create_indexes(self):
        """Indexes for the email lookup and the one-document-per-company upsert."""
        await self.db.users.create_index("email")
        # Unique: concurrent first deliveries for one company must not insert twice
        await self.db.subscriptions.create_index("company_id", unique=True)
        logger.info("MongoDB indexes ensured")

# Global database instance
database = Database()
