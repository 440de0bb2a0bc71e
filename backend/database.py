from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import OperationFailure
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            # tz_aware so created_at/paid_at come back as aware UTC datetimes
            self.client = AsyncIOMotorClient(mongo_url, tz_aware=True)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for the sponsorship collections."""
        try:
            # Order ledger - creator order screen sorts by created_at
            await self.db.sponsor_orders.create_index("order_id", unique=True)
            await self.db.sponsor_orders.create_index([("creator_username", 1), ("created_at", -1)])
            await self.db.sponsor_orders.create_index([("creator_username", 1), ("status", 1)])
            # Codes are not unique by construction, lookups pick the newest
            await self.db.sponsor_orders.create_index([("creator_username", 1), ("order_code", 1)])

            # Sponsorship ledger - one entry per (creator, content); the reconciler relies on this
            await self.db.sponsorship_ledger.create_index(
                [("creator_username", 1), ("content_id", 1)],
                unique=True
            )
            await self.db.sponsorship_ledger.create_index([("creator_username", 1), ("added_at", -1)])

            # Notification feed
            await self.db.creator_notifications.create_index("notification_id", unique=True)
            await self.db.creator_notifications.create_index(
                [("creator_username", 1), ("read", 1), ("created_at", -1)]
            )

            # Creator profiles (read only here)
            await self.db.creator_profiles.create_index("username", unique=True)
            logger.info("MongoDB indexes created/verified")
        except OperationFailure as e:
            # Indexes may already exist with different options, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()
