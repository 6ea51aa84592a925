from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId


class ReferenceRepository:
    """Read-only lookups for the entities a journey points at."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def _find_by_id(self, collection: str, entity_id: ObjectId) -> Optional[dict]:
        return await self.db[collection].find_one({"_id": ObjectId(entity_id)})

    async def find_driver_by_id(self, driver_id: ObjectId) -> Optional[dict]:
        return await self._find_by_id("drivers", driver_id)

    async def find_truck_by_id(self, truck_id: ObjectId) -> Optional[dict]:
        return await self._find_by_id("trucks", truck_id)

    async def find_customer_by_id(self, customer_id: ObjectId) -> Optional[dict]:
        return await self._find_by_id("customers", customer_id)
