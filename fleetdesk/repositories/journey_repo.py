"""
JourneyRepository - persistence for journeys.

Every write after the insert goes through save_journey, which replaces the
mutable part of the document only if the stored version still matches the
one the caller read. The balance travels in the same $set as the ledger
change it derives from.
"""

import math
import re
from datetime import datetime
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from bson import ObjectId

from fleetdesk.models.base import to_document, to_storage
from fleetdesk.models.journey import Journey
from fleetdesk.schemas.journey import JourneyFilters

SORT_FIELDS = {
    "date": "date",
    "total_amount": "pay.total_amount",
    "balance": "balance",
    "departure_city": "departure_city",
    "destination_city": "destination_city",
}


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


class JourneyRepository:
    """Journey database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["journeys"]

    async def insert_journey(self, journey: Journey) -> Journey:
        doc = to_document(journey.model_dump(by_alias=True))
        await self.collection.insert_one(doc)
        return journey

    async def get_journey(self, journey_id: ObjectId) -> Optional[Journey]:
        doc = await self.collection.find_one({"_id": ObjectId(journey_id)})
        if doc:
            return Journey(**doc)
        return None

    async def save_journey(self, journey: Journey, expected_version: int) -> Optional[Journey]:
        """
        Conditional replace of a journey read at expected_version.

        Returns the stored journey, or None when someone else wrote first.
        """
        doc = to_document(journey.model_dump(by_alias=True, exclude={"id", "created_at"}))
        result = await self.collection.find_one_and_update(
            {
                "_id": journey.id,
                "version": expected_version  # Optimistic lock
            },
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )
        if result:
            return Journey(**result)
        return None

    async def delete_journey(self, journey_id: ObjectId) -> bool:
        result = await self.collection.delete_one({"_id": ObjectId(journey_id)})
        return result.deleted_count > 0

    async def count(self, query: Optional[dict] = None) -> int:
        return await self.collection.count_documents(query or {})

    async def find_journeys(self, query: Optional[dict] = None) -> List[Journey]:
        docs = await self.collection.find(query or {}).sort("date", 1).to_list(None)
        return [Journey(**doc) for doc in docs]

    async def find_for_report(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> List[Journey]:
        """Journeys dated within [start, end], both inclusive, optionally filtered."""
        query: dict = {}
        if start is not None or end is not None:
            query["date"] = {}
            if start is not None:
                query["date"]["$gte"] = to_storage(start)
            if end is not None:
                query["date"]["$lte"] = to_storage(end)
        if truck_id:
            query["truck_id"] = ObjectId(truck_id)
        if customer_id:
            query["customer_id"] = ObjectId(customer_id)
        return await self.find_journeys(query)

    async def list_journeys(self, filters: JourneyFilters) -> Tuple[List[Journey], int]:
        query = self.build_query(filters)
        direction = -1 if filters.sort_order == "desc" else 1
        skip = (filters.page - 1) * filters.limit

        cursor = (
            self.collection.find(query)
            .sort(SORT_FIELDS[filters.sort_by], direction)
            .skip(skip)
            .limit(filters.limit)
        )
        docs = await cursor.to_list(None)
        total = await self.collection.count_documents(query)
        return [Journey(**doc) for doc in docs], total

    @staticmethod
    def build_query(filters: JourneyFilters) -> dict:
        query: dict = {}

        if filters.search:
            query["$or"] = [
                {"cargo": _contains(filters.search)},
                {"departure_city": _contains(filters.search)},
                {"destination_city": _contains(filters.search)},
                {"notes": _contains(filters.search)},
            ]
        if filters.status:
            query["status"] = filters.status.value
        if filters.truck_id:
            query["truck_id"] = ObjectId(filters.truck_id)
        if filters.driver_id:
            query["driver_id"] = ObjectId(filters.driver_id)
        if filters.customer_id:
            query["customer_id"] = ObjectId(filters.customer_id)
        if filters.departure_city:
            query["departure_city"] = _contains(filters.departure_city)
        if filters.destination_city:
            query["destination_city"] = _contains(filters.destination_city)
        if filters.paid_option:
            query["pay.paid_option"] = filters.paid_option.value

        if filters.start_date or filters.end_date:
            query["date"] = {}
            if filters.start_date:
                query["date"]["$gte"] = to_storage(filters.start_date)
            if filters.end_date:
                query["date"]["$lte"] = to_storage(filters.end_date)

        return query


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
