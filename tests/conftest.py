from datetime import datetime, timezone

import pytest
import pytest_asyncio
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from fleetdesk.schemas.journey import JourneyCreate
from fleetdesk.services.journey_service import JourneyService
from fleetdesk.services.report_service import ReportService

TEST_DATABASE_NAME = "fleetdesk_test"


@pytest_asyncio.fixture
async def test_db():
    """In-memory MongoDB with the Motor API."""
    client = AsyncMongoMockClient()
    return client[TEST_DATABASE_NAME]


@pytest_asyncio.fixture
async def references(test_db):
    """A driver, truck, customer and user that journeys can point at."""
    ids = {
        "driver_id": ObjectId(),
        "truck_id": ObjectId(),
        "customer_id": ObjectId(),
        "user_id": ObjectId(),
    }
    await test_db["drivers"].insert_one({"_id": ids["driver_id"], "full_name": "Jean Bosco"})
    await test_db["trucks"].insert_one({"_id": ids["truck_id"], "plate_number": "RAD 123 A"})
    await test_db["customers"].insert_one({"_id": ids["customer_id"], "name": "Kigali Cement"})
    await test_db["users"].insert_one({"_id": ids["user_id"], "email": "ops@example.com"})
    return ids


@pytest.fixture
def journey_service(test_db) -> JourneyService:
    return JourneyService(test_db)


@pytest.fixture
def report_service(test_db) -> ReportService:
    return ReportService(test_db)


@pytest.fixture
def make_journey(references):
    """Build a JourneyCreate; keyword arguments override the defaults."""
    def _make(pay=None, **overrides) -> JourneyCreate:
        data = {
            "driver_id": references["driver_id"],
            "truck_id": references["truck_id"],
            "customer_id": references["customer_id"],
            "departure_city": "Kigali",
            "destination_city": "Kampala",
            "cargo": "Cement bags",
            "date": datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc),
            "pay": pay or {"total_amount": 1000, "paid_option": "installment"},
        }
        data.update(overrides)
        return JourneyCreate(**data)
    return _make
