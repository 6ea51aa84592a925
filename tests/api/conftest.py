import asyncio

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from fleetdesk.api.v1.endpoints.journeys import get_file_storage
from fleetdesk.core.auth import CurrentUser, get_current_user
from fleetdesk.db.mongo import get_db
from fleetdesk.main import app
from fleetdesk.services.file_service import FileStorage


@pytest.fixture
def api_db():
    return AsyncMongoMockClient()["fleetdesk_api_test"]


@pytest.fixture
def api_refs(api_db):
    """Seed one driver, truck, customer and user; return their ids as strings."""
    ids = {name: ObjectId() for name in ("driver_id", "truck_id", "customer_id", "user_id")}

    async def seed():
        await api_db["drivers"].insert_one({"_id": ids["driver_id"], "full_name": "Jean Bosco"})
        await api_db["trucks"].insert_one({"_id": ids["truck_id"], "plate_number": "RAD 123 A"})
        await api_db["customers"].insert_one({"_id": ids["customer_id"], "name": "Kigali Cement"})
        await api_db["users"].insert_one({"_id": ids["user_id"], "email": "ops@example.com"})

    asyncio.run(seed())
    return {name: str(value) for name, value in ids.items()}


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client(api_db, api_refs, upload_dir):
    """TestClient without lifespan; database, auth and uploads are overridden."""
    app.dependency_overrides[get_db] = lambda: api_db
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(
        id=api_refs["user_id"], email="ops@example.com"
    )
    app.dependency_overrides[get_file_storage] = lambda: FileStorage(str(upload_dir))
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def journey_payload(api_refs):
    def _payload(**overrides) -> dict:
        payload = {
            "driver_id": api_refs["driver_id"],
            "truck_id": api_refs["truck_id"],
            "customer_id": api_refs["customer_id"],
            "departure_city": "Kigali",
            "destination_city": "Kampala",
            "cargo": "Cement bags",
            "date": "2025-03-10T08:00:00Z",
            "pay": {"total_amount": 1000, "paid_option": "installment"},
        }
        payload.update(overrides)
        return payload
    return _payload
