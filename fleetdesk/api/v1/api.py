from fastapi import APIRouter
from fleetdesk.api.v1.endpoints import journeys, reports

api_router = APIRouter()
api_router.include_router(journeys.router)
api_router.include_router(reports.router)
