from datetime import date
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, status

from fleetdesk.core.auth import CurrentUser, get_current_user
from fleetdesk.db.mongo import get_db
from fleetdesk.schemas.report import GroupBy, ReportResponse
from fleetdesk.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


class ReportFilters:
    """truck_id / customer_id query parameters shared by every report."""

    def __init__(self, truck_id: Optional[str] = None, customer_id: Optional[str] = None):
        self.truck_id = self._oid(truck_id, "truck")
        self.customer_id = self._oid(customer_id, "customer")

    @staticmethod
    def _oid(value: Optional[str], label: str) -> Optional[ObjectId]:
        if not value:
            return None
        if not ObjectId.is_valid(value):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid {label} ID format"
            )
        return ObjectId(value)


@router.get("/daily/{day}", response_model=ReportResponse)
async def daily_report(
    day: str,
    filters: ReportFilters = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    return await ReportService(db).daily_report(day, filters.truck_id, filters.customer_id)


@router.get("/weekly/{week}", response_model=ReportResponse)
async def weekly_report(
    week: str,
    filters: ReportFilters = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    """ISO week, e.g. 2026-W42."""
    return await ReportService(db).weekly_report(week, filters.truck_id, filters.customer_id)


@router.get("/monthly/{month}", response_model=ReportResponse)
async def monthly_report(
    month: str,
    filters: ReportFilters = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    return await ReportService(db).monthly_report(month, filters.truck_id, filters.customer_id)


@router.get("/custom", response_model=ReportResponse)
async def custom_report(
    start_date: date,
    end_date: date,
    group_by: GroupBy = GroupBy.DAY,
    filters: ReportFilters = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    """Totals over [start_date, end_date] with a per day/week/month breakdown."""
    return await ReportService(db).custom_report(
        start_date, end_date, group_by, filters.truck_id, filters.customer_id
    )


@router.get("/summary", response_model=ReportResponse)
async def summary_report(
    filters: ReportFilters = Depends(),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    return await ReportService(db).summary(filters.truck_id, filters.customer_id)
