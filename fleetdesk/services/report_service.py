"""
ReportService - roll journeys up into summaries in the canonical currency.

Windows are inclusive and built on UTC day boundaries. Each journey is
converted with the currency and exchange rate recorded on it, so a report
over old journeys does not move when rates change.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from fleetdesk.models.journey import Journey
from fleetdesk.models.money import CANONICAL_CURRENCY
from fleetdesk.repositories.journey_repo import JourneyRepository
from fleetdesk.schemas.report import GroupBy, ReportBucket, ReportResponse, ReportSummary
from fleetdesk.utils.journey_validation import ValidationFailed

logger = logging.getLogger(__name__)

ISO_WEEK_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")
YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

END_OF_DAY = time(23, 59, 59, 999000)


# ===== PERIODS =====

def parse_day(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationFailed(f"Invalid date '{value}', expected YYYY-MM-DD")


def day_bounds(start_day: date, end_day: Optional[date] = None) -> Tuple[datetime, datetime]:
    end_day = end_day or start_day
    start = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_day, END_OF_DAY, tzinfo=timezone.utc)
    return start, end


def iso_week_start(year: int, week: int) -> date:
    """Monday of ISO week `week`: week 1 is the one holding January 4th."""
    jan_4 = date(year, 1, 4)
    first_monday = jan_4 - timedelta(days=jan_4.weekday())
    return first_monday + timedelta(weeks=week - 1)


def iso_week_bounds(iso_week: str) -> Tuple[datetime, datetime]:
    match = ISO_WEEK_RE.match(iso_week or "")
    if not match:
        raise ValidationFailed(f"Invalid week '{iso_week}', expected YYYY-Www")

    year, week = int(match.group(1)), int(match.group(2))
    weeks_in_year = date(year, 12, 28).isocalendar()[1]
    if not 1 <= week <= weeks_in_year:
        raise ValidationFailed(f"Week {week} does not exist in {year}")

    start_day = iso_week_start(year, week)
    return day_bounds(start_day, start_day + timedelta(days=6))


def month_bounds(year_month: str) -> Tuple[datetime, datetime]:
    match = YEAR_MONTH_RE.match(year_month or "")
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationFailed(f"Invalid month '{year_month}', expected YYYY-MM")

    year, month = int(match.group(1)), int(match.group(2))
    first = date(year, month, 1)
    next_first = date(year + month // 12, month % 12 + 1, 1)
    return day_bounds(first, next_first - timedelta(days=1))


def period_key(moment: datetime, group_by: GroupBy) -> str:
    day = moment.astimezone(timezone.utc).date()
    if group_by == GroupBy.WEEK:
        year, week, _ = day.isocalendar()
        return f"{year}-W{week:02d}"
    if group_by == GroupBy.MONTH:
        return day.strftime("%Y-%m")
    return day.isoformat()


# ===== AGGREGATION =====

def aggregate(journeys: Iterable[Journey]) -> ReportSummary:
    """Sum journeys in canonical currency; net profit is cash received minus expenses."""
    summary = ReportSummary()
    for journey in journeys:
        summary.total_drives += 1
        summary.total_amount += journey.total_amount_canonical()
        summary.total_paid += journey.total_paid_canonical()
        summary.total_expenses += journey.total_expenses()
    summary.net_profit = summary.total_paid - summary.total_expenses
    return summary


def breakdown(journeys: Iterable[Journey], group_by: GroupBy) -> List[ReportBucket]:
    buckets: dict[str, List[Journey]] = {}
    for journey in journeys:
        buckets.setdefault(period_key(journey.date, group_by), []).append(journey)

    return [
        ReportBucket(period=key, **aggregate(buckets[key]).model_dump())
        for key in sorted(buckets)
    ]


class ReportService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.journeys = JourneyRepository(db)

    async def daily_report(
        self,
        day: date | str,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> ReportResponse:
        day = parse_day(day)
        start, end = day_bounds(day)
        return await self._window_report(day.isoformat(), start, end, truck_id, customer_id)

    async def weekly_report(
        self,
        iso_week: str,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> ReportResponse:
        start, end = iso_week_bounds(iso_week)
        return await self._window_report(iso_week, start, end, truck_id, customer_id)

    async def monthly_report(
        self,
        year_month: str,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> ReportResponse:
        start, end = month_bounds(year_month)
        return await self._window_report(year_month, start, end, truck_id, customer_id)

    async def custom_report(
        self,
        start_date: date | str,
        end_date: date | str,
        group_by: GroupBy = GroupBy.DAY,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> ReportResponse:
        first, last = parse_day(start_date), parse_day(end_date)
        if first > last:
            raise ValidationFailed("Start date must not be after end date")

        start, end = day_bounds(first, last)
        journeys = await self.journeys.find_for_report(start, end, truck_id, customer_id)
        logger.info(
            "Custom report %s..%s by %s: %s journeys",
            first, last, group_by.value, len(journeys)
        )
        return ReportResponse(
            start_date=first,
            end_date=last,
            currency=CANONICAL_CURRENCY,
            summary=aggregate(journeys),
            group_by=group_by,
            breakdown=breakdown(journeys, group_by),
        )

    async def summary(
        self,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> ReportResponse:
        journeys = await self.journeys.find_for_report(truck_id=truck_id, customer_id=customer_id)
        return ReportResponse(
            period="all",
            currency=CANONICAL_CURRENCY,
            summary=aggregate(journeys),
        )

    async def _window_report(
        self,
        period: str,
        start: datetime,
        end: datetime,
        truck_id: Optional[ObjectId],
        customer_id: Optional[ObjectId]
    ) -> ReportResponse:
        journeys = await self.journeys.find_for_report(start, end, truck_id, customer_id)
        logger.info("Report %s: %s journeys", period, len(journeys))
        return ReportResponse(
            period=period,
            start_date=start.date(),
            end_date=end.date(),
            currency=CANONICAL_CURRENCY,
            summary=aggregate(journeys),
        )
