from datetime import date
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel

from fleetdesk.models.money import Currency


class GroupBy(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ReportSummary(BaseModel):
    """Totals over a set of journeys, canonical currency."""
    total_drives: int = 0
    total_amount: float = 0.0
    total_expenses: float = 0.0
    total_paid: float = 0.0
    net_profit: float = 0.0


class ReportBucket(ReportSummary):
    period: str


class ReportResponse(BaseModel):
    period: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: Currency
    summary: ReportSummary
    group_by: Optional[GroupBy] = None
    breakdown: Optional[List[ReportBucket]] = None
