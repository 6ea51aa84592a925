from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime
from fleetdesk.models.journey import JourneyStatus, PaidOption
from fleetdesk.models.money import Currency
from fleetdesk.models.base import PyObjectId


class AttachmentBase(BaseModel):
    filename: Optional[str] = None
    path: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)

    model_config = {"from_attributes": True}


class InstallmentBase(BaseModel):
    amount: float = Field(ge=0)
    date: Optional[datetime] = None
    note: Optional[str] = Field(default=None, max_length=200)
    attachment: Optional[AttachmentBase] = None

    model_config = {"from_attributes": True}


class ExpenseBase(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    amount: float = Field(ge=0)
    note: Optional[str] = Field(default=None, max_length=200)
    attachment: Optional[AttachmentBase] = None

    model_config = {"from_attributes": True}


class PaymentCreate(BaseModel):
    total_amount: float = Field(ge=0)
    currency: Currency = Currency.RWF
    exchange_rate: float = Field(default=1.0, ge=0.01)
    paid_option: PaidOption
    attachment: Optional[AttachmentBase] = None
    installments: List[InstallmentBase] = []


class PaymentUpdate(BaseModel):
    """Every field optional; missing fields keep their stored value."""
    total_amount: Optional[float] = Field(default=None, ge=0)
    currency: Optional[Currency] = None
    exchange_rate: Optional[float] = Field(default=None, ge=0.01)
    paid_option: Optional[PaidOption] = None
    attachment: Optional[AttachmentBase] = None
    # Required to drop a full payment proof when switching to installments
    discard_attachment: bool = False
    installments: Optional[List[InstallmentBase]] = None


class JourneyCreate(BaseModel):
    driver_id: PyObjectId
    truck_id: PyObjectId
    customer_id: PyObjectId
    departure_city: str = Field(min_length=1, max_length=100)
    destination_city: str = Field(min_length=1, max_length=100)
    cargo: str = Field(min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)
    date: Optional[datetime] = None
    status: JourneyStatus = JourneyStatus.STARTED
    expenses: List[ExpenseBase] = []
    pay: PaymentCreate

    model_config = {"arbitrary_types_allowed": True}


class JourneyUpdate(BaseModel):
    """Partial update. Only fields that are set are applied."""
    driver_id: Optional[PyObjectId] = None
    truck_id: Optional[PyObjectId] = None
    customer_id: Optional[PyObjectId] = None
    departure_city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    destination_city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    cargo: Optional[str] = Field(default=None, min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)
    date: Optional[datetime] = None
    status: Optional[JourneyStatus] = None
    expenses: Optional[List[ExpenseBase]] = None
    pay: Optional[PaymentUpdate] = None

    model_config = {"arbitrary_types_allowed": True}


class InstallmentAdd(InstallmentBase):
    """Single installment appended to an installment-paid journey."""
    pass


class ExpenseAdd(ExpenseBase):
    pass


def strip_attachments(data):
    """
    Drop client-supplied attachments from a JSON request body.

    Proof references only come from FileStorage.save; with the attachment
    gone the merge keeps whatever proof is already stored.
    """
    pay = getattr(data, "pay", None)
    if pay is not None:
        pay.attachment = None
        for installment in pay.installments or []:
            installment.attachment = None
    for expense in getattr(data, "expenses", None) or []:
        expense.attachment = None
    if isinstance(data, (InstallmentBase, ExpenseBase)):
        data.attachment = None
    return data


class JourneyFilters(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    search: str = Field(default="", max_length=100)
    status: Optional[JourneyStatus] = None
    truck_id: Optional[PyObjectId] = None
    driver_id: Optional[PyObjectId] = None
    customer_id: Optional[PyObjectId] = None
    departure_city: str = Field(default="", max_length=100)
    destination_city: str = Field(default="", max_length=100)
    paid_option: Optional[PaidOption] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    sort_by: str = Field(
        default="date",
        pattern="^(date|total_amount|balance|departure_city|destination_city)$"
    )
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")

    model_config = {"arbitrary_types_allowed": True}


# ===== RESPONSES =====

class InstallmentResponse(InstallmentBase):
    date: datetime


class PaymentResponse(BaseModel):
    total_amount: float
    currency: Currency
    exchange_rate: float
    paid_option: PaidOption
    attachment: Optional[AttachmentBase] = None
    installments: List[InstallmentResponse]
    total_paid: float
    remaining: float
    is_fully_paid: bool


class JourneyResponse(BaseModel):
    id: str
    driver_id: str
    truck_id: str
    customer_id: str
    created_by: str
    departure_city: str
    destination_city: str
    cargo: str
    notes: Optional[str] = None
    date: datetime
    status: JourneyStatus
    pay: PaymentResponse
    expenses: List[ExpenseBase]
    total_expenses: float
    total_amount_canonical: float
    total_paid_canonical: float
    balance: float
    version: int
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class JourneyListResponse(BaseModel):
    journeys: List[JourneyResponse]
    pagination: Pagination


class JourneyStats(BaseModel):
    """Counts plus monetary totals in the canonical currency."""
    total: int
    started: int
    completed: int
    full_payment: int
    installment_payment: int
    recent_journeys: int
    total_amount: float
    total_paid: float
    total_expenses: float
    net_profit: float
    currency: Currency
