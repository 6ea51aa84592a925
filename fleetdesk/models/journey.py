"""
Journey model - a single truck trip with its payment and expense ledgers.

Design principles:
- Payment ledger and expenses are embedded, owned by the journey
- balance is a cache of total_paid (canonical) - total_expenses, rewritten
  together with every mutation and never set by callers
- Status: started → completed, guarded by full payment
- Expenses are recorded in the canonical currency
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from fleetdesk.models.base import MongoModel, PyObjectId, as_utc, utcnow
from fleetdesk.models.money import CANONICAL_CURRENCY, Currency, to_canonical
from fleetdesk.utils.journey_validation import (
    InvalidOperation,
    PaymentExceeded,
    PaymentIncomplete,
    ValidationFailed,
    exceeds,
    falls_short,
    sum_amounts,
    validate_non_negative,
    validate_not_future,
)


class JourneyStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"


class PaidOption(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"


# Embedded documents don't need MongoModel (no separate _id)
class Attachment(BaseModel):
    """Reference to a stored proof file, never the bytes themselves."""
    filename: Optional[str] = None
    path: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None

    def is_complete(self) -> bool:
        return bool(self.filename and self.path and self.mimetype) and self.size is not None


def is_complete_attachment(attachment: Optional[Attachment]) -> bool:
    return attachment is not None and attachment.is_complete()


def keep_attachment(
    incoming: Optional[Attachment],
    existing: Optional[Attachment]
) -> Optional[Attachment]:
    """A complete incoming attachment replaces; anything less keeps the stored one."""
    if is_complete_attachment(incoming):
        return incoming
    if is_complete_attachment(existing):
        return existing
    return None


class Installment(BaseModel):
    amount: float
    date: datetime = Field(default_factory=utcnow)
    note: Optional[str] = None
    attachment: Optional[Attachment] = None

    @field_validator("date")
    @classmethod
    def _utc_date(cls, value: datetime) -> datetime:
        return as_utc(value)


class Expense(BaseModel):
    title: str
    amount: float
    note: Optional[str] = None
    attachment: Optional[Attachment] = None


class PaymentLedger(BaseModel):
    """
    What the customer owes for a journey and what has been paid so far.

    Amounts here are in the ledger's own currency; conversion to the
    canonical currency happens on the Journey.

    Invariants:
    - paid_option == full => installments == []
    - sum(installments.amount) <= total_amount
    """
    total_amount: float
    currency: Currency = Currency.RWF
    exchange_rate: float = 1.0
    paid_option: PaidOption
    attachment: Optional[Attachment] = None
    installments: List[Installment] = []

    def installments_total(self) -> float:
        return sum_amounts(self.installments)

    def total_paid(self) -> float:
        if self.paid_option == PaidOption.FULL:
            return self.total_amount
        return self.installments_total()

    def remaining(self) -> float:
        return max(self.total_amount - self.total_paid(), 0.0)

    def is_fully_paid(self) -> bool:
        return not falls_short(self.total_paid(), self.total_amount)

    def add_installment(self, installment: Installment) -> "PaymentLedger":
        if self.paid_option != PaidOption.INSTALLMENT:
            raise InvalidOperation("Cannot add installment to non-installment payment")
        validate_non_negative(installment.amount, "Installment amount")

        current_total = self.installments_total()
        if exceeds(current_total + installment.amount, self.total_amount):
            raise PaymentExceeded(self.total_amount, current_total, installment.amount)

        self.installments.append(installment)
        return self

    def switch_to_full(self, attachment: Optional[Attachment] = None) -> "PaymentLedger":
        self.paid_option = PaidOption.FULL
        self.installments = []
        self.attachment = keep_attachment(attachment, self.attachment)
        return self

    def switch_to_installment(
        self,
        discard_attachment: bool = False,
        installments: Optional[List[Installment]] = None
    ) -> "PaymentLedger":
        if self.attachment is not None and not discard_attachment:
            raise InvalidOperation(
                "Full payment proof is attached; discard it explicitly before "
                "switching to installments"
            )
        self.attachment = None
        self.paid_option = PaidOption.INSTALLMENT
        self.installments = list(installments or [])
        return self

    def check_invariants(self, now: datetime) -> None:
        validate_non_negative(self.total_amount, "Total amount")
        if self.exchange_rate <= 0:
            raise ValidationFailed("Exchange rate must be greater than 0")

        if self.paid_option == PaidOption.FULL:
            if self.installments:
                raise InvalidOperation("Full payment cannot carry installments")
            return

        if self.attachment is not None:
            raise InvalidOperation("Installment payment cannot carry a full payment proof")
        for installment in self.installments:
            validate_non_negative(installment.amount, "Installment amount")
            validate_not_future(installment.date, now, "Installment date")

        total = self.installments_total()
        if exceeds(total, self.total_amount):
            raise PaymentExceeded(self.total_amount, total, 0.0)


class Journey(MongoModel):
    # References
    driver_id: PyObjectId
    truck_id: PyObjectId
    customer_id: PyObjectId
    created_by: PyObjectId

    # Trip
    departure_city: str
    destination_city: str
    cargo: str
    notes: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)
    status: JourneyStatus = JourneyStatus.STARTED

    pay: PaymentLedger
    expenses: List[Expense] = []

    # Derived cache, see recompute_balance
    balance: float = 0.0

    version: int = 1

    @field_validator("date", "created_at", "updated_at")
    @classmethod
    def _utc_datetimes(cls, value: datetime) -> datetime:
        return as_utc(value)

    # ===== DERIVED FIGURES (canonical currency) =====

    def total_expenses(self) -> float:
        return sum_amounts(self.expenses)

    def total_amount_canonical(self) -> float:
        return to_canonical(self.pay.total_amount, self.pay.currency, self.pay.exchange_rate)

    def total_paid_canonical(self) -> float:
        return to_canonical(self.pay.total_paid(), self.pay.currency, self.pay.exchange_rate)

    def remaining_canonical(self) -> float:
        return max(self.total_amount_canonical() - self.total_paid_canonical(), 0.0)

    def is_fully_paid(self) -> bool:
        return self.pay.is_fully_paid()

    def compute_balance(self) -> float:
        return self.total_paid_canonical() - self.total_expenses()

    def recompute_balance(self) -> float:
        self.balance = self.compute_balance()
        return self.balance

    # ===== STATE TRANSITIONS =====

    def ensure_can_complete(self) -> None:
        required = self.total_amount_canonical()
        paid = self.total_paid_canonical()
        if falls_short(paid, required):
            raise PaymentIncomplete(required, paid, CANONICAL_CURRENCY.value)

    def mark_completed(self) -> None:
        if self.status == JourneyStatus.COMPLETED:
            return
        self.ensure_can_complete()
        self.status = JourneyStatus.COMPLETED

    def change_status(self, status: JourneyStatus) -> None:
        if status == self.status:
            return
        if status == JourneyStatus.COMPLETED:
            self.mark_completed()
        else:
            raise InvalidOperation("A completed journey cannot be reopened")

    # ===== MUTATIONS =====

    def add_expense(self, expense: Expense) -> "Journey":
        validate_non_negative(expense.amount, "Expense amount")
        self.expenses.append(expense)
        self.recompute_balance()
        return self

    def add_installment(self, installment: Installment) -> "Journey":
        self.pay.add_installment(installment)
        self.recompute_balance()
        return self

    def check_invariants(self, now: Optional[datetime] = None) -> None:
        """Save-time validation; raises before anything is written."""
        now = now or utcnow()
        validate_not_future(self.date, now, "Journey date")
        for expense in self.expenses:
            validate_non_negative(expense.amount, "Expense amount")
        self.pay.check_invariants(now)
