"""
JourneyService - create, update and settle journeys.

Every mutation is read -> mutate in memory -> validate -> conditional write.
Two layers keep concurrent mutations of one journey from interleaving:
- an in-process asyncio.Lock per journey id
- the version-guarded write in JourneyRepository.save_journey, retried
  from a fresh read when another process got there first
"""

import asyncio
import logging
from datetime import timedelta
from typing import Callable, List, Optional, Tuple
from weakref import WeakValueDictionary

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from fleetdesk.core.config import settings
from fleetdesk.models.base import as_utc, utcnow
from fleetdesk.models.journey import (
    Attachment,
    Expense,
    Installment,
    Journey,
    JourneyStatus,
    PaidOption,
    PaymentLedger,
    keep_attachment,
)
from fleetdesk.models.money import CANONICAL_CURRENCY
from fleetdesk.repositories.journey_repo import JourneyRepository
from fleetdesk.repositories.reference_repo import ReferenceRepository
from fleetdesk.schemas.journey import (
    AttachmentBase,
    ExpenseAdd,
    ExpenseBase,
    InstallmentAdd,
    InstallmentBase,
    JourneyCreate,
    JourneyFilters,
    JourneyStats,
    JourneyUpdate,
    PaymentUpdate,
)
from fleetdesk.utils.journey_validation import (
    InvalidOperation,
    JourneyError,
    NotFound,
    WriteConflict,
)

logger = logging.getLogger(__name__)

TRIP_FIELDS = ("departure_city", "destination_city", "cargo", "notes")
REFERENCE_FIELDS = ("driver_id", "truck_id", "customer_id")
RECENT_DAYS = 30


class JourneyLocks:
    """One asyncio.Lock per journey id, dropped once nobody holds it."""

    def __init__(self):
        self._locks: WeakValueDictionary = WeakValueDictionary()

    def for_journey(self, journey_id) -> asyncio.Lock:
        key = str(journey_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


journey_locks = JourneyLocks()


# ===== DTO -> MODEL HELPERS =====

def _attachment(data: Optional[AttachmentBase]) -> Optional[Attachment]:
    if data is None:
        return None
    return Attachment(**data.model_dump())


def _new_installment(data: InstallmentBase, previous: Optional[Installment] = None) -> Installment:
    if data.date is not None:
        date = as_utc(data.date)
    elif previous is not None:
        date = previous.date
    else:
        date = utcnow()
    return Installment(
        amount=data.amount,
        date=date,
        note=data.note,
        attachment=keep_attachment(
            _attachment(data.attachment),
            previous.attachment if previous else None
        )
    )


def _new_expense(data: ExpenseBase, previous: Optional[Expense] = None) -> Expense:
    return Expense(
        title=data.title,
        amount=data.amount,
        note=data.note,
        attachment=keep_attachment(
            _attachment(data.attachment),
            previous.attachment if previous else None
        )
    )


def merge_installments(
    existing: List[Installment],
    incoming: List[InstallmentBase]
) -> List[Installment]:
    """
    Replace installments by index.

    An incoming installment without a complete attachment keeps the proof
    stored at the same index.
    """
    return [
        _new_installment(item, existing[index] if index < len(existing) else None)
        for index, item in enumerate(incoming)
    ]


def merge_expenses(existing: List[Expense], incoming: List[ExpenseBase]) -> List[Expense]:
    return [
        _new_expense(item, existing[index] if index < len(existing) else None)
        for index, item in enumerate(incoming)
    ]


def merge_payment(ledger: PaymentLedger, update: PaymentUpdate) -> None:
    """Apply a partial payment update in place."""
    if update.total_amount is not None:
        ledger.total_amount = update.total_amount
    if update.currency is not None:
        ledger.currency = update.currency
    if update.exchange_rate is not None:
        ledger.exchange_rate = update.exchange_rate

    target = update.paid_option or ledger.paid_option

    if target == PaidOption.FULL:
        ledger.switch_to_full(_attachment(update.attachment))
        return

    installments = ledger.installments
    if update.installments is not None:
        installments = merge_installments(ledger.installments, update.installments)

    if ledger.paid_option == PaidOption.FULL:
        ledger.switch_to_installment(
            discard_attachment=update.discard_attachment,
            installments=installments
        )
    else:
        ledger.installments = installments


def apply_update(journey: Journey, update: JourneyUpdate) -> None:
    """Merge a partial update into the journey; status goes last so the guard sees the result."""
    fields_set = update.model_fields_set

    for field in REFERENCE_FIELDS:
        value = getattr(update, field)
        if value is not None:
            setattr(journey, field, ObjectId(value))

    for field in TRIP_FIELDS:
        if field in fields_set:
            value = getattr(update, field)
            if value is not None or field == "notes":
                setattr(journey, field, value)

    if update.date is not None:
        journey.date = as_utc(update.date)

    if update.pay is not None:
        merge_payment(journey.pay, update.pay)

    if update.expenses is not None:
        journey.expenses = merge_expenses(journey.expenses, update.expenses)

    if update.status is not None:
        journey.change_status(update.status)


def find_attachment(journey: Journey, kind: str, index: Optional[int] = None) -> Attachment:
    """Stored proof for the full payment, an installment or an expense."""
    attachment = None
    if kind == "payment":
        attachment = journey.pay.attachment
    elif kind == "installment" and index is not None and 0 <= index < len(journey.pay.installments):
        attachment = journey.pay.installments[index].attachment
    elif kind == "expense" and index is not None and 0 <= index < len(journey.expenses):
        attachment = journey.expenses[index].attachment

    if not attachment or not attachment.is_complete():
        raise NotFound("Proof attachment")
    return attachment


class JourneyService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.journeys = JourneyRepository(db)
        self.references = ReferenceRepository(db)

    # ===== READS =====

    async def get_journey(self, journey_id: ObjectId) -> Journey:
        journey = await self.journeys.get_journey(journey_id)
        if journey is None:
            logger.warning("Journey not found: %s", journey_id)
            raise NotFound("Journey", journey_id)
        return journey

    async def list_journeys(self, filters: JourneyFilters) -> Tuple[List[Journey], int]:
        journeys, total = await self.journeys.list_journeys(filters)
        logger.info(
            "Retrieved journeys list: total=%s page=%s limit=%s",
            total, filters.page, filters.limit
        )
        return journeys, total

    async def get_journey_stats(self) -> JourneyStats:
        """
        Counts by status and payment option plus monetary totals.

        Amounts are converted per journey with its own rate, so a USD
        journey contributes its RWF value.
        """
        recent_since = utcnow() - timedelta(days=RECENT_DAYS)
        journeys = await self.journeys.find_journeys()

        total_amount = sum(j.total_amount_canonical() for j in journeys)
        total_paid = sum(j.total_paid_canonical() for j in journeys)
        total_expenses = sum(j.total_expenses() for j in journeys)

        stats = JourneyStats(
            total=len(journeys),
            started=sum(1 for j in journeys if j.status == JourneyStatus.STARTED),
            completed=sum(1 for j in journeys if j.status == JourneyStatus.COMPLETED),
            full_payment=sum(1 for j in journeys if j.pay.paid_option == PaidOption.FULL),
            installment_payment=sum(
                1 for j in journeys if j.pay.paid_option == PaidOption.INSTALLMENT
            ),
            recent_journeys=sum(1 for j in journeys if j.date >= recent_since),
            total_amount=total_amount,
            total_paid=total_paid,
            total_expenses=total_expenses,
            net_profit=total_amount - total_expenses,
            currency=CANONICAL_CURRENCY,
        )
        logger.info("Retrieved journey statistics: total=%s", stats.total)
        return stats

    # ===== WRITES =====

    async def create_journey(self, data: JourneyCreate, actor_id: ObjectId) -> Journey:
        await self._ensure_references(data.driver_id, data.truck_id, data.customer_id)

        pay = data.pay
        if pay.paid_option == PaidOption.FULL:
            ledger = PaymentLedger(
                total_amount=pay.total_amount,
                currency=pay.currency,
                exchange_rate=pay.exchange_rate,
                paid_option=PaidOption.FULL,
                attachment=keep_attachment(_attachment(pay.attachment), None),
                installments=[],
            )
        else:
            ledger = PaymentLedger(
                total_amount=pay.total_amount,
                currency=pay.currency,
                exchange_rate=pay.exchange_rate,
                paid_option=PaidOption.INSTALLMENT,
                installments=[_new_installment(item) for item in pay.installments],
            )

        journey = Journey(
            driver_id=data.driver_id,
            truck_id=data.truck_id,
            customer_id=data.customer_id,
            created_by=actor_id,
            departure_city=data.departure_city,
            destination_city=data.destination_city,
            cargo=data.cargo,
            notes=data.notes,
            date=data.date or utcnow(),
            pay=ledger,
            expenses=[_new_expense(item) for item in data.expenses],
        )

        try:
            if data.status == JourneyStatus.COMPLETED:
                journey.mark_completed()
            journey.check_invariants()
        except JourneyError as exc:
            logger.warning("Journey creation rejected: %s", exc.message)
            raise
        journey.recompute_balance()

        await self.journeys.insert_journey(journey)
        logger.info(
            "Journey created: id=%s driver=%s truck=%s customer=%s",
            journey.id, journey.driver_id, journey.truck_id, journey.customer_id
        )
        return journey

    async def update_journey(self, journey_id: ObjectId, data: JourneyUpdate) -> Journey:
        await self._ensure_references(data.driver_id, data.truck_id, data.customer_id)

        journey = await self._mutate(journey_id, lambda j: apply_update(j, data), "update")
        logger.info("Journey updated: id=%s status=%s", journey.id, journey.status.value)
        return journey

    async def delete_journey(self, journey_id: ObjectId) -> None:
        deleted = await self.journeys.delete_journey(journey_id)
        if not deleted:
            logger.warning("Journey deletion failed - not found: %s", journey_id)
            raise NotFound("Journey", journey_id)
        logger.info("Journey deleted: id=%s", journey_id)

    async def add_installment(self, journey_id: ObjectId, data: InstallmentAdd) -> Journey:
        installment = _new_installment(data)
        journey = await self._mutate(
            journey_id, lambda j: j.add_installment(installment), "add installment"
        )
        logger.info(
            "Installment added: id=%s amount=%.2f paid=%.2f/%.2f",
            journey.id, installment.amount,
            journey.pay.total_paid(), journey.pay.total_amount
        )
        return journey

    async def add_expense(self, journey_id: ObjectId, data: ExpenseAdd) -> Journey:
        expense = _new_expense(data)
        journey = await self._mutate(journey_id, lambda j: j.add_expense(expense), "add expense")
        logger.info("Expense added: id=%s amount=%.2f", journey.id, expense.amount)
        return journey

    async def attach_payment_proof(
        self,
        journey_id: ObjectId,
        attachment: Attachment
    ) -> Tuple[Journey, Optional[Attachment]]:
        """Set the full-payment proof; also returns the proof it replaced, if any."""
        replaced: List[Optional[Attachment]] = [None]

        def attach(journey: Journey) -> None:
            if journey.pay.paid_option != PaidOption.FULL:
                raise InvalidOperation("Payment proof applies to full payments only")
            previous = journey.pay.attachment
            journey.pay.attachment = keep_attachment(attachment, previous)
            replaced[0] = previous if previous != journey.pay.attachment else None

        journey = await self._mutate(journey_id, attach, "attach payment proof")
        return journey, replaced[0]

    async def attach_expense_proof(
        self,
        journey_id: ObjectId,
        index: int,
        attachment: Attachment
    ) -> Tuple[Journey, Optional[Attachment]]:
        replaced: List[Optional[Attachment]] = [None]

        def attach(journey: Journey) -> None:
            if not 0 <= index < len(journey.expenses):
                raise NotFound("Expense", index)
            expense = journey.expenses[index]
            previous = expense.attachment
            expense.attachment = keep_attachment(attachment, previous)
            replaced[0] = previous if previous != expense.attachment else None

        journey = await self._mutate(journey_id, attach, "attach expense proof")
        return journey, replaced[0]

    # ===== PRIVATE HELPERS =====

    async def _ensure_references(
        self,
        driver_id: Optional[ObjectId] = None,
        truck_id: Optional[ObjectId] = None,
        customer_id: Optional[ObjectId] = None
    ) -> None:
        checks = (
            ("Driver", driver_id, self.references.find_driver_by_id),
            ("Truck", truck_id, self.references.find_truck_by_id),
            ("Customer", customer_id, self.references.find_customer_by_id),
        )
        for label, entity_id, lookup in checks:
            if entity_id is None:
                continue
            if await lookup(entity_id) is None:
                logger.warning("%s not found: %s", label, entity_id)
                raise NotFound(label, entity_id)

    async def _mutate(
        self,
        journey_id: ObjectId,
        mutation: Callable[[Journey], object],
        action: str
    ) -> Journey:
        """
        Read, mutate, validate and write one journey.

        A domain error from the mutation or from validation aborts before
        anything is written.
        """
        async with journey_locks.for_journey(journey_id):
            for attempt in range(1, settings.WRITE_MAX_RETRIES + 1):
                journey = await self.get_journey(journey_id)
                expected_version = journey.version

                try:
                    mutation(journey)
                    journey.check_invariants()
                except JourneyError as exc:
                    logger.warning("Journey %s rejected (%s): %s", action, journey_id, exc.message)
                    raise

                journey.recompute_balance()
                journey.version = expected_version + 1
                journey.updated_at = utcnow()

                saved = await self.journeys.save_journey(journey, expected_version)
                if saved is not None:
                    return saved
                logger.debug(
                    "Journey %s lost version %s on attempt %s, retrying",
                    journey_id, expected_version, attempt
                )

        raise WriteConflict(f"Journey {journey_id} is being modified concurrently, try again")
