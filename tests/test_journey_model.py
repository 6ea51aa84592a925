"""
Tests for the journey aggregate and its payment ledger.

Covers:
- total paid / remaining / fully paid
- installment limits and payment option switches
- completion guard
- balance recomputation
"""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

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
from fleetdesk.utils.journey_validation import (
    InvalidOperation,
    PaymentExceeded,
    PaymentIncomplete,
    ValidationFailed,
)

PROOF = Attachment(filename="proof.png", path="uploads/proof.png", mimetype="image/png", size=10)


def build_journey(pay: PaymentLedger, expenses=None) -> Journey:
    return Journey(
        driver_id=ObjectId(),
        truck_id=ObjectId(),
        customer_id=ObjectId(),
        created_by=ObjectId(),
        departure_city="Kigali",
        destination_city="Goma",
        cargo="Maize",
        date=datetime(2025, 5, 1, tzinfo=timezone.utc),
        pay=pay,
        expenses=expenses or [],
    )


def installment_ledger(total=1000, *amounts, **kwargs) -> PaymentLedger:
    return PaymentLedger(
        total_amount=total,
        paid_option=PaidOption.INSTALLMENT,
        installments=[Installment(amount=amount) for amount in amounts],
        **kwargs
    )


class TestPaymentLedger:
    def test_full_payment_counts_total_as_paid(self):
        ledger = PaymentLedger(total_amount=750, paid_option=PaidOption.FULL)

        assert ledger.total_paid() == 750
        assert ledger.remaining() == 0
        assert ledger.is_fully_paid()

    def test_installments_sum_to_total_paid(self):
        """Two installments of 400 and 600 settle a 1000 charge."""
        ledger = installment_ledger(1000, 400, 600)

        assert ledger.total_paid() == 1000
        assert ledger.is_fully_paid()

    def test_partial_installments(self):
        ledger = installment_ledger(1000, 400)

        assert ledger.total_paid() == 400
        assert ledger.remaining() == 600
        assert not ledger.is_fully_paid()

    def test_add_installment_within_headroom(self):
        ledger = installment_ledger(1000, 400)

        ledger.add_installment(Installment(amount=600))

        assert len(ledger.installments) == 2
        assert ledger.is_fully_paid()

    def test_add_installment_over_headroom_is_rejected(self):
        """700 after 400 on a 1000 charge leaves the ledger untouched."""
        ledger = installment_ledger(1000, 400)

        with pytest.raises(PaymentExceeded) as exc_info:
            ledger.add_installment(Installment(amount=700))

        assert exc_info.value.headroom == 600
        assert len(ledger.installments) == 1

    def test_float_noise_does_not_reject_exact_fill(self):
        ledger = installment_ledger(0.3, 0.1, 0.1)

        ledger.add_installment(Installment(amount=0.1))

        assert ledger.is_fully_paid()

    def test_add_installment_to_full_payment_is_invalid(self):
        ledger = PaymentLedger(total_amount=1000, paid_option=PaidOption.FULL)

        with pytest.raises(InvalidOperation):
            ledger.add_installment(Installment(amount=100))

    def test_negative_installment_is_rejected(self):
        ledger = installment_ledger(1000)

        with pytest.raises(ValidationFailed):
            ledger.add_installment(Installment(amount=-5))

    def test_switch_to_full_clears_installments(self):
        ledger = installment_ledger(1000, 400)

        ledger.switch_to_full(PROOF)

        assert ledger.paid_option == PaidOption.FULL
        assert ledger.installments == []
        assert ledger.attachment == PROOF

    def test_switch_to_installment_requires_discarding_proof(self):
        ledger = PaymentLedger(total_amount=1000, paid_option=PaidOption.FULL, attachment=PROOF)

        with pytest.raises(InvalidOperation):
            ledger.switch_to_installment()

        ledger.switch_to_installment(discard_attachment=True)

        assert ledger.paid_option == PaidOption.INSTALLMENT
        assert ledger.attachment is None
        assert ledger.installments == []

    def test_future_installment_date_fails_validation(self):
        now = datetime.now(timezone.utc)
        ledger = installment_ledger(1000)
        ledger.installments.append(Installment(amount=10, date=now + timedelta(days=2)))

        with pytest.raises(ValidationFailed):
            ledger.check_invariants(now)

    def test_full_payment_with_installments_fails_validation(self):
        ledger = PaymentLedger(
            total_amount=1000,
            paid_option=PaidOption.FULL,
            installments=[Installment(amount=10)]
        )

        with pytest.raises(InvalidOperation):
            ledger.check_invariants(datetime.now(timezone.utc))


class TestKeepAttachment:
    def test_complete_incoming_replaces(self):
        new = Attachment(filename="new.pdf", path="uploads/new.pdf", mimetype="application/pdf", size=1)
        assert keep_attachment(new, PROOF) == new

    def test_partial_incoming_keeps_existing(self):
        partial = Attachment(filename="new.pdf")
        assert keep_attachment(partial, PROOF) == PROOF

    def test_nothing_to_keep(self):
        assert keep_attachment(Attachment(filename="x"), None) is None


class TestJourney:
    def test_balance_is_paid_minus_expenses(self):
        journey = build_journey(
            installment_ledger(1000, 400),
            expenses=[Expense(title="Fuel", amount=150), Expense(title="Toll", amount=50)]
        )

        assert journey.recompute_balance() == 200
        assert journey.balance == 200

    def test_balance_uses_canonical_currency(self):
        """One USD paid at 1200 against 300 RWF of expenses."""
        journey = build_journey(
            installment_ledger(10, 1, currency="USD", exchange_rate=1200),
            expenses=[Expense(title="Fuel", amount=300)]
        )

        assert journey.total_paid_canonical() == 1200
        assert journey.recompute_balance() == 900

    def test_recompute_balance_is_idempotent(self):
        journey = build_journey(installment_ledger(1000, 250), [Expense(title="Fuel", amount=75)])

        first = journey.recompute_balance()
        second = journey.recompute_balance()

        assert first == second == journey.compute_balance()

    def test_add_expense_updates_balance(self):
        journey = build_journey(PaymentLedger(total_amount=500, paid_option=PaidOption.FULL))

        journey.add_expense(Expense(title="Police fine", amount=120))

        assert journey.total_expenses() == 120
        assert journey.balance == 380

    def test_add_installment_updates_balance(self):
        journey = build_journey(installment_ledger(1000))

        journey.add_installment(Installment(amount=400))

        assert journey.balance == 400

    def test_complete_when_fully_paid(self):
        journey = build_journey(installment_ledger(1000, 400, 600))

        journey.mark_completed()

        assert journey.status == JourneyStatus.COMPLETED

    def test_complete_blocked_when_underpaid(self):
        journey = build_journey(installment_ledger(1000, 400))

        with pytest.raises(PaymentIncomplete) as exc_info:
            journey.mark_completed()

        assert exc_info.value.remaining == 600
        assert exc_info.value.required == 1000
        assert exc_info.value.paid == 400
        assert "600.00 RWF" in exc_info.value.message
        assert journey.status == JourneyStatus.STARTED

    def test_completion_guard_in_canonical_currency(self):
        journey = build_journey(installment_ledger(100, 50, currency="USD", exchange_rate=1200))

        with pytest.raises(PaymentIncomplete) as exc_info:
            journey.mark_completed()

        assert exc_info.value.required == 120000
        assert exc_info.value.remaining == 60000

    def test_completed_journey_cannot_reopen(self):
        journey = build_journey(PaymentLedger(total_amount=100, paid_option=PaidOption.FULL))
        journey.mark_completed()

        with pytest.raises(InvalidOperation):
            journey.change_status(JourneyStatus.STARTED)

    def test_future_journey_date_fails_validation(self):
        journey = build_journey(installment_ledger(1000))
        journey.date = datetime.now(timezone.utc) + timedelta(days=1)

        with pytest.raises(ValidationFailed):
            journey.check_invariants()

    def test_naive_dates_from_storage_are_utc(self):
        journey = build_journey(installment_ledger(1000))
        loaded = Journey(**{**journey.model_dump(by_alias=True), "date": datetime(2025, 5, 1, 6, 30)})

        assert loaded.date.tzinfo == timezone.utc
