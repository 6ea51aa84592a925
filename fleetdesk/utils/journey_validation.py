"""Journey validation utilities and the domain error taxonomy."""
from datetime import datetime
from typing import Iterable, Optional

from fleetdesk.core.config import settings


class JourneyError(Exception):
    """Base class for journey domain errors."""
    kind = "journey_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(JourneyError):
    """Malformed or out-of-range input (future date, negative amount...)."""
    kind = "validation_failed"


class NotFound(JourneyError):
    """Journey or one of its references does not exist."""
    kind = "not_found"

    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class InvalidOperation(JourneyError):
    """Operation incompatible with the journey's current state."""
    kind = "invalid_operation"


class PaymentExceeded(JourneyError):
    """Installments would add up to more than the journey total."""
    kind = "payment_exceeded"

    def __init__(self, total_amount: float, current_total: float, amount: float):
        headroom = max(total_amount - current_total, 0.0)
        super().__init__(
            f"Installment of {amount:.2f} would exceed total amount "
            f"({total_amount:.2f}); remaining {headroom:.2f}"
        )
        self.total_amount = total_amount
        self.current_total = current_total
        self.amount = amount
        self.headroom = headroom


class PaymentIncomplete(JourneyError):
    """Completion attempted before the journey is fully paid."""
    kind = "payment_incomplete"

    def __init__(self, required: float, paid: float, currency: str):
        self.required = round(required, 2)
        self.paid = round(paid, 2)
        self.remaining = round(required - paid, 2)
        self.currency = currency
        super().__init__(
            "Cannot complete journey. Payment incomplete. "
            f"Total required: {required:,.2f} {currency}, "
            f"Total paid: {paid:,.2f} {currency}, "
            f"Remaining: {required - paid:,.2f} {currency}"
        )


class WriteConflict(JourneyError):
    """Optimistic write lost the race too many times."""
    kind = "write_conflict"


def exceeds(total: float, limit: float) -> bool:
    """Float comparison with the configured tolerance."""
    return total > limit + settings.AMOUNT_EPSILON


def falls_short(total: float, target: float) -> bool:
    return total < target - settings.AMOUNT_EPSILON


def sum_amounts(entries: Iterable) -> float:
    return sum((entry.amount or 0.0) for entry in entries)


def validate_not_future(value: Optional[datetime], now: datetime, label: str) -> None:
    if value is not None and value > now:
        raise ValidationFailed(f"{label} cannot be in the future")


def validate_non_negative(value: Optional[float], label: str) -> None:
    if value is not None and value < 0:
        raise ValidationFailed(f"{label} cannot be negative")
