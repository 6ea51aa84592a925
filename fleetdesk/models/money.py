"""
Money normalisation.

Journeys may be charged in any supported currency. Reports, balances and
the completion guard all work in the canonical currency (RWF), using the
exchange rate recorded on the journey itself.
"""

from enum import Enum
from typing import Optional

from fleetdesk.core.config import settings


class Currency(str, Enum):
    USD = "USD"
    RWF = "RWF"
    UGX = "UGX"
    TZX = "TZX"


CANONICAL_CURRENCY = Currency(settings.CANONICAL_CURRENCY)


def to_canonical(
    amount: Optional[float],
    currency: Currency | str,
    exchange_rate: Optional[float] = 1.0
) -> float:
    """
    Convert an amount to the canonical currency.

    exchange_rate is canonical units per one unit of `currency` and is
    ignored when the amount is already canonical.
    """
    if not amount:
        return 0.0
    if Currency(currency) == CANONICAL_CURRENCY:
        return float(amount)
    return float(amount) * float(exchange_rate or 1.0)


def format_amount(value: float, currency: Currency | str = CANONICAL_CURRENCY) -> str:
    return f"{value:,.2f} {Currency(currency).value}"
