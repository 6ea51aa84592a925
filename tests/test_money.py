"""Tests for canonical currency conversion."""
import pytest

from fleetdesk.models.money import Currency, format_amount, to_canonical


def test_canonical_amount_ignores_exchange_rate():
    assert to_canonical(1000, Currency.RWF, 1300) == 1000


def test_foreign_amount_is_multiplied_by_rate():
    assert to_canonical(100, Currency.USD, 1200) == 120000


def test_currency_can_be_given_as_code():
    assert to_canonical(50, "UGX", 0.35) == pytest.approx(17.5)


@pytest.mark.parametrize("amount", [None, 0])
def test_missing_amount_is_zero(amount):
    assert to_canonical(amount, Currency.USD, 1200) == 0


def test_format_amount_uses_two_decimals():
    assert format_amount(600) == "600.00 RWF"
    assert format_amount(1234.5, Currency.USD) == "1,234.50 USD"
