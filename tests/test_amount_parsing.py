from __future__ import annotations

from decimal import Decimal

from card_ledger.core.currencies import Currency, normalize_currency, parse_amount


def test_parse_amount_argentine_format():
    assert parse_amount("1.959.370,09") == Decimal("1959370.09")
    assert parse_amount("$ 12.500,5") == Decimal("12500.50")
    assert parse_amount("1.234") == Decimal("1234.00")


def test_parse_amount_plain_and_numeric():
    assert parse_amount("1959370.09") == Decimal("1959370.09")
    assert parse_amount(1500) == Decimal("1500.00")
    assert parse_amount(19.99) == Decimal("19.99")


def test_parse_amount_keeps_refunds_negative():
    assert parse_amount("-1.234,50") == Decimal("-1234.50")
    assert parse_amount("(12,00)") == Decimal("-12.00")
    assert parse_amount("U$S -3.50") == Decimal("-3.50")


def test_parse_amount_rejects_non_numeric():
    assert parse_amount("abc") is None
    assert parse_amount("") is None
    assert parse_amount(None) is None
    assert parse_amount(True) is None


def test_parse_amount_rejects_values_too_large_to_store():
    assert parse_amount("12345678901234567890123456789") is None
    assert parse_amount(1e30) is None
    assert parse_amount(Decimal("1e40")) is None
    assert parse_amount(float("nan")) is None
    assert parse_amount("999.999.999.999,99") == Decimal("999999999999.99")
    assert parse_amount("1.000.000.000.000,00") is None


def test_normalize_currency_aliases():
    assert normalize_currency("$") == Currency.ARS
    assert normalize_currency("pesos") == Currency.ARS
    assert normalize_currency("U$S") == Currency.USD
    assert normalize_currency("dolares") == Currency.USD
    assert normalize_currency("EUR") is None
    assert normalize_currency(None) is None
