from __future__ import annotations

import enum
import re
from decimal import Decimal, InvalidOperation


class Currency(str, enum.Enum):
    ARS = "ARS"
    USD = "USD"


_ALIASES: dict[str, Currency] = {
    "ARS": Currency.ARS,
    "$": Currency.ARS,
    "AR$": Currency.ARS,
    "PESO": Currency.ARS,
    "PESOS": Currency.ARS,
    "USD": Currency.USD,
    "US$": Currency.USD,
    "U$S": Currency.USD,
    "U$D": Currency.USD,
    "U$": Currency.USD,
    "DOLAR": Currency.USD,
    "DOLARES": Currency.USD,
    "DÓLARES": Currency.USD,
    "DOLLARS": Currency.USD,
}


def normalize_currency(value: str | None) -> Currency | None:
    if value is None:
        return None
    raw = re.sub(r"\s+", "", str(value)).upper()
    if not raw:
        return None
    return _ALIASES.get(raw)


_CENTS = Decimal("0.01")
# Amount columns are Numeric(14, 2).
_MAX_AMOUNT = Decimal("1e12")
_SYMBOLS_RE = re.compile(r"(?i)(u\$s|us\$|u\$d|ar\$|usd|ars|\$|\s)")


def parse_amount(value: object) -> Decimal | None:
    """
    Parse a statement amount into a Decimal with two places.

    Accepts numbers and strings in Argentine format ("1.959.370,09"), plain decimals
    ("1959370.09"), currency prefixes and negatives ("-1.234,50", "(12,00)").
    Returns None when the value is not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _to_cents(value)
    if isinstance(value, (int, float)):
        try:
            return _to_cents(Decimal(str(value)))
        except InvalidOperation:
            return None

    raw = _SYMBOLS_RE.sub("", str(value))
    negative = False
    if raw.startswith("(") and raw.endswith(")"):
        negative = True
        raw = raw[1:-1]
    if raw.endswith("-"):
        negative = True
        raw = raw[:-1]
    if raw.startswith("-"):
        negative = not negative
        raw = raw[1:]
    elif raw.startswith("+"):
        raw = raw[1:]
    if not raw or not re.fullmatch(r"[\d.,]+", raw) or not re.search(r"\d", raw):
        return None

    has_dot = "." in raw
    has_comma = "," in raw
    if has_dot and has_comma:
        decimal_sep = "," if raw.rfind(",") > raw.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        raw = raw.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif has_comma:
        head, _, tail = raw.rpartition(",")
        if raw.count(",") == 1 and len(tail) <= 2:
            raw = f"{head}.{tail}"
        else:
            raw = raw.replace(",", "")
    elif has_dot:
        tail = raw.rpartition(".")[2]
        # "1.234" and "1.234.567" use the dot as thousands separator.
        if raw.count(".") > 1 or len(tail) == 3:
            raw = raw.replace(".", "")

    try:
        parsed = Decimal(raw)
    except InvalidOperation:
        return None
    return _to_cents(-parsed if negative else parsed)


def _to_cents(value: Decimal) -> Decimal | None:
    if not value.is_finite() or abs(value) >= _MAX_AMOUNT:
        return None
    return value.quantize(_CENTS)
