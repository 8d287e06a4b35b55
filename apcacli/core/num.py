from __future__ import annotations

import re
from decimal import ROUND_HALF_EVEN, Context, Decimal, InvalidOperation
from typing import Optional

from apcacli.core.errors import InvalidNumber

DEFAULT_SCALE = 9
CONTEXT = Context(prec=38, rounding=ROUND_HALF_EVEN)

_NUMERAL = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def parse_decimal(text: object, field: Optional[str] = None) -> Decimal:
    """Parse a plain base-10 numeral into an exact Decimal.

    Accepts an optional sign and an optional fractional part. Exponent
    notation, NaN/Infinity and grouping separators are rejected.
    """
    if isinstance(text, Decimal):
        if not text.is_finite():
            raise InvalidNumber(str(text), field=field)
        return text
    if isinstance(text, int) and not isinstance(text, bool):
        return Decimal(text)
    if not isinstance(text, str):
        raise InvalidNumber(repr(text), field=field)
    raw = text.strip()
    if not _NUMERAL.fullmatch(raw):
        raise InvalidNumber(text, field=field)
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise InvalidNumber(text, field=field) from exc


def parse_optional_decimal(text: object, field: Optional[str] = None) -> Optional[Decimal]:
    if text is None or text == "":
        return None
    return parse_decimal(text, field=field)


def quantize(value: Decimal, scale: int = DEFAULT_SCALE) -> Decimal:
    exponent = Decimal(1).scaleb(-scale)
    return value.quantize(exponent, rounding=ROUND_HALF_EVEN, context=CONTEXT)


def add(left: Decimal, right: Decimal) -> Decimal:
    return CONTEXT.add(left, right)


def sub(left: Decimal, right: Decimal) -> Decimal:
    return CONTEXT.subtract(left, right)


def mul(left: Decimal, right: Decimal) -> Decimal:
    return CONTEXT.multiply(left, right)


def div(left: Decimal, right: Decimal, scale: int = DEFAULT_SCALE) -> Decimal:
    if right == 0:
        raise ZeroDivisionError("decimal division by zero")
    return quantize(CONTEXT.divide(left, right), scale)


def to_display(value: Optional[Decimal], precision: Optional[int] = None) -> str:
    """Render a Decimal as a fixed-point string, never in exponent form."""
    if value is None:
        return "-"
    if precision is not None:
        return format(quantize(value, precision), "f")
    normalized = value.normalize(_exact_context(value))
    if normalized == 0:
        return "0"
    return format(normalized, "f")


def _exact_context(value: Decimal) -> Context:
    digits = len(value.as_tuple().digits)
    if digits <= CONTEXT.prec:
        return CONTEXT
    return Context(prec=digits, rounding=ROUND_HALF_EVEN)
