from __future__ import annotations

from decimal import Decimal

import pytest

from apcacli.core.errors import InvalidNumber
from apcacli.core.num import (
    add,
    div,
    mul,
    parse_decimal,
    parse_optional_decimal,
    quantize,
    sub,
    to_display,
)


@pytest.mark.parametrize("text", ["0", "1", "-1", "+2.5", "0.000000001", "123456789.123456789", ".5", "7."])
def test_display_of_parsed_text_parses_back_to_equal_value(text: str) -> None:
    value = parse_decimal(text)

    assert parse_decimal(to_display(value)) == value


@pytest.mark.parametrize("text", ["", "abc", "1e5", "1E-3", "NaN", "inf", "1,000", "1.2.3", "--1", " "])
def test_parse_decimal_rejects_non_numerals(text: str) -> None:
    with pytest.raises(InvalidNumber):
        parse_decimal(text)


def test_parse_decimal_reports_field_name() -> None:
    with pytest.raises(InvalidNumber) as info:
        parse_decimal("ten", field="qty")

    assert info.value.field == "qty"
    assert "ten" in str(info.value)


def test_parse_decimal_is_exact() -> None:
    assert parse_decimal("0.1") + parse_decimal("0.2") == Decimal("0.3")
    assert parse_decimal(" 42 ") == Decimal(42)
    assert parse_decimal(7) == Decimal(7)


def test_numerals_longer_than_context_precision_stay_exact() -> None:
    text = "1234567890123456789012345678901.123456789"

    value = parse_decimal(text)

    assert value == Decimal(text)
    assert to_display(value) == text
    assert to_display(parse_decimal("1234567890123456789012345678901234567890.500")) == (
        "1234567890123456789012345678901234567890.5"
    )


def test_parse_decimal_rejects_non_finite_decimal_and_floats() -> None:
    with pytest.raises(InvalidNumber):
        parse_decimal(Decimal("NaN"))
    with pytest.raises(InvalidNumber):
        parse_decimal(1.5)
    with pytest.raises(InvalidNumber):
        parse_decimal(True)


def test_parse_optional_decimal_passes_through_missing_values() -> None:
    assert parse_optional_decimal(None) is None
    assert parse_optional_decimal("") is None
    assert parse_optional_decimal("3.25") == Decimal("3.25")


def test_to_display_never_uses_exponent_form() -> None:
    assert to_display(Decimal("1E+3")) == "1000"
    assert to_display(Decimal("1E-9")) == "0.000000001"
    assert to_display(Decimal("12.500")) == "12.5"
    assert to_display(Decimal("0.000")) == "0"
    assert to_display(None) == "-"


def test_to_display_with_precision_rounds_half_even() -> None:
    assert to_display(Decimal("2.345"), 2) == "2.34"
    assert to_display(Decimal("2.355"), 2) == "2.36"
    assert to_display(Decimal("10"), 2) == "10.00"


def test_arithmetic_helpers() -> None:
    assert add(Decimal("1.1"), Decimal("2.2")) == Decimal("3.3")
    assert sub(Decimal("1"), Decimal("0.75")) == Decimal("0.25")
    assert mul(Decimal("1.5"), Decimal("4")) == Decimal("6.0")
    assert div(Decimal("1"), Decimal("3")) == Decimal("0.333333333")
    assert quantize(Decimal("1.23456"), 3) == Decimal("1.235")


def test_div_by_zero_raises() -> None:
    with pytest.raises(ZeroDivisionError):
        div(Decimal("1"), Decimal("0"))
