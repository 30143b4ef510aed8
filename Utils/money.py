from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
UNIT = Decimal("1")


def to_decimal(value) -> Decimal:
    """Convert floats/ints/strings to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def round_currency(value) -> Decimal:
    """Round to the currency minor unit (paise/cents), half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_whole(value) -> Decimal:
    """Round to the nearest whole currency unit, half up."""
    return to_decimal(value).quantize(UNIT, rounding=ROUND_HALF_UP)


def as_number(value):
    """Serialize a Decimal for JSON: int when whole, float otherwise."""
    if value is None:
        return None
    value = to_decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)
