"""
Amount normalization and atomic-unit conversion
Supports: "$10", "10.50", "10 USDC"
"""

import re
from decimal import Decimal, DecimalException, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

from uplink.errors import ValidationError

# USDC has 6 decimals
USDC_DECIMALS = 6

_TOKEN_LABEL = re.compile(r"[A-Za-z]+\s*$")
_CENTS = Decimal("0.01")


def parse_decimal(amount: str) -> Decimal:
    """Strip currency decoration and parse to a finite Decimal"""
    text = str(amount).strip().replace("$", "")
    text = _TOKEN_LABEL.sub("", text).strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount format: {amount}") from None
    if not value.is_finite():
        raise ValidationError(f"Invalid amount format: {amount}")
    return value


def normalize_amount(amount: str) -> str:
    """Normalize a human amount string to a fixed 2-decimal string"""
    try:
        value = parse_decimal(amount).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except DecimalException:
        # Beyond the context precision once expressed in cents
        raise ValidationError(f"Invalid amount format: {amount} (out of range)") from None
    return format(value, "f")


def to_atomic_units(amount: "str | Decimal", decimals: int = USDC_DECIMALS) -> int:
    """Convert a decimal token amount to its smallest unit, truncating extra precision"""
    value = amount if isinstance(amount, Decimal) else parse_decimal(amount)
    try:
        atomic = (value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    except DecimalException:
        raise ValidationError(f"Invalid amount format: {amount} (out of range)") from None
    return int(atomic)
