"""
Money formatting for Sierra Leonean leones (``Le 1,234.56``).
"""
import math
import re
from numbers import Real
from typing import Any

CURRENCY_PREFIX = "Le"

_PREFIX_RE = re.compile(r"Le\s?")
_NUMBER_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _is_amount(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and not math.isnan(value)


def format_leones(amount: Any, show_decimals: bool = True) -> str:
    if not _is_amount(amount) or math.isinf(amount):
        return f"{CURRENCY_PREFIX} 0.00"
    if show_decimals:
        return f"{CURRENCY_PREFIX} {amount:,.2f}"
    # half-up, not banker's rounding
    return f"{CURRENCY_PREFIX} {math.floor(amount + 0.5):,d}"


def format_leones_whole(amount: Any) -> str:
    return format_leones(amount, show_decimals=False)


def parse_leones_string(text: Any) -> float:
    """``"Le 1,234.56"`` -> ``1234.56``; anything unparsable is 0."""
    if not isinstance(text, str):
        return 0
    cleaned = _PREFIX_RE.sub("", text, count=1).replace(",", "")
    match = _NUMBER_RE.match(cleaned)
    return float(match.group(0)) if match else 0


def calculate_discount_percentage(original_price: Any, sale_price: Any) -> int:
    if not original_price or original_price <= sale_price:
        return 0
    return math.floor((original_price - sale_price) / original_price * 100 + 0.5)


def format_shipping(cost: Any) -> str:
    return "Free" if cost == 0 else format_leones(cost)
