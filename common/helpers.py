"""
FarmLink - Shared Helpers
==========================
Pure utility functions with NO database or module dependencies.
"""

import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def safe_int(value: Optional[str]) -> Optional[int]:
    """Safely convert a string to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


# ==========================================
# Money
# ==========================================

def to_money(value) -> Decimal:
    """Coerce a number to a two-decimal currency amount (half-up)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_json(value) -> float:
    """Currency amount as a JSON number."""
    return float(to_money(value))


# ==========================================
# Order Number Generator
# ==========================================

_BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_order_number(suffix_length: int = 5) -> str:
    """Human-readable, URL-safe order number: ORD-<ms timestamp>-<random base36>."""
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(suffix_length))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"
