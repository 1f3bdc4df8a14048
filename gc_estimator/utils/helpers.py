from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any, default: str = "0") -> Decimal:
    try:
        d = Decimal(str(value if value not in (None, "") else default))
    except (InvalidOperation, ValueError):
        return Decimal(default)
    # "NaN" / "Infinity" parse but can never be money
    if not d.is_finite():
        return Decimal(default)
    return d


def to_decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value)


def round_currency(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string (or datetime) -> datetime; None/blank -> None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def to_wire(value: Any) -> Any:
    """Make a value JSON-safe: Decimal -> str, datetime -> ISO-8601, recursively."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value
