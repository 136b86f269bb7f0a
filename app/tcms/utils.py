from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from flask import g, request

from app.tcms.models import User


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def clean_str(value: str | None) -> str | None:
    """Strip; empty -> None."""
    v = (value or "").strip()
    return v or None


def form_str(name: str) -> str | None:
    return clean_str(request.form.get(name))


def form_bool(name: str) -> bool:
    return (request.form.get(name) or "").strip().lower() in ("1", "true", "on", "yes")


def parse_date(value: str | date | None) -> date | None:
    """Parse YYYY-MM-DD; raises ValueError on a malformed non-empty value."""
    if isinstance(value, date):
        return value
    v = (value or "").strip()
    if not v:
        return None
    return date.fromisoformat(v)


def parse_date_arg(name: str) -> date | None:
    """Lenient variant for list filters: bad input is ignored."""
    try:
        return parse_date(request.args.get(name))
    except ValueError:
        return None


def parse_int(value: str | int | None) -> int | None:
    if isinstance(value, int):
        return value
    v = (value or "").strip()
    if not v:
        return None
    return int(v)


# Numeric(12, 2) columns hold at most ten integer digits.
MAX_AMOUNT = Decimal("1e10")


def parse_decimal(value: str | Decimal | int | float | None) -> Decimal | None:
    """Parse a money amount; raises ValueError for non-numbers, NaN/Infinity and out-of-range values."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        d = value
    else:
        v = str(value).strip().replace(",", "")
        if not v:
            return None
        try:
            d = Decimal(v)
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value}") from e
    if not d.is_finite() or abs(d) >= MAX_AMOUNT:
        raise ValueError(f"Invalid amount: {value}")
    return d


def percent(part: Decimal | int, whole: Decimal | int) -> int:
    """Whole-number percentage with halves rounded up (1 of 8 -> 13); 0 when whole is 0."""
    if not whole:
        return 0
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_csv_list(value: str | None) -> list[str]:
    """'a, b,,c ' -> ['a', 'b', 'c']"""
    return [p.strip() for p in (value or "").split(",") if p.strip()]


def format_money(amount: Decimal | int | float | None, currency: str = "RWF") -> str:
    value = Decimal(amount or 0)
    return f"{currency} {value:,.0f}"
