from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")


def money(value: Decimal | float | int | None, currency: str = "MAD") -> str:
    amount = Decimal(value or 0).quantize(CENT)
    return f"{amount:,.2f} {currency}".replace(",", " ")


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_iso_date(value: str | date | None, field_name: str) -> date:
    if isinstance(value, date):
        return value
    raw = (value or "").strip()
    if not raw:
        raise ValueError(f"{field_name} is required")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date format for {field_name}") from exc


def parse_optional_date(value: str | date | None, field_name: str = "date") -> date | None:
    if isinstance(value, date):
        return value
    if not (value or "").strip():
        return None
    return parse_iso_date(value, field_name)


def parse_decimal(value: str | int | float | Decimal | None, field_name: str) -> Decimal:
    raw = str(value if value is not None else "").strip().replace(",", ".")
    if not raw:
        raise ValueError(f"{field_name} is required")
    try:
        return Decimal(raw).quantize(CENT)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount for {field_name}") from exc


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "on", "yes"}


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))
