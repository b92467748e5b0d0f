from __future__ import annotations

import calendar
import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from autoparts.errors import ValidationError

DateLike = Union[datetime, date, str]


def iso_now() -> str:
    # Stored instants are UTC, the same clock to_datetime() converts aware values to.
    return to_iso(datetime.now(timezone.utc))


def safe_div(n: float, d: float) -> float:
    return float(n) / float(d) if d else 0.0


def margin_pct(profit: float, cost: float) -> float:
    # Margin is expressed over cost; zero cost means zero margin.
    return safe_div(profit, cost) * 100.0 if cost > 0 else 0.0


def to_datetime(value: DateLike) -> datetime:
    """
    Normalize a date-ish value to a naive datetime.

    Aware datetimes are converted to UTC first. Plain dates mean midnight.
    ISO strings are parsed with datetime.fromisoformat (a trailing 'Z' is accepted).
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValidationError("Date is empty.")
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise ValidationError(f"Invalid date: {value!r}")
    elif value is None:
        raise ValidationError("Date is required.")
    else:
        raise ValidationError(f"Unsupported date value: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_iso(value: DateLike) -> str:
    return to_datetime(value).isoformat(timespec="seconds")


def validate_month(year: int, month: int) -> None:
    if int(month) < 0 or int(month) > 11:
        raise ValidationError("Month must be between 0 (January) and 11 (December).")
    if int(year) < 1:
        raise ValidationError("Year must be positive.")


def month_date_range(year: int, month: int) -> tuple[datetime, datetime]:
    """
    First and last instant of a calendar month (month is 0-indexed).

    The window is inclusive on both ends.
    """
    validate_month(year, month)
    m = int(month) + 1
    last_day = calendar.monthrange(int(year), m)[1]
    start = datetime(int(year), m, 1)
    end = datetime.combine(date(int(year), m, last_day), time.max)
    return start, end


def is_in_month(value: DateLike, year: int, month: int) -> bool:
    start, end = month_date_range(year, month)
    return start <= to_datetime(value) <= end


def next_period(year: int, month: int) -> tuple[int, int]:
    validate_month(year, month)
    if int(month) >= 11:
        return int(year) + 1, 0
    return int(year), int(month) + 1


def month_label(year: int, month: int) -> str:
    return f"{calendar.month_name[int(month) + 1]} {int(year)}"


def whole_number(value, label: str, *, minimum: int = 1) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a whole number.")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number.")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{label} must be a whole number.")
    if n < minimum:
        raise ValidationError(f"{label} must be >= {minimum}.")
    return n


def money(value, label: str, *, allow_zero: bool = False) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number.")
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.")
    if not math.isfinite(v):
        raise ValidationError(f"{label} must be a finite number.")
    if v < 0 or (v == 0 and not allow_zero):
        raise ValidationError(f"{label} must be {'>= 0' if allow_zero else '> 0'}.")
    return v


def clean_text(value) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s if s else None
