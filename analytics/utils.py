import math
from datetime import date, datetime, timezone as dt_timezone
from typing import Optional

import pandas as pd
from django.utils.dateparse import parse_date, parse_datetime


def coerce_timestamp(value) -> Optional[datetime]:
    """Best-effort conversion of a stored/serialized timestamp to an aware datetime.

    Naive values are taken as UTC, date-only values as UTC midnight. Anything
    unparseable comes back as ``None`` so callers can skip the record.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=dt_timezone.utc)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        parsed = parse_datetime(text)
        if parsed is None:
            day = parse_date(text)
            return coerce_timestamp(day) if day else None
    except ValueError:
        # 格式正确但日期非法，例如 2024-02-30
        return None
    return coerce_timestamp(parsed)


def round_half_up(value: float, digits: int = 0):
    """Round like the dashboard always did: halves go up, ints when digits == 0."""
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def pct(part, whole) -> float:
    """Percentage with one decimal; 0 whenever the denominator is empty."""
    if not whole or whole <= 0:
        return 0.0
    return math.floor(part / whole * 1000 + 0.5) / 10


def as_money(value) -> int:
    if value is None or pd.isna(value):
        return 0
    return round_half_up(float(value))
