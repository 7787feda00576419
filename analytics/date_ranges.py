from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import InvalidDateRangeError

TODAY = "today"
LAST_WEEK = "last_week"
LAST_MONTH = "last_month"
CUSTOM = "custom"

RANGE_CHOICES = (
    (TODAY, "Today"),
    (LAST_WEEK, "Last 7 days"),
    (LAST_MONTH, "Last 30 days"),
    (CUSTOM, "Custom"),
)

DateInput = Union[str, date, datetime, None]


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def _parse_bound(value: DateInput, tz) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        try:
            parsed = parse_datetime(text)
            if parsed is None:
                day = parse_date(text)
                parsed = datetime(day.year, day.month, day.day) if day else None
        except ValueError:
            parsed = None
        if parsed is None:
            raise InvalidDateRangeError(f"无法解析日期: {value!r}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, tz)
    return parsed


def resolve_date_range(
    range_key: str,
    custom_from: DateInput = None,
    custom_to: DateInput = None,
    now: Optional[datetime] = None,
) -> DateRange:
    """Turn a symbolic range selector into concrete bounds.

    ``now`` is the clock; it defaults to the current local time. Day boundaries
    are taken in ``now``'s timezone. Unknown selectors, and ``custom`` with a
    missing bound, fall back to the last 7 days.
    """
    if now is None:
        now = timezone.localtime()
    elif timezone.is_naive(now):
        now = timezone.make_aware(now)
    tz = now.tzinfo

    if range_key == TODAY:
        return DateRange(_start_of_day(now), _end_of_day(now))
    if range_key == LAST_MONTH:
        return DateRange(_start_of_day(now - timedelta(days=29)), now)
    if range_key == CUSTOM and custom_from and custom_to:
        start = _parse_bound(custom_from, tz)
        end = _end_of_day(_parse_bound(custom_to, tz))
        if start > end:
            raise InvalidDateRangeError("开始日期不能晚于结束日期")
        return DateRange(start, end)
    return DateRange(_start_of_day(now - timedelta(days=6)), now)
