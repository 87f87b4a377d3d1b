"""
Business Time
=============

Working-time model and business-minute arithmetic.

A business minute is one minute that falls inside a work day's work-hour
window. Every deadline in the SLA domain is measured in business minutes and
converted back to calendar instants through this module.

All functions are pure: the current instant is always passed in by the caller.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import FrozenSet, Optional

from clinicdesk.core.exceptions import ConfigurationException

ONE_MINUTE = timedelta(minutes=1)
ONE_DAY = timedelta(days=1)

MONDAY_TO_FRIDAY = frozenset({0, 1, 2, 3, 4})


@dataclass(frozen=True)
class BusinessCalendar:
    """
    Immutable working-time model.

    Work days use Python weekday numbers (Monday=0 .. Sunday=6). The same
    ``[start_hour, end_hour)`` window applies to every work day.

    Naive instants are read as wall-clock time in the calendar. When ``tz`` is
    set, aware instants are converted into it before evaluation.
    """

    work_days: FrozenSet[int] = field(default=MONDAY_TO_FRIDAY)
    start_hour: int = 8
    end_hour: int = 17
    tz: Optional[tzinfo] = None

    def __post_init__(self):
        object.__setattr__(self, "work_days", frozenset(self.work_days))

        if not self.work_days:
            raise ConfigurationException("Calendar needs at least one work day")
        if any(d not in range(7) for d in self.work_days):
            raise ConfigurationException(
                f"Invalid weekday in work_days: {sorted(self.work_days)}"
            )
        if not (0 <= self.start_hour <= 24 and 0 <= self.end_hour <= 24):
            raise ConfigurationException("Work hours must lie within 0..24")
        if self.start_hour >= self.end_hour:
            raise ConfigurationException(
                f"start_hour ({self.start_hour}) must be before end_hour ({self.end_hour})"
            )

    @property
    def window_minutes(self) -> int:
        """Business minutes in one full work day."""
        return (self.end_hour - self.start_hour) * 60

    def localize(self, instant: datetime) -> datetime:
        """Express an instant in calendar time."""
        if self.tz is not None and instant.tzinfo is not None:
            return instant.astimezone(self.tz)
        return instant

    def is_work_day(self, day: date) -> bool:
        if isinstance(day, datetime):
            day = self.localize(day).date()
        return day.weekday() in self.work_days

    def window_start(self, day: date) -> datetime:
        """Start-of-work instant for ``day``, work day or not."""
        return self._at_hour(day, self.start_hour)

    def window_end(self, day: date) -> datetime:
        """End-of-work instant for ``day``, work day or not."""
        return self._at_hour(day, self.end_hour)

    def next_work_day_start(self, instant: datetime) -> datetime:
        """Window start of the first work day strictly after ``instant``'s date."""
        day = self._date_of(instant) + ONE_DAY
        while not self.is_work_day(day):
            day += ONE_DAY
        return self.window_start(day)

    def _date_of(self, value) -> date:
        if isinstance(value, datetime):
            return self.localize(value).date()
        return value

    def _at_hour(self, day: date, hour: int) -> datetime:
        tz = self.tz
        if isinstance(day, datetime):
            local = self.localize(day)
            tz = local.tzinfo
            day = local.date()
        # end_hour may be 24: midnight of the following day
        return datetime.combine(day, time(0), tzinfo=tz) + timedelta(hours=hour)


class BusinessTimeCalculator:
    """
    Business-minute arithmetic over a ``BusinessCalendar``.

    ``clamp_forward`` is the single normalisation step every other operation
    relies on: its result always lies inside a work window or exactly at its
    start.
    """

    def __init__(self, calendar: BusinessCalendar):
        self._calendar = calendar

    @property
    def calendar(self) -> BusinessCalendar:
        return self._calendar

    def clamp_forward(self, instant: datetime) -> datetime:
        """
        Move an instant forward to the nearest business time.

        Args:
            instant: Any instant

        Returns:
            ``instant`` itself when it lies inside a work window, otherwise
            the start of the next available window.
        """
        cal = self._calendar
        current = cal.localize(instant)

        if not cal.is_work_day(current.date()):
            return cal.next_work_day_start(current)

        start = cal.window_start(current)
        if current < start:
            return start
        if current >= cal.window_end(current):
            return cal.next_work_day_start(current)
        return current

    def add_business_minutes(self, start: datetime, minutes: float) -> datetime:
        """
        Advance ``minutes`` business minutes from ``start``.

        Minutes are truncated toward zero and negative values count as zero,
        in which case the clamped start is returned.
        """
        remaining = max(0, int(minutes))
        current = self.clamp_forward(start)

        while remaining > 0:
            window_end = self._calendar.window_end(current)
            available = (window_end - current) // ONE_MINUTE

            if remaining <= available:
                return current + timedelta(minutes=remaining)

            remaining -= available
            current = self._calendar.next_work_day_start(current)

        return current

    def business_minutes_between(self, a: datetime, b: datetime) -> int:
        """
        Count business minutes elapsed from ``a`` to ``b``.

        Any partial minute counts as a full one, so pausing a clock never
        forgives SLA time. Returns 0 when ``b <= a``.
        """
        if b <= a:
            return 0

        end = self._calendar.localize(b)
        current = self.clamp_forward(a)
        total = timedelta(0)

        while current < end:
            segment_end = min(self._calendar.window_end(current), end)
            if segment_end > current:
                total += segment_end - current
            if segment_end >= end:
                break
            current = self._calendar.next_work_day_start(current)

        whole, rest = divmod(total, ONE_MINUTE)
        return whole + (1 if rest else 0)

    @staticmethod
    def add_minutes(instant: datetime, minutes: int) -> datetime:
        """Plain calendar-minute shift."""
        return instant + timedelta(minutes=minutes)
