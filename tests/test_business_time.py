"""
Tests for the business calendar and business-minute arithmetic.
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from clinicdesk.core.exceptions import ConfigurationException
from clinicdesk.sla.domain import BusinessCalendar, BusinessTimeCalculator
from tests.conftest import at


class TestBusinessCalendar:

    def test_default_is_monday_to_friday_eight_to_five(self, calendar, calculator):
        assert calculator.calendar is calendar
        assert calendar.work_days == frozenset({0, 1, 2, 3, 4})
        assert calendar.window_minutes == 540

    def test_weekend_is_not_a_work_day(self, calendar):
        assert calendar.is_work_day(at(12, 10))      # Friday
        assert not calendar.is_work_day(at(13, 10))  # Saturday
        assert not calendar.is_work_day(at(14, 10))  # Sunday

    def test_window_bounds_exist_for_any_day(self, calendar):
        assert calendar.window_start(at(13, 3).date()) == at(13, 8)
        assert calendar.window_end(at(13, 3).date()) == at(13, 17)

    def test_end_hour_24_is_next_midnight(self):
        cal = BusinessCalendar(start_hour=0, end_hour=24)
        assert cal.window_end(at(8, 12).date()) == at(9, 0)

    @pytest.mark.parametrize("kwargs", [
        {"work_days": frozenset()},
        {"work_days": frozenset({7})},
        {"start_hour": 17, "end_hour": 8},
        {"start_hour": 9, "end_hour": 9},
        {"start_hour": -1},
        {"end_hour": 25},
    ])
    def test_invalid_calendar_is_rejected(self, kwargs):
        with pytest.raises(ConfigurationException):
            BusinessCalendar(**kwargs)


class TestClampForward:

    @pytest.mark.parametrize("instant", [
        at(8, 8),
        at(8, 12, 30),
        at(10, 16, 59, 59),
    ])
    def test_business_time_is_unchanged(self, calculator, instant):
        assert calculator.clamp_forward(instant) == instant

    def test_before_window_moves_to_window_start(self, calculator):
        assert calculator.clamp_forward(at(9, 6, 15)) == at(9, 8)

    def test_window_end_moves_to_next_work_day(self, calculator):
        assert calculator.clamp_forward(at(9, 17)) == at(10, 8)

    def test_friday_evening_moves_to_monday(self, calculator):
        assert calculator.clamp_forward(at(12, 18, 30)) == at(15, 8)

    def test_weekend_moves_to_monday(self, calculator):
        assert calculator.clamp_forward(at(13, 11)) == at(15, 8)
        assert calculator.clamp_forward(at(14, 23, 59)) == at(15, 8)

    @pytest.mark.parametrize("instant", [
        at(8, 3), at(8, 9, 10), at(8, 17), at(12, 22), at(13, 12), at(14, 7),
    ])
    def test_result_is_business_time_and_idempotent(self, calculator, calendar, instant):
        clamped = calculator.clamp_forward(instant)

        assert clamped >= instant
        assert calendar.is_work_day(clamped)
        assert calendar.window_start(clamped.date()) <= clamped < calendar.window_end(clamped.date())
        assert calculator.clamp_forward(clamped) == clamped


class TestAddBusinessMinutes:

    def test_friday_afternoon_rolls_over_weekend(self, calculator):
        assert calculator.add_business_minutes(at(12, 16, 30), 90) == at(15, 9)

    def test_within_one_window(self, calculator):
        assert calculator.add_business_minutes(at(8, 9), 60) == at(8, 10)

    def test_zero_returns_clamped_start(self, calculator):
        assert calculator.add_business_minutes(at(13, 10), 0) == at(15, 8)
        assert calculator.add_business_minutes(at(8, 10), 0) == at(8, 10)

    def test_negative_counts_as_zero(self, calculator):
        assert calculator.add_business_minutes(at(8, 18), -30) == at(9, 8)

    def test_fractional_minutes_are_truncated(self, calculator):
        assert calculator.add_business_minutes(at(8, 9), 59.9) == at(8, 9, 59)

    def test_exact_fit_lands_on_window_end(self, calculator):
        assert calculator.add_business_minutes(at(8, 16), 60) == at(8, 17)
        assert calculator.add_business_minutes(at(8, 8), 540) == at(8, 17)

    def test_one_minute_past_the_window_rolls_over(self, calculator):
        assert calculator.add_business_minutes(at(8, 8), 541) == at(9, 8, 1)

    def test_partial_minute_before_window_end_is_not_usable(self, calculator):
        assert calculator.add_business_minutes(at(8, 16, 59, 30), 1) == at(9, 8, 1)

    def test_multi_day_span(self, calculator):
        # two full windows: all of Friday, then all of Monday
        assert calculator.add_business_minutes(at(12, 8), 1080) == at(15, 17)

    def test_custom_calendar(self):
        cal = BusinessCalendar(work_days=frozenset({5}), start_hour=10, end_hour=12)
        calc = BusinessTimeCalculator(cal)
        # Monday -> Saturday 10:00, 120 minutes fill it, 30 more go to next Saturday
        assert calc.add_business_minutes(at(8, 9), 150) == at(20, 10, 30)


class TestBusinessMinutesBetween:

    def test_empty_or_reversed_interval_is_zero(self, calculator):
        assert calculator.business_minutes_between(at(8, 10), at(8, 10)) == 0
        assert calculator.business_minutes_between(at(8, 11), at(8, 10)) == 0

    def test_same_window(self, calculator):
        assert calculator.business_minutes_between(at(8, 9), at(8, 10, 30)) == 90

    def test_overnight(self, calculator):
        assert calculator.business_minutes_between(at(8, 16), at(9, 9)) == 120

    def test_over_weekend(self, calculator):
        assert calculator.business_minutes_between(at(12, 16), at(15, 9)) == 120

    def test_outside_business_time_is_zero(self, calculator):
        assert calculator.business_minutes_between(at(13, 9), at(14, 18)) == 0
        assert calculator.business_minutes_between(at(8, 17, 30), at(9, 7)) == 0

    def test_one_full_business_day(self, calculator):
        assert calculator.business_minutes_between(at(8, 17), at(9, 17)) == 540

    def test_partial_minutes_round_up(self, calculator):
        assert calculator.business_minutes_between(at(8, 10), at(8, 10, 0, 1)) == 1
        assert calculator.business_minutes_between(at(8, 10), at(8, 10, 30, 30)) == 31

    @pytest.mark.parametrize("start,minutes", [
        (at(8, 8), 1),
        (at(8, 9, 10), 470),
        (at(12, 16, 30), 90),
        (at(13, 10), 600),
        (at(10, 12), 2000),
    ])
    def test_counts_back_what_was_added(self, calculator, start, minutes):
        end = calculator.add_business_minutes(start, minutes)
        assert calculator.business_minutes_between(start, end) == minutes


class TestTimeZones:

    def test_aware_instants_are_evaluated_in_calendar_zone(self):
        belem = ZoneInfo("America/Belem")  # UTC-3, no DST
        calc = BusinessTimeCalculator(BusinessCalendar(tz=belem))

        # 10:00 UTC is 07:00 in Belem, before the window opens
        clamped = calc.clamp_forward(datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc))

        assert clamped == datetime(2024, 1, 8, 8, 0, tzinfo=belem)
        assert clamped == datetime(2024, 1, 8, 11, 0, tzinfo=timezone.utc)

    def test_aware_round_trip(self):
        belem = ZoneInfo("America/Belem")
        calc = BusinessTimeCalculator(BusinessCalendar(tz=belem))
        start = datetime(2024, 1, 12, 19, 30, tzinfo=timezone.utc)  # Fri 16:30 local

        due = calc.add_business_minutes(start, 90)

        assert due == datetime(2024, 1, 15, 9, 0, tzinfo=belem)
        assert calc.business_minutes_between(start, due) == 90
