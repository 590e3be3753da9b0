from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from worktime.utils.date_time import (
    end_of_local_day, ensure_utc, local_date, minutes_between, shift_start_on, wrapped_duration_minutes
)
from worktime.utils.validators import is_valid_break_allowance, is_valid_shift
from tests.helpers import at


def test_minutes_are_floored():
    assert minutes_between(at(2026, 3, 2, 9, 0, 0), at(2026, 3, 2, 9, 59, 59)) == 59
    assert minutes_between(at(2026, 3, 2, 9, 0), at(2026, 3, 2, 9, 0)) == 0


def test_naive_values_are_treated_as_utc():
    naive = datetime(2026, 3, 2, 9, 0)
    assert ensure_utc(naive) == at(2026, 3, 2, 9, 0)
    assert minutes_between(naive, at(2026, 3, 2, 10, 30)) == 90


def test_aware_values_are_converted():
    dhaka = datetime(2026, 3, 2, 15, 0, tzinfo=ZoneInfo("Asia/Dhaka"))
    assert ensure_utc(dhaka) == at(2026, 3, 2, 9, 0)
    assert ensure_utc(dhaka).tzinfo == timezone.utc


def test_end_of_local_day():
    assert end_of_local_day(date(2026, 3, 1)) == at(2026, 3, 1, 23, 59, 59)


def test_local_date_and_shift_start():
    assert local_date(at(2026, 3, 2, 23, 30)) == date(2026, 3, 2)
    assert shift_start_on(date(2026, 3, 2), time(9, 0), 15) == at(2026, 3, 2, 9, 15)


def test_wrapped_duration():
    assert wrapped_duration_minutes(time(9, 0), time(18, 0)) == 540
    assert wrapped_duration_minutes(time(22, 0), time(6, 0)) == 480


def test_shift_validation():
    assert is_valid_shift(time(22, 0), time(6, 0)) is True
    assert is_valid_shift(time(9, 0), time(9, 0)) is False
    assert is_valid_break_allowance(time(9, 0), time(18, 0), 60) is True
    assert is_valid_break_allowance(time(9, 0), time(10, 0), 60) is False
