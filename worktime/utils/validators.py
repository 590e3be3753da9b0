from datetime import time
from typing import Optional

from worktime.utils.date_time import wrapped_duration_minutes


def is_valid_shift(start_time: Optional[time], end_time: Optional[time]) -> bool:
    """Check if shift duration is positive, even across midnight."""
    if start_time is None or end_time is None:
        return True
    return wrapped_duration_minutes(start_time, end_time) > 0


def is_valid_break_allowance(start_time: time, end_time: time, break_minutes: int) -> bool:
    """The break allowance must leave some expected work inside the shift."""
    return 0 <= break_minutes < wrapped_duration_minutes(start_time, end_time)
