from datetime import date, datetime, time

from mili_llama.constants import DEVICE_TZ, SECONDS_IN_HOUR


def now() -> datetime:
    return datetime.now(tz=DEVICE_TZ)


def diff_time_in_sec(t1: datetime, t2: datetime) -> float:
    return (t1 - t2).total_seconds()


def duration_in_hours(start: datetime, end: datetime) -> float:
    """Length of a class in hours, e.g. 09:00 to 10:30 is 1.5."""
    return diff_time_in_sec(end, start) / SECONDS_IN_HOUR


def normalize_time_to_datetime(time_of_day: time, day: date) -> datetime:
    return datetime.combine(day, time_of_day, DEVICE_TZ)


def ensure_aware(value: datetime) -> datetime:
    # Firestore hands back aware datetimes; naive input from forms is taken as device time
    if value.tzinfo is None:
        return value.replace(tzinfo=DEVICE_TZ)
    return value


def parse_time(raw_time: str) -> time:
    """
    Parse time string in either 24-hour format (HH:MM) or 12-hour format (HH:MMAM/PM).

    Args:
        raw_time: Time string in format "09:30" or "9:30AM"

    Returns:
        datetime.time object
    """
    try:
        return datetime.strptime(raw_time, "%I:%M%p").time()
    except ValueError:
        try:
            return datetime.strptime(raw_time, "%H:%M").time()
        except ValueError:
            raise ValueError(f"Time '{raw_time}' does not match expected formats: 'HH:MM' or 'HH:MMAM/PM'")
