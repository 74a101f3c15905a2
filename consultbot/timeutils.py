"""
Service clock and date formatting
"""
from datetime import date, datetime, time, timedelta

from .config import settings

WEEKDAYS_SHORT = ["пн", "вт", "ср", "чт", "пт", "сб", "вс"]
MONTHS_GENITIVE = [
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
]
MONTHS_SHORT = ["янв", "фев", "мар", "апр", "мая", "июн", "июл", "авг", "сен", "окт", "ноя", "дек"]


def local_now() -> datetime:
    """Поточний час у часовому поясі психолога (UTC + фіксований зсув), без tzinfo"""
    return datetime.utcnow() + timedelta(hours=settings.timezone_offset_hours)


def format_date(value: date) -> str:
    """пн, 10 июня"""
    return f"{WEEKDAYS_SHORT[value.weekday()]}, {value.day} {MONTHS_GENITIVE[value.month - 1]}"


def format_short_date(value: datetime) -> str:
    return f"{value.day} {MONTHS_SHORT[value.month - 1]}. {value.year}"


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def parse_time(value: str) -> time:
    """Приймає HH:MM або HH:MM:SS"""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time: {value!r}")
    return time(*(int(p) for p in parts))


def week_monday(day: date) -> date:
    return day - timedelta(days=day.weekday())
