"""
Weekly schedule template: snapshot the current week, stamp it onto next weeks
"""
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .models import AvailableFormats, SlotStatus
from .repository import Repository
from .timeutils import local_now, parse_time, week_monday

logger = logging.getLogger(__name__)

TEMPLATE_KEY = "schedule_template"
WEEK_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class TemplateError(Exception):
    pass


def get_template(db: Session) -> dict:
    template = Repository(db).get_setting(TEMPLATE_KEY)
    if not isinstance(template, dict):
        return {"days": []}
    return template


def delete_template(db: Session):
    Repository(db).delete_setting(TEMPLATE_KEY)


def save_week_as_template(db: Session, today: Optional[date] = None) -> dict:
    """Зберегти всі слоти поточного тижня (пн-нд), включно із зайнятими"""
    today = today or local_now().date()
    monday = week_monday(today)
    sunday = monday + timedelta(days=6)

    repo = Repository(db)
    slots = repo.list_slots_between(monday, sunday)
    logger.info(f"📅 Шаблон з тижня {monday} - {sunday}: {len(slots)} слотів")

    template = {"days": []}
    for index, day_name in enumerate(WEEK_DAYS):
        day = monday + timedelta(days=index)
        day_slots = [s for s in slots if s.date == day]
        if not day_slots:
            continue
        template["days"].append({
            "day": day_name,
            "times": [
                {
                    "time": s.time.strftime("%H:%M"),
                    "available_formats": AvailableFormats(s.available_formats).value,
                }
                for s in day_slots
            ],
        })

    repo.set_setting(TEMPLATE_KEY, template)
    return template


def apply_template(db: Session, weeks: int = 1, today: Optional[date] = None) -> int:
    """Застосувати шаблон на weeks тижнів, починаючи з наступного понеділка. Повертає кількість нових слотів"""
    template = get_template(db)
    if not template.get("days"):
        raise TemplateError("No template saved")

    today = today or local_now().date()
    start_monday = week_monday(today) + timedelta(days=7)
    repo = Repository(db)
    created = 0

    for week in range(weeks):
        monday = start_monday + timedelta(weeks=week)
        for day_template in template["days"]:
            if day_template.get("day") not in WEEK_DAYS:
                logger.warning(f"⚠️ Невідомий день у шаблоні: {day_template.get('day')}")
                continue
            slot_date = monday + timedelta(days=WEEK_DAYS.index(day_template["day"]))

            for entry in day_template.get("times", []):
                slot_time = parse_time(str(entry["time"]))
                formats = AvailableFormats(entry.get("available_formats") or "both")

                existing = repo.find_slot(slot_date, slot_time)
                if existing is None:
                    repo.create_slot(slot_date, slot_time, formats)
                    created += 1
                elif existing.status == SlotStatus.FREE and existing.available_formats != formats:
                    # зайняті слоти не чіпаємо
                    existing.available_formats = formats
                    db.commit()

    logger.info(f"✅ Шаблон застосовано на {weeks} тиж., створено {created} слотів")
    return created
