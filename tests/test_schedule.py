from datetime import date, datetime, time

import pytest

from consultbot import models
from consultbot.booking import book_slot
from consultbot.models import AvailableFormats, SlotStatus
from consultbot.schedule import (
    TemplateError,
    apply_template,
    delete_template,
    get_template,
    save_week_as_template,
)
from tests.conftest import make_client, make_slot

WEDNESDAY = date(2025, 6, 11)


@pytest.fixture
def week(db):
    make_slot(db, slot_date=date(2025, 6, 9), slot_time=time(10, 0))
    booked = make_slot(db, slot_date=date(2025, 6, 11), slot_time=time(14, 0), formats=AvailableFormats.OFFLINE)
    client = make_client(db)
    assert book_slot(db, client.id, booked.id, "offline", now=datetime(2025, 6, 1))
    # наступний тиждень не потрапляє в шаблон
    make_slot(db, slot_date=date(2025, 6, 16), slot_time=time(18, 0))


def slots_on(db, day):
    return db.query(models.Slot).filter(models.Slot.date == day).order_by(models.Slot.time).all()


def test_save_week_includes_booked_slots(db, week):
    template = save_week_as_template(db, today=WEDNESDAY)

    assert template == {
        "days": [
            {"day": "monday", "times": [{"time": "10:00", "available_formats": "both"}]},
            {"day": "wednesday", "times": [{"time": "14:00", "available_formats": "offline"}]},
        ]
    }
    assert get_template(db) == template


def test_apply_creates_missing_slots(db, week):
    save_week_as_template(db, today=WEDNESDAY)

    created = apply_template(db, weeks=2, today=WEDNESDAY)

    assert created == 4
    assert [s.time for s in slots_on(db, date(2025, 6, 16))] == [time(10, 0), time(18, 0)]
    wednesday = slots_on(db, date(2025, 6, 18))
    assert len(wednesday) == 1
    assert wednesday[0].available_formats == AvailableFormats.OFFLINE
    assert wednesday[0].status == SlotStatus.FREE
    assert len(slots_on(db, date(2025, 6, 23))) == 1
    assert len(slots_on(db, date(2025, 6, 25))) == 1

    # повторне застосування нічого не дублює
    assert apply_template(db, weeks=2, today=WEDNESDAY) == 0


def test_apply_updates_formats_of_free_slots_only(db, week):
    save_week_as_template(db, today=WEDNESDAY)
    free = make_slot(db, slot_date=date(2025, 6, 16), slot_time=time(10, 0), formats=AvailableFormats.ONLINE)
    busy = make_slot(db, slot_date=date(2025, 6, 18), slot_time=time(14, 0), formats=AvailableFormats.BOTH)
    other = make_client(db, telegram_id=2)
    assert book_slot(db, other.id, busy.id, "online", now=datetime(2025, 6, 1))

    assert apply_template(db, today=WEDNESDAY) == 0

    db.refresh(free)
    db.refresh(busy)
    assert free.available_formats == AvailableFormats.BOTH
    assert busy.available_formats == AvailableFormats.BOTH
    assert busy.client_id == other.id


def test_apply_on_sunday_starts_tomorrow(db, week):
    save_week_as_template(db, today=WEDNESDAY)
    db.query(models.Slot).filter(models.Slot.date >= date(2025, 6, 16)).delete()
    db.commit()

    apply_template(db, today=date(2025, 6, 15))

    assert len(slots_on(db, date(2025, 6, 16))) == 1


def test_apply_without_template(db):
    with pytest.raises(TemplateError):
        apply_template(db, today=WEDNESDAY)


def test_delete_template(db, week):
    save_week_as_template(db, today=WEDNESDAY)
    delete_template(db)
    assert get_template(db) == {"days": []}
