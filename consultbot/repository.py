"""
Persistence port: every table access used by the bot, the REST API and the jobs.

The backend (SQLite, Postgres) is selected only by DATABASE_URL.
"""
import logging
from datetime import date, datetime, time
from typing import Any, List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import models
from .models import BookingStatus, SlotStatus, SosStatus

logger = logging.getLogger(__name__)


def _upcoming(now: datetime):
    """Фільтр слотів, що ще не почалися"""
    return or_(
        models.Slot.date > now.date(),
        and_(models.Slot.date == now.date(), models.Slot.time >= now.time().replace(microsecond=0)),
    )


class Repository:
    """Доступ до таблиць бота"""

    def __init__(self, db: Session):
        self.db = db

    # ---- clients -------------------------------------------------------

    def get_client(self, client_id: int) -> Optional[models.Client]:
        return self.db.get(models.Client, client_id)

    def get_client_by_telegram_id(self, telegram_id: int) -> Optional[models.Client]:
        return self.db.query(models.Client).filter(models.Client.telegram_id == telegram_id).first()

    def get_or_create_client(
        self,
        telegram_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> Tuple[models.Client, bool]:
        """Upsert клієнта по telegram_id. Повертає (client, created)"""
        client = self.get_client_by_telegram_id(telegram_id)
        if client:
            changed = False
            for field, value in (("first_name", first_name), ("last_name", last_name), ("username", username)):
                if value and getattr(client, field) != value:
                    setattr(client, field, value)
                    changed = True
            if changed:
                self.db.commit()
            return client, False

        client = models.Client(
            telegram_id=telegram_id,
            first_name=first_name,
            last_name=last_name,
            username=username,
        )
        self.db.add(client)
        self.db.commit()
        self.db.refresh(client)
        logger.info(f"👤 Новий клієнт {client.id} (telegram_id={telegram_id})")
        return client, True

    def list_clients_with_counts(self) -> List[Tuple[models.Client, int, int]]:
        """Клієнти з кількістю активних записів і записів щоденника"""
        bookings_count = (
            self.db.query(models.Booking.client_id, func.count(models.Booking.id).label("cnt"))
            .filter(models.Booking.status == BookingStatus.ACTIVE)
            .group_by(models.Booking.client_id)
            .subquery()
        )
        diary_count = (
            self.db.query(models.DiaryEntry.client_id, func.count(models.DiaryEntry.id).label("cnt"))
            .group_by(models.DiaryEntry.client_id)
            .subquery()
        )
        rows = (
            self.db.query(
                models.Client,
                func.coalesce(bookings_count.c.cnt, 0),
                func.coalesce(diary_count.c.cnt, 0),
            )
            .outerjoin(bookings_count, bookings_count.c.client_id == models.Client.id)
            .outerjoin(diary_count, diary_count.c.client_id == models.Client.id)
            .order_by(models.Client.created_at.desc(), models.Client.id.desc())
            .all()
        )
        return [(client, int(b), int(d)) for client, b, d in rows]

    def update_client(self, client: models.Client, first_name: Optional[str], last_name: Optional[str]):
        client.first_name = first_name or None
        client.last_name = last_name or None
        self.db.commit()
        return client

    def delete_client(self, client: models.Client) -> List[models.Slot]:
        """Видалити клієнта одним коммітом: всі його слоти звільняються, записи видаляються.
        Повертає слоти, на яких були активні записи"""
        client_id = client.id
        active_slot_ids = {
            b.slot_id for b in client.bookings if b.status == BookingStatus.ACTIVE
        }
        slots = self.db.query(models.Slot).filter(models.Slot.client_id == client.id).all()

        freed = []
        for slot in slots:
            if slot.id in active_slot_ids:
                freed.append(slot)
            slot.status = SlotStatus.FREE
            slot.client = None
            slot.format = None

        try:
            self.db.delete(client)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Клієнт {client_id} видалений, звільнено слотів: {len(slots)}")
        return freed

    def list_broadcast_chat_ids(self) -> List[int]:
        return [row[0] for row in self.db.query(models.Client.telegram_id).all()]

    # ---- slots ---------------------------------------------------------

    def get_slot(self, slot_id: int) -> Optional[models.Slot]:
        return self.db.get(models.Slot, slot_id)

    def find_slot(self, slot_date: date, slot_time: time) -> Optional[models.Slot]:
        return (
            self.db.query(models.Slot)
            .filter(models.Slot.date == slot_date, models.Slot.time == slot_time)
            .first()
        )

    def create_slot(
        self,
        slot_date: date,
        slot_time: time,
        available_formats: models.AvailableFormats = models.AvailableFormats.BOTH,
        commit: bool = True,
    ) -> Tuple[models.Slot, bool]:
        """Створити слот, якщо на цей час його ще немає. Повертає (slot, created)"""
        existing = self.find_slot(slot_date, slot_time)
        if existing:
            return existing, False
        slot = models.Slot(
            date=slot_date,
            time=slot_time,
            status=SlotStatus.FREE,
            available_formats=available_formats,
        )
        self.db.add(slot)
        if commit:
            self.db.commit()
            self.db.refresh(slot)
        else:
            self.db.flush()
        return slot, True

    def delete_slot(self, slot: models.Slot):
        self.db.delete(slot)
        self.db.commit()

    def list_available_slots(self, now: datetime, limit: int = 30) -> List[models.Slot]:
        return (
            self.db.query(models.Slot)
            .filter(models.Slot.status == SlotStatus.FREE, _upcoming(now))
            .order_by(models.Slot.date, models.Slot.time)
            .limit(limit)
            .all()
        )

    def list_available_dates(self, now: datetime, limit: int = 30) -> List[date]:
        dates = []
        for slot in self.list_available_slots(now, limit):
            if slot.date not in dates:
                dates.append(slot.date)
        return dates

    def list_free_slots_for_date(self, slot_date: date, now: datetime) -> List[models.Slot]:
        return (
            self.db.query(models.Slot)
            .filter(
                models.Slot.status == SlotStatus.FREE,
                models.Slot.date == slot_date,
                _upcoming(now),
            )
            .order_by(models.Slot.time)
            .all()
        )

    def list_slots_from(self, start: date) -> List[models.Slot]:
        return (
            self.db.query(models.Slot)
            .options(joinedload(models.Slot.client))
            .filter(models.Slot.date >= start)
            .order_by(models.Slot.date, models.Slot.time)
            .all()
        )

    def list_slots_between(self, start: date, end: date) -> List[models.Slot]:
        return (
            self.db.query(models.Slot)
            .filter(models.Slot.date >= start, models.Slot.date <= end)
            .order_by(models.Slot.date, models.Slot.time)
            .all()
        )

    # ---- bookings ------------------------------------------------------

    def get_booking(self, booking_id: int) -> Optional[models.Booking]:
        return self.db.get(models.Booking, booking_id)

    def get_active_booking_for_slot(self, slot_id: int) -> Optional[models.Booking]:
        return (
            self.db.query(models.Booking)
            .filter(models.Booking.slot_id == slot_id, models.Booking.status == BookingStatus.ACTIVE)
            .first()
        )

    def list_active_bookings(self) -> List[models.Booking]:
        return (
            self.db.query(models.Booking)
            .join(models.Slot, models.Booking.slot_id == models.Slot.id)
            .options(joinedload(models.Booking.slot), joinedload(models.Booking.client))
            .filter(models.Booking.status == BookingStatus.ACTIVE)
            .order_by(models.Slot.date, models.Slot.time)
            .all()
        )

    def list_client_active_bookings(self, client_id: int) -> List[models.Booking]:
        return (
            self.db.query(models.Booking)
            .filter(models.Booking.client_id == client_id, models.Booking.status == BookingStatus.ACTIVE)
            .all()
        )

    def list_upcoming_bookings(self, client_id: int, now: datetime) -> List[models.Booking]:
        """Тільки майбутні активні записи клієнта"""
        return (
            self.db.query(models.Booking)
            .join(models.Slot, models.Booking.slot_id == models.Slot.id)
            .options(joinedload(models.Booking.slot))
            .filter(
                models.Booking.client_id == client_id,
                models.Booking.status == BookingStatus.ACTIVE,
                _upcoming(now),
            )
            .order_by(models.Slot.date, models.Slot.time)
            .all()
        )

    # ---- diary ---------------------------------------------------------

    def add_diary_entry(self, client_id: int, text: str) -> models.DiaryEntry:
        entry = models.DiaryEntry(client_id=client_id, text=text)
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def list_diary_entries(self, client_id: int, limit: int = 5) -> List[models.DiaryEntry]:
        return (
            self.db.query(models.DiaryEntry)
            .filter(models.DiaryEntry.client_id == client_id)
            .order_by(models.DiaryEntry.created_at.desc(), models.DiaryEntry.id.desc())
            .limit(limit)
            .all()
        )

    def list_recent_diary(self, limit: int = 50) -> List[models.DiaryEntry]:
        return (
            self.db.query(models.DiaryEntry)
            .options(joinedload(models.DiaryEntry.client))
            .order_by(models.DiaryEntry.created_at.desc(), models.DiaryEntry.id.desc())
            .limit(limit)
            .all()
        )

    # ---- SOS -----------------------------------------------------------

    def create_sos_request(self, client_id: int, text: Optional[str] = None) -> models.SosRequest:
        request = models.SosRequest(client_id=client_id, text=text, status=SosStatus.NEW)
        self.db.add(request)
        self.db.commit()
        self.db.refresh(request)
        return request

    def get_sos_request(self, request_id: int) -> Optional[models.SosRequest]:
        return self.db.get(models.SosRequest, request_id)

    def attach_sos_text(self, request: models.SosRequest, text: str):
        request.text = text
        self.db.commit()

    def list_sos_requests(self, status: Optional[SosStatus] = None) -> List[models.SosRequest]:
        query = self.db.query(models.SosRequest).options(joinedload(models.SosRequest.client))
        if status:
            query = query.filter(models.SosRequest.status == status)
        return query.order_by(models.SosRequest.created_at.desc(), models.SosRequest.id.desc()).all()

    def mark_sos_viewed(self, request: models.SosRequest):
        request.status = SosStatus.VIEWED
        self.db.commit()

    def delete_sos_older_than(self, cutoff: datetime) -> int:
        deleted = (
            self.db.query(models.SosRequest)
            .filter(models.SosRequest.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    # ---- payments ------------------------------------------------------

    def create_payment(self, client_id: int, screenshot_url: str) -> models.Payment:
        payment = models.Payment(client_id=client_id, screenshot_url=screenshot_url)
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def get_payment(self, payment_id: int) -> Optional[models.Payment]:
        return self.db.get(models.Payment, payment_id)

    def list_payments(self, client_id: Optional[int] = None) -> List[models.Payment]:
        query = self.db.query(models.Payment).options(joinedload(models.Payment.client))
        if client_id:
            query = query.filter(models.Payment.client_id == client_id)
        return query.order_by(models.Payment.created_at.desc(), models.Payment.id.desc()).all()

    def list_payments_older_than(self, cutoff: datetime) -> List[models.Payment]:
        return self.db.query(models.Payment).filter(models.Payment.created_at < cutoff).all()

    def delete_payment(self, payment: models.Payment):
        self.db.delete(payment)
        self.db.commit()

    # ---- settings ------------------------------------------------------

    def get_setting(self, key: str, default: Any = None) -> Any:
        setting = self.db.query(models.BotSetting).filter(models.BotSetting.key == key).first()
        if setting is None or setting.value is None:
            return default
        return setting.value

    def set_setting(self, key: str, value: Any):
        setting = self.db.query(models.BotSetting).filter(models.BotSetting.key == key).first()
        if setting:
            setting.value = value
            setting.updated_at = datetime.utcnow()
        else:
            self.db.add(models.BotSetting(key=key, value=value))
        self.db.commit()

    def delete_setting(self, key: str):
        self.db.query(models.BotSetting).filter(models.BotSetting.key == key).delete(synchronize_session=False)
        self.db.commit()

    def get_text_setting(self, key: str) -> str:
        """Значення налаштування у форматі {"value": ...} або {"card_number": ...}"""
        value = self.get_setting(key)
        if isinstance(value, dict):
            return value.get("value") or value.get("card_number") or ""
        if isinstance(value, str):
            return value
        return ""
