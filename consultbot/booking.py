"""
Slot booking and cancellation.

A slot moves free -> booked only through a conditional UPDATE guarded by
status = 'free'; the booking row is inserted in the same transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .models import AvailableFormats, BookingStatus, SessionFormat, SlotStatus
from .repository import Repository
from .timeutils import local_now

logger = logging.getLogger(__name__)

CANCEL_MIN_HOURS = 24
REGULAR_COMMENT = "Регулярный клиент"

ERROR_BOOKING_NOT_FOUND = "Запись не найдена"
ERROR_SLOT_NOT_FOUND = "Слот не найден"
ERROR_CLIENT_NOT_FOUND = "Клиент не найден"
ERROR_TOO_LATE = "Отменить запись можно не позднее чем за 24 часа до начала"
ERROR_PAST_DATE = "Нельзя записаться на дату из прошлого"
ERROR_SLOT_TAKEN = "Слот уже занят"


@dataclass
class BookingResult:
    success: bool
    error: Optional[str] = None
    booking: Optional[models.Booking] = None
    slot: Optional[models.Slot] = None
    client: Optional[models.Client] = None


@dataclass
class RegularBookingResult:
    client: Optional[models.Client] = None
    bookings: List[models.Booking] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def created(self) -> int:
        return len(self.bookings)

    @property
    def success(self) -> bool:
        return self.created > 0


def _claim_slot(
    db: Session,
    slot_id: int,
    client_id: int,
    fmt: SessionFormat,
    comment: Optional[str] = None,
) -> Optional[models.Booking]:
    """Зайняти вільний слот і створити запис в одній транзакції. None, якщо слот вже зайнятий"""
    values = {"status": SlotStatus.BOOKED, "client_id": client_id, "format": fmt}
    if comment is not None:
        values["comment"] = comment

    try:
        result = db.execute(
            update(models.Slot)
            .where(models.Slot.id == slot_id, models.Slot.status == SlotStatus.FREE)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.info(f"⛔ Слот {slot_id} вже зайнятий")
            return None

        booking = models.Booking(client_id=client_id, slot_id=slot_id, status=BookingStatus.ACTIVE)
        db.add(booking)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"⛔ База відхилила запис на слот {slot_id}")
        return None
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"❌ Помилка запису на слот {slot_id}")
        return None

    db.refresh(booking)
    return booking


def book_slot(
    db: Session,
    client_id: int,
    slot_id: int,
    fmt: Union[SessionFormat, str],
    now: Optional[datetime] = None,
) -> bool:
    """Записати клієнта на вільний слот. False, якщо слот зайнятий, у минулому або формат недоступний"""
    now = now or local_now()
    fmt = SessionFormat(fmt)

    slot = db.get(models.Slot, slot_id)
    if slot is None:
        logger.info(f"❌ Слот {slot_id} не знайдено")
        return False

    if slot.starts_at < now:
        logger.info(f"❌ Слот {slot_id} вже в минулому ({slot.starts_at})")
        return False

    if not AvailableFormats(slot.available_formats).allows(fmt):
        logger.info(f"❌ Формат {fmt.value} недоступний для слота {slot_id}")
        return False

    booking = _claim_slot(db, slot_id, client_id, fmt)
    if booking is None:
        return False

    logger.info(f"✅ Клієнт {client_id} записаний на слот {slot_id} ({fmt.value}), запис #{booking.id}")
    return True


def _release(db: Session, booking: models.Booking) -> bool:
    """Скасувати активний запис і звільнити слот"""
    try:
        result = db.execute(
            update(models.Booking)
            .where(models.Booking.id == booking.id, models.Booking.status == BookingStatus.ACTIVE)
            .values(status=BookingStatus.CANCELED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            return False

        db.execute(
            update(models.Slot)
            .where(models.Slot.id == booking.slot_id)
            .values(status=SlotStatus.FREE, client_id=None, format=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"❌ Помилка скасування запису #{booking.id}")
        raise

    db.refresh(booking)
    return True


def cancel_booking(
    db: Session,
    booking_id: int,
    by_admin: bool = False,
    now: Optional[datetime] = None,
    client_id: Optional[int] = None,
) -> BookingResult:
    """Скасувати запис. Клієнт може скасувати не пізніше ніж за 24 години, адмін - будь-коли"""
    now = now or local_now()

    booking = db.get(models.Booking, booking_id)
    if booking is None or booking.status != BookingStatus.ACTIVE:
        return BookingResult(False, error=ERROR_BOOKING_NOT_FOUND)
    if client_id is not None and booking.client_id != client_id:
        return BookingResult(False, error=ERROR_BOOKING_NOT_FOUND)

    slot = booking.slot
    client = booking.client
    if slot is None:
        return BookingResult(False, error=ERROR_SLOT_NOT_FOUND, booking=booking, client=client)

    if not by_admin:
        hours_left = (slot.starts_at - now).total_seconds() / 3600
        if hours_left < CANCEL_MIN_HOURS:
            return BookingResult(False, error=ERROR_TOO_LATE, booking=booking, slot=slot, client=client)

    if not _release(db, booking):
        return BookingResult(False, error=ERROR_BOOKING_NOT_FOUND, booking=booking, slot=slot, client=client)

    logger.info(f"❌ Запис #{booking_id} скасовано ({'адмін' if by_admin else 'клієнт'})")
    return BookingResult(True, booking=booking, slot=slot, client=client)


def cancel_slot_booking(db: Session, slot_id: int) -> BookingResult:
    """Адмін скасовує активний запис на слоті"""
    slot = db.get(models.Slot, slot_id)
    if slot is None:
        return BookingResult(False, error=ERROR_SLOT_NOT_FOUND)

    booking = Repository(db).get_active_booking_for_slot(slot_id)
    if booking is None:
        if slot.status == SlotStatus.BOOKED:
            client = slot.client
            slot.status = SlotStatus.FREE
            slot.client_id = None
            slot.format = None
            db.commit()
            return BookingResult(True, slot=slot, client=client)
        return BookingResult(False, error=ERROR_BOOKING_NOT_FOUND, slot=slot)

    return cancel_booking(db, booking.id, by_admin=True)


def book_for_client(
    db: Session,
    client_id: int,
    slot_date: date,
    slot_time: time,
    fmt: Union[SessionFormat, str] = SessionFormat.OFFLINE,
    now: Optional[datetime] = None,
    comment: Optional[str] = None,
    available_formats: AvailableFormats = AvailableFormats.BOTH,
) -> BookingResult:
    """Адмін записує клієнта на дату/час; слот створюється, якщо його немає"""
    now = now or local_now()
    fmt = SessionFormat(fmt)
    repo = Repository(db)

    client = repo.get_client(client_id)
    if client is None:
        return BookingResult(False, error=ERROR_CLIENT_NOT_FOUND)

    # Сьогодні можна на будь-який час
    if slot_date < now.date():
        return BookingResult(False, error=ERROR_PAST_DATE, client=client)

    try:
        slot, created = repo.create_slot(slot_date, slot_time, available_formats)
    except IntegrityError:
        db.rollback()
        slot, created = repo.find_slot(slot_date, slot_time), False
        if slot is None:
            raise
    if created:
        logger.info(f"📅 Створено слот {slot.id}: {slot_date} {slot_time}")

    if slot.status != SlotStatus.FREE:
        return BookingResult(False, error=ERROR_SLOT_TAKEN, slot=slot, client=client)

    booking = _claim_slot(db, slot.id, client.id, fmt, comment=comment)
    if booking is None:
        return BookingResult(False, error=ERROR_SLOT_TAKEN, slot=slot, client=client)

    return BookingResult(True, booking=booking, slot=booking.slot, client=client)


def book_regular(
    db: Session,
    client_id: int,
    first_date: date,
    slot_time: time,
    weeks: int = 4,
    fmt: Union[SessionFormat, str] = SessionFormat.OFFLINE,
    now: Optional[datetime] = None,
) -> RegularBookingResult:
    """Регулярні консультації: той самий час щотижня, weeks тижнів поспіль"""
    now = now or local_now()
    fmt = SessionFormat(fmt)

    client = Repository(db).get_client(client_id)
    result = RegularBookingResult(client=client)
    if client is None:
        result.errors.append(ERROR_CLIENT_NOT_FOUND)
        return result

    if first_date < now.date():
        result.errors.append(ERROR_PAST_DATE)
        return result

    slot_formats = AvailableFormats(fmt.value)
    for week in range(weeks):
        slot_date = first_date + timedelta(weeks=week)
        single = book_for_client(
            db,
            client_id,
            slot_date,
            slot_time,
            fmt,
            now=now,
            comment=REGULAR_COMMENT,
            available_formats=slot_formats,
        )
        if single.success:
            result.bookings.append(single.booking)
        else:
            label = f"{slot_date.isoformat()} {slot_time.strftime('%H:%M')}"
            reason = "уже занято" if single.error == ERROR_SLOT_TAKEN else single.error
            result.errors.append(f"{label} - {reason}")

    logger.info(f"📅 Регулярні записи для клієнта {client_id}: створено {result.created}, помилок {len(result.errors)}")
    return result


def complete_past_bookings(db: Session, now: Optional[datetime] = None) -> int:
    """Позначити активні записи на слоти, що вже минули, як completed"""
    now = now or local_now()
    completed = 0
    for booking in Repository(db).list_active_bookings():
        if booking.slot.starts_at < now:
            booking.status = BookingStatus.COMPLETED
            completed += 1
    if completed:
        db.commit()
    return completed
