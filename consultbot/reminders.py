"""
Reminder sweep: 24h and 1h notices for upcoming consultations.

Runs every few minutes. A reminder is sent when the slot starts within
+/- WINDOW of now+24h (or now+1h) and its flag is not set yet; the flag is
set only after a successful send. A crash between the send and the commit
can produce a duplicate reminder (best effort, not exactly-once).
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .repository import Repository
from .telegram_service import TelegramNotifier
from .timeutils import local_now

logger = logging.getLogger(__name__)

WINDOW = timedelta(minutes=5)
REMINDERS = (
    (24, "reminder_24h_sent"),
    (1, "reminder_1h_sent"),
)


@dataclass
class ReminderReport:
    checked: int = 0
    sent_24h: int = 0
    sent_1h: int = 0


def _in_window(starts_at: datetime, target: datetime) -> bool:
    return target - WINDOW <= starts_at <= target + WINDOW


async def run_sweep(db: Session, notifier: TelegramNotifier, now: Optional[datetime] = None) -> ReminderReport:
    """Один прохід по активних записах"""
    now = now or local_now()
    report = ReminderReport()

    bookings = Repository(db).list_active_bookings()
    report.checked = len(bookings)

    for booking in bookings:
        slot, client = booking.slot, booking.client
        if slot is None or client is None:
            logger.info(f"Пропуск запису #{booking.id}: немає слота або клієнта")
            continue

        for hours, flag in REMINDERS:
            if getattr(booking, flag):
                continue
            if not _in_window(slot.starts_at, now + timedelta(hours=hours)):
                continue

            logger.info(f"⏰ Нагадування за {hours} год. для запису #{booking.id} → {client.telegram_id}")
            if not await notifier.send_reminder(client, slot, hours):
                logger.error(f"❌ Не вдалося відправити нагадування для запису #{booking.id}")
                continue

            setattr(booking, flag, True)
            db.commit()
            if hours == 24:
                report.sent_24h += 1
            else:
                report.sent_1h += 1

    logger.info(
        f"Перевірка нагадувань: {report.checked} записів, "
        f"відправлено {report.sent_24h} (24 год.) і {report.sent_1h} (1 год.)"
    )
    return report
