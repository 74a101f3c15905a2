"""
Daily cleanup: old payment screenshots, old SOS requests, past bookings
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .booking import complete_past_bookings
from .repository import Repository
from .storage import LocalStorage

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=7)


@dataclass
class CleanupReport:
    payments_deleted: int = 0
    sos_deleted: int = 0
    bookings_completed: int = 0


def cleanup_old_payments(db: Session, storage: LocalStorage, now: Optional[datetime] = None) -> int:
    cutoff = (now or datetime.utcnow()) - RETENTION
    repo = Repository(db)

    old_payments = repo.list_payments_older_than(cutoff)
    if not old_payments:
        logger.info("Немає старих оплат для видалення")
        return 0

    deleted = 0
    for payment in old_payments:
        try:
            storage.delete_payment_screenshot(payment.screenshot_url)
        except OSError as e:
            logger.error(f"❌ Не вдалося видалити файл оплати {payment.id}: {e}")
        repo.delete_payment(payment)
        deleted += 1
        logger.info(f"🗑️ Видалено оплату {payment.id}")
    return deleted


def cleanup_old_sos(db: Session, now: Optional[datetime] = None) -> int:
    cutoff = (now or datetime.utcnow()) - RETENTION
    deleted = Repository(db).delete_sos_older_than(cutoff)
    logger.info(f"🗑️ Видалено {deleted} SOS-запитів старше {cutoff:%Y-%m-%d}")
    return deleted


def run_cleanup(db: Session, storage: LocalStorage, now: Optional[datetime] = None) -> CleanupReport:
    """Created_at зберігається в UTC, тому now тут - UTC"""
    report = CleanupReport(
        payments_deleted=cleanup_old_payments(db, storage, now),
        sos_deleted=cleanup_old_sos(db, now),
        bookings_completed=complete_past_bookings(db),
    )
    logger.info(f"✅ Очищення завершено: {report}")
    return report


def main():
    """Точка входу для cron"""
    from .config import settings
    from .database import Base, SessionLocal, engine

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        run_cleanup(db, LocalStorage())
    finally:
        db.close()


if __name__ == "__main__":
    main()
