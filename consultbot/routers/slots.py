import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_admin
from ..booking import cancel_slot_booking
from ..database import get_db
from ..dependencies import get_notifier
from ..models import SlotStatus
from ..repository import Repository
from ..telegram_service import TelegramNotifier
from ..timeutils import local_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/slots", tags=["Slots"])


@router.get("", response_model=List[schemas.SlotResponse])
def get_slots(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    """Слоти від сьогодні, разом з клієнтом"""
    return Repository(db).list_slots_from(local_now().date())


@router.post("", response_model=schemas.SlotResponse)
def create_slot(
    slot_data: schemas.SlotCreate,
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    """Створити слот; для дубліката дати/часу повертається існуючий"""
    repo = Repository(db)
    try:
        slot, created = repo.create_slot(slot_data.date, slot_data.time, slot_data.available_formats)
    except IntegrityError:
        # паралельне створення того ж слота
        db.rollback()
        slot = repo.find_slot(slot_data.date, slot_data.time)
        if slot is None:
            raise
        created = False

    if created:
        logger.info(f"📅 Створено слот {slot.id}: {slot.date} {slot.time}")
    return slot


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(slot_id: int, db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    repo = Repository(db)
    slot = repo.get_slot(slot_id)
    if not slot:
        raise HTTPException(status_code=404, detail="Слот не найден")
    if slot.status == SlotStatus.BOOKED:
        raise HTTPException(status_code=409, detail="Сначала отмените запись на этот слот")

    repo.delete_slot(slot)
    return None


@router.post("/{slot_id}/cancel", response_model=schemas.SlotResponse)
async def cancel_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    notifier: TelegramNotifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),
):
    """Адмін скасовує запис на слоті, клієнт отримує сповіщення"""
    result = cancel_slot_booking(db, slot_id)
    if not result.success:
        code = 404 if result.slot is None else 400
        raise HTTPException(status_code=code, detail=result.error)

    if result.client:
        await notifier.send_booking_cancelled_by_admin(result.client, result.slot)
    return result.slot
