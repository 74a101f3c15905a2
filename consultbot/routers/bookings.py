import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_admin
from ..booking import ERROR_CLIENT_NOT_FOUND, book_for_client, book_regular, cancel_booking
from ..database import get_db
from ..dependencies import get_notifier
from ..repository import Repository
from ..telegram_service import TelegramNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.get("", response_model=List[schemas.BookingResponse])
def get_bookings(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    """Активні записи, впорядковані за датою і часом"""
    return Repository(db).list_active_bookings()


@router.post("", response_model=schemas.BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: schemas.BookingCreate,
    db: Session = Depends(get_db),
    notifier: TelegramNotifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),
):
    """Записати клієнта на дату/час (слот створюється за потреби)"""
    result = book_for_client(
        db,
        booking_data.client_id,
        booking_data.date,
        booking_data.time,
        booking_data.format,
    )
    if not result.success:
        code = 404 if result.error == ERROR_CLIENT_NOT_FOUND else 400
        raise HTTPException(status_code=code, detail=result.error)

    # 🤖 сповіщення клієнту
    await notifier.send_booking_assigned(result.client, result.slot)
    return result.booking


@router.post("/regular", response_model=schemas.RegularBookingResponse, status_code=status.HTTP_201_CREATED)
async def create_regular_bookings(
    booking_data: schemas.RegularBookingCreate,
    db: Session = Depends(get_db),
    notifier: TelegramNotifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),
):
    """Регулярні консультації: той самий день тижня і час, weeks тижнів"""
    result = book_regular(
        db,
        booking_data.client_id,
        booking_data.date,
        booking_data.time,
        weeks=booking_data.weeks,
        fmt=booking_data.format,
    )
    if result.client is None:
        raise HTTPException(status_code=404, detail=ERROR_CLIENT_NOT_FOUND)
    if not result.success:
        raise HTTPException(status_code=400, detail="; ".join(result.errors) or "Не удалось создать записи")

    first_slot = result.bookings[0].slot
    await notifier.send_regular_bookings_assigned(result.client, first_slot, booking_data.weeks)
    await notifier.send_regular_bookings_notification(result.client, first_slot, booking_data.weeks, result.created)

    return schemas.RegularBookingResponse(
        created=result.created,
        errors=result.errors,
        bookings=[schemas.BookingResponse.model_validate(b) for b in result.bookings],
    )


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    notifier: TelegramNotifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),
):
    """Скасувати запис (адмін, без обмеження 24 години)"""
    result = cancel_booking(db, booking_id, by_admin=True)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)

    await notifier.send_booking_cancelled_by_admin(result.client, result.slot)
    return None
