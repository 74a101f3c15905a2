"""
Client-produced records: SOS requests, payment screenshots, diary entries
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_admin
from ..database import get_db
from ..dependencies import get_storage
from ..models import SosStatus
from ..repository import Repository
from ..storage import LocalStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Records"])


@router.get("/sos", response_model=List[schemas.SosResponse])
def get_sos_requests(
    status_filter: Optional[SosStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    return Repository(db).list_sos_requests(status_filter)


@router.put("/sos/{request_id}", response_model=schemas.SosResponse)
def mark_sos_viewed(request_id: int, db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    repo = Repository(db)
    request = repo.get_sos_request(request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Запрос не найден")
    repo.mark_sos_viewed(request)
    return request


@router.get("/payments", response_model=List[schemas.PaymentResponse])
def get_payments(
    client_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    return Repository(db).list_payments(client_id)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    admin: dict = Depends(get_current_admin),
):
    """Видалити оплату разом з файлом скріншота"""
    repo = Repository(db)
    payment = repo.get_payment(payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Оплата не найдена")

    try:
        storage.delete_payment_screenshot(payment.screenshot_url)
    except OSError as e:
        logger.error(f"❌ Не вдалося видалити файл оплати {payment_id}: {e}")
    repo.delete_payment(payment)
    return None


@router.get("/diary", response_model=List[schemas.DiaryEntryResponse])
def get_diary(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    """Останні 50 записів щоденника всіх клієнтів"""
    return Repository(db).list_recent_diary(50)
