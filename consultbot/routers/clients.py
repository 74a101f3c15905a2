import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_admin
from ..database import get_db
from ..dependencies import get_notifier
from ..repository import Repository
from ..telegram_service import TelegramNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["Clients"])


def _client_response(client, bookings_count: int = 0, diary_count: int = 0) -> schemas.ClientResponse:
    response = schemas.ClientResponse.model_validate(client)
    response.bookings_count = bookings_count
    response.diary_count = diary_count
    return response


def _get_client_or_404(repo: Repository, client_id: int):
    client = repo.get_client(client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Клиент не найден")
    return client


@router.get("", response_model=List[schemas.ClientResponse])
def get_clients(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    """Всі клієнти з кількістю активних записів і записів щоденника"""
    return [_client_response(c, b, d) for c, b, d in Repository(db).list_clients_with_counts()]


@router.get("/{client_id}", response_model=schemas.ClientResponse)
def get_client(client_id: int, db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    repo = Repository(db)
    client = _get_client_or_404(repo, client_id)
    return _client_response(client, len(repo.list_client_active_bookings(client.id)), len(client.diary_entries))


@router.put("/{client_id}", response_model=schemas.ClientResponse)
def update_client(
    client_id: int,
    client_data: schemas.ClientUpdate,
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    repo = Repository(db)
    client = repo.update_client(_get_client_or_404(repo, client_id), client_data.first_name, client_data.last_name)
    return _client_response(client, len(repo.list_client_active_bookings(client.id)), len(client.diary_entries))


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    notifier: TelegramNotifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),
):
    """Видалити клієнта: активні записи скасовуються, клієнт отримує сповіщення"""
    repo = Repository(db)
    client = _get_client_or_404(repo, client_id)

    # адресат сповіщень, бо після коміту клієнта вже немає
    recipient = models.Client(
        telegram_id=client.telegram_id,
        first_name=client.first_name,
        last_name=client.last_name,
        username=client.username,
    )
    freed = repo.delete_client(client)

    for slot in freed:
        await notifier.send_booking_cancelled_by_admin(recipient, slot)
    return None
