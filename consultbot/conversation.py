"""
Per-chat conversation state.

Each chat has at most one pending flow. Setting a flow overwrites the previous
one; no row means the chat is at the menu.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from .models import ChatState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitingDiary:
    kind = "waiting_diary"


@dataclass(frozen=True)
class WaitingSos:
    sos_request_id: int
    kind = "waiting_sos"


@dataclass(frozen=True)
class WaitingPayment:
    client_id: int
    kind = "waiting_payment"


@dataclass(frozen=True)
class WaitingBroadcast:
    kind = "waiting_broadcast"


Flow = Union[WaitingDiary, WaitingSos, WaitingPayment, WaitingBroadcast]


def _to_payload(flow: Flow) -> dict:
    if isinstance(flow, WaitingSos):
        return {"sos_request_id": flow.sos_request_id}
    if isinstance(flow, WaitingPayment):
        return {"client_id": flow.client_id}
    return {}


def _from_row(row: ChatState) -> Optional[Flow]:
    payload = row.payload or {}
    if row.flow == WaitingDiary.kind:
        return WaitingDiary()
    if row.flow == WaitingSos.kind and payload.get("sos_request_id") is not None:
        return WaitingSos(int(payload["sos_request_id"]))
    if row.flow == WaitingPayment.kind and payload.get("client_id") is not None:
        return WaitingPayment(int(payload["client_id"]))
    if row.flow == WaitingBroadcast.kind:
        return WaitingBroadcast()
    logger.warning(f"⚠️ Невідомий стан чату {row.chat_id}: {row.flow} {payload}")
    return None


def get_state(db: Session, chat_id: int) -> Optional[Flow]:
    row = db.get(ChatState, chat_id)
    if row is None:
        return None
    return _from_row(row)


def set_state(db: Session, chat_id: int, flow: Flow):
    """Встановити очікуваний крок (перезаписує попередній)"""
    row = db.get(ChatState, chat_id)
    if row is None:
        row = ChatState(chat_id=chat_id)
        db.add(row)
    row.flow = flow.kind
    row.payload = _to_payload(flow)
    row.updated_at = datetime.utcnow()
    db.commit()


def clear_state(db: Session, chat_id: int):
    row = db.get(ChatState, chat_id)
    if row is not None:
        db.delete(row)
        db.commit()
