import asyncio
from datetime import date, time
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from consultbot import models
from consultbot.database import Base, enable_sqlite_foreign_keys
from consultbot.models import AvailableFormats
from consultbot.storage import LocalStorage
from consultbot.telegram_service import TelegramNotifier

ADMIN_ID = 900


class FakeNotifier(TelegramNotifier):
    """Записує повідомлення замість відправки в Telegram"""

    def __init__(self, fail: bool = False):
        super().__init__(bot=None, admin_ids=[ADMIN_ID], broadcast_delay=0)
        self.sent = []
        self.fail = fail

    async def send_message(self, chat_id, text, reply_markup=None):
        self.sent.append((chat_id, text))
        return not self.fail

    def texts_to(self, chat_id):
        return [text for cid, text in self.sent if cid == chat_id]


class FakeFile:
    def __init__(self, content: bytes):
        self.content = content

    async def download_as_bytearray(self):
        return bytearray(self.content)


class FakeBot:
    """Мінімальний бот для хендлерів: записує виклики"""

    def __init__(self):
        self.messages = []
        self.photos = []
        self.commands = []

    async def send_message(self, chat_id, text, parse_mode=None, reply_markup=None):
        self.messages.append(SimpleNamespace(chat_id=chat_id, text=text, reply_markup=reply_markup))

    async def send_photo(self, chat_id, photo, caption=None, parse_mode=None, reply_markup=None):
        self.photos.append(SimpleNamespace(chat_id=chat_id, photo=photo, caption=caption))

    async def get_file(self, file_id):
        return FakeFile(b"screenshot-" + file_id.encode())

    async def set_my_commands(self, commands):
        self.commands.append(commands)

    async def set_chat_menu_button(self, chat_id=None, menu_button=None):
        pass

    async def set_webhook(self, url, allowed_updates=None):
        pass

    def texts_to(self, chat_id):
        return [m.text for m in self.messages if m.chat_id == chat_id]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def storage(tmp_path):
    storage = LocalStorage(root=str(tmp_path / "storage"), public_url="http://test")
    storage.init()
    return storage


def make_client(db, telegram_id=111, first_name="Анна", username="anna"):
    client = models.Client(telegram_id=telegram_id, first_name=first_name, username=username)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def make_slot(db, slot_date=date(2025, 6, 10), slot_time=time(10, 0), formats=AvailableFormats.BOTH):
    slot = models.Slot(date=slot_date, time=slot_time, available_formats=formats)
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


def run(coro):
    return asyncio.run(coro)
