"""
Shared FastAPI dependencies: notifier, storage and the bot application live on app.state
"""
from typing import Optional

from fastapi import Request
from telegram.ext import Application

from .storage import LocalStorage
from .telegram_service import TelegramNotifier


def get_notifier(request: Request) -> TelegramNotifier:
    return request.app.state.notifier


def get_storage(request: Request) -> LocalStorage:
    return request.app.state.storage


def get_bot_application(request: Request) -> Optional[Application]:
    return getattr(request.app.state, "bot_app", None)
