"""
Application settings loaded from environment / .env
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _parse_ids(raw: str) -> List[int]:
    """Парсити список telegram id, розділених комою"""
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            ids.append(int(part))
    return ids


class Settings:
    """Налаштування сервісу"""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./consultbot.db")

        # Telegram
        self.bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.admin_ids = _parse_ids(os.getenv("ADMIN_TELEGRAM_IDS", ""))

        # Admin API
        self.secret_key = os.getenv("SECRET_KEY", "your-secret-key-change-this-in-production")
        self.admin_password = os.getenv("ADMIN_PASSWORD", "admin123")
        self.access_token_expire_days = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "30"))

        # Storage / URLs
        self.storage_dir = os.getenv("STORAGE_DIR", "./storage")
        self.public_url = os.getenv("PUBLIC_URL", "http://localhost:8000").rstrip("/")
        self.project_url = os.getenv("PROJECT_URL", self.public_url)

        # Schedule
        self.timezone_offset_hours = int(os.getenv("TIMEZONE_OFFSET_HOURS", "3"))
        self.reminder_interval_seconds = int(os.getenv("REMINDER_INTERVAL_SECONDS", "300"))
        self.broadcast_delay_seconds = float(os.getenv("BROADCAST_DELAY_SECONDS", "0.05"))

        self.log_level = os.getenv("LOG_LEVEL", "INFO")

    def is_admin(self, telegram_id: int) -> bool:
        return telegram_id in self.admin_ids


settings = Settings()
