"""
Local file storage for payment screenshots
"""
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

from .config import settings

logger = logging.getLogger(__name__)

PAYMENTS_PREFIX = "/storage/payments/"


class LocalStorage:
    """Файли лежать у STORAGE_DIR/payments/<client_id>/, URL будується від PUBLIC_URL"""

    def __init__(self, root: Optional[str] = None, public_url: Optional[str] = None):
        self.root = Path(root or settings.storage_dir)
        self.public_url = (public_url or settings.public_url).rstrip("/")

    @property
    def payments_dir(self) -> Path:
        return self.root / "payments"

    def init(self):
        self.payments_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"✓ Сховище: {self.root.resolve()}")

    def save_payment_screenshot(self, client_id: int, content: bytes) -> str:
        """Зберегти скріншот, повертає публічний URL"""
        client_dir = self.payments_dir / str(client_id)
        client_dir.mkdir(parents=True, exist_ok=True)

        filename = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.jpg"
        (client_dir / filename).write_bytes(content)

        url = f"{self.public_url}{PAYMENTS_PREFIX}{client_id}/{filename}"
        logger.info(f"💾 Скріншот оплати збережено: {url}")
        return url

    def path_for_url(self, screenshot_url: str) -> Optional[Path]:
        if PAYMENTS_PREFIX not in screenshot_url:
            return None
        relative = screenshot_url.split(PAYMENTS_PREFIX, 1)[1]
        path = (self.payments_dir / relative).resolve()
        # не виходити за межі сховища
        if self.payments_dir.resolve() not in path.parents:
            return None
        return path

    def delete_payment_screenshot(self, screenshot_url: str) -> bool:
        path = self.path_for_url(screenshot_url)
        if path is None or not path.exists():
            logger.info(f"Файл не знайдено або вже видалено: {screenshot_url}")
            return False
        path.unlink()
        logger.info(f"🗑️ Видалено файл {path}")
        return True
