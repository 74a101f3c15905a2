"""
Telegram notifications: admins, clients, reminders, broadcast
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from telegram import Bot
from telegram.error import TelegramError

from . import models
from .config import settings
from .models import SessionFormat
from .timeutils import format_date, format_time

logger = logging.getLogger(__name__)


def format_label(fmt) -> str:
    if fmt is None:
        return ""
    return "💻 онлайн" if SessionFormat(fmt) == SessionFormat.ONLINE else "🏠 очно"


def consultations_word(count: int) -> str:
    if count == 1:
        return "консультация"
    if count < 5:
        return "консультации"
    return "консультаций"


class TelegramNotifier:
    """Клас для відправки Telegram сповіщень"""

    def __init__(
        self,
        bot: Optional[Bot] = None,
        admin_ids: Optional[List[int]] = None,
        broadcast_delay: Optional[float] = None,
    ):
        self.bot = bot
        self.admin_ids = list(settings.admin_ids if admin_ids is None else admin_ids)
        self.broadcast_delay = settings.broadcast_delay_seconds if broadcast_delay is None else broadcast_delay

        if not self.bot:
            logger.warning("⚠️ Telegram бот не налаштований, сповіщення вимкнені")

    async def send_message(self, chat_id: int, text: str, reply_markup=None) -> bool:
        """Відправити повідомлення; помилки Telegram логуються і не пробрасываются"""
        if not self.bot:
            return False
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode="HTML",
                reply_markup=reply_markup,
            )
            return True
        except TelegramError as e:
            logger.error(f"❌ Помилка відправки в чат {chat_id}: {e}")
            return False

    async def send_photo(self, chat_id: int, photo: str, caption: str = "", reply_markup=None) -> bool:
        if not self.bot:
            return False
        try:
            await self.bot.send_photo(
                chat_id=chat_id,
                photo=photo,
                caption=caption or None,
                parse_mode="HTML",
                reply_markup=reply_markup,
            )
            return True
        except TelegramError as e:
            logger.error(f"❌ Помилка відправки фото в чат {chat_id}: {e}")
            return False

    async def notify_admins(self, text: str) -> int:
        """Відправити всім адмінам, повертає кількість успішних"""
        if not self.admin_ids:
            logger.warning("Немає адмінів для сповіщень")
            return 0

        success_count = 0
        for admin_id in self.admin_ids:
            if await self.send_message(admin_id, text):
                success_count += 1
        return success_count

    async def broadcast(self, chat_ids: Iterable[int], text: str) -> int:
        """Розсилка по черзі з фіксованою паузою (ліміт Telegram)"""
        chat_ids = list(chat_ids)
        sent = 0
        for chat_id in chat_ids:
            if await self.send_message(chat_id, text):
                sent += 1
            if self.broadcast_delay:
                await asyncio.sleep(self.broadcast_delay)
        logger.info(f"📢 Розсилка завершена: {sent} з {len(chat_ids)}")
        return sent

    # ---- admin notifications ------------------------------------------

    async def send_new_user_notification(self, client: models.Client) -> int:
        last_name = f" {client.last_name}" if client.last_name else ""
        return await self.notify_admins(
            f"🎉 <b>Новый пользователь!</b>\n"
            f"👤 username: {client.mention}\n"
            f"✨ Имя: {client.display_name}{last_name}"
        )

    async def send_new_booking_notification(self, client: models.Client, slot: models.Slot) -> int:
        username = f"@{client.username}" if client.username else ""
        return await self.notify_admins(
            f"📅 <b>Новая запись!</b>\n\n"
            f"Клиент: {client.display_name} {username}\n"
            f"🆔 id: {client.telegram_id}\n\n"
            f"📆 {format_date(slot.date)} в {format_time(slot.time)}\n"
            f"{format_label(slot.format)}"
        )

    async def send_client_cancelled_notification(self, client: models.Client, slot: models.Slot) -> int:
        username = f"@{client.username}" if client.username else ""
        return await self.notify_admins(
            f"❌ <b>Клиент отменил запись</b>\n\n"
            f"Клиент: {client.display_name} {username}\n"
            f"🆔 id: {client.telegram_id}\n\n"
            f"📆 {format_date(slot.date)} в {format_time(slot.time)}"
        )

    async def send_sos_notification(self, client: models.Client) -> int:
        return await self.notify_admins(
            f"⚠️ <b>SOS-сигнал</b>\n\n"
            f"Пользователь нажал кнопку SOS.\n\n"
            f"🆔 id: {client.telegram_id}\n"
            f"👤 username: {client.mention}\n"
            f"📛 Имя: {client.first_name or 'Пользователь'}\n\n"
            f"Вы можете ответить пользователю напрямую в Telegram."
        )

    async def send_sos_addition_notification(self, client: models.Client, text: str) -> int:
        return await self.notify_admins(
            f"📝 <b>Дополнение к SOS</b>\n\n"
            f"От: {client.first_name or 'Пользователь'} ({client.mention})\n"
            f"🆔 id: {client.telegram_id}\n\n"
            f"Сообщение:\n{text}"
        )

    async def send_payment_notification(self, client: models.Client) -> int:
        username = f"@{client.username}" if client.username else ""
        return await self.notify_admins(
            f"💳 <b>Новый скриншот оплаты</b>\n\n"
            f"От: {client.first_name or 'Пользователь'} {username}\n"
            f"🆔 id: {client.telegram_id}"
        )

    async def send_regular_bookings_notification(
        self, client: models.Client, first_slot: models.Slot, weeks: int, created: int
    ) -> int:
        username = f"@{client.username}" if client.username else ""
        return await self.notify_admins(
            f"📅 <b>Назначены регулярные консультации!</b>\n\n"
            f"Клиент: {client.display_name} {username}\n"
            f"🆔 id: {client.telegram_id}\n\n"
            f"📆 Первая консультация: {format_date(first_slot.date)} в {format_time(first_slot.time)}\n"
            f"{format_label(first_slot.format)}\n\n"
            f"Всего: {weeks} {consultations_word(weeks)}\n"
            f"Создано: {created}"
        )

    # ---- client notifications -----------------------------------------

    async def send_booking_cancelled_by_admin(self, client: models.Client, slot: models.Slot) -> bool:
        name = client.first_name or "Уважаемый клиент"
        return await self.send_message(
            client.telegram_id,
            f"❌ <b>Запись отменена</b>\n\n"
            f"{name}, к сожалению, ваша консультация на {format_date(slot.date)} в {format_time(slot.time)} была отменена.\n\n"
            f"Пожалуйста, выберите другое удобное время для записи.",
        )

    async def send_booking_assigned(self, client: models.Client, slot: models.Slot) -> bool:
        return await self.send_message(
            client.telegram_id,
            f"📅 <b>Вам назначена консультация!</b>\n\n"
            f"📆 {format_date(slot.date)} в {format_time(slot.time)}\n"
            f"{format_label(slot.format)}\n\n"
            f"Напоминания придут за 24 часа и за 1 час до сессии.",
        )

    async def send_regular_bookings_assigned(self, client: models.Client, first_slot: models.Slot, weeks: int) -> bool:
        return await self.send_message(
            client.telegram_id,
            f"✅ <b>Вам назначена регулярная консультация!</b>\n\n"
            f"📅 Первая консультация: {format_date(first_slot.date)} в {format_time(first_slot.time)}\n"
            f"{format_label(first_slot.format)}\n\n"
            f"Всего назначено: {weeks} {consultations_word(weeks)}\n\n"
            f"Напоминания придут за 24 часа и за 1 час до каждой сессии.",
        )

    async def send_reminder(self, client: models.Client, slot: models.Slot, hours: int) -> bool:
        name = client.first_name or "Уважаемый клиент"
        when = "завтра" if hours == 24 else "через 1 час"
        return await self.send_message(
            client.telegram_id,
            f"⏰ <b>Напоминание</b>\n\n"
            f"{name}, {when} у вас консультация!\n\n"
            f"📅 {format_date(slot.date)} в {format_time(slot.time)}\n\n"
            f"До встречи! 🙌",
        )
