from datetime import date
from typing import Iterable, List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup

from .models import AvailableFormats, Booking, SessionFormat, Slot
from .timeutils import format_date, format_time

MENU_BUTTON = "📋 Меню"

FORMAT_ICONS = {
    AvailableFormats.BOTH: "🏠💻",
    AvailableFormats.OFFLINE: "🏠",
    AvailableFormats.ONLINE: "💻",
}


def menu_reply_keyboard() -> ReplyKeyboardMarkup:
    """Постійна кнопка меню під полем вводу"""
    return ReplyKeyboardMarkup([[MENU_BUTTON]], resize_keyboard=True, is_persistent=True)


def back_button(callback_data: str = "main_menu", text: str = "◀️ Назад") -> List[InlineKeyboardButton]:
    return [InlineKeyboardButton(text, callback_data=callback_data)]


def back_keyboard(callback_data: str = "main_menu", text: str = "◀️ Назад") -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([back_button(callback_data, text)])


def main_menu_keyboard(is_admin: bool, project_url: str) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton("🗓 Записаться на консультацию", callback_data="book_session")],
        [
            InlineKeyboardButton("📁 Свободные даты", callback_data="free_slots"),
            InlineKeyboardButton("🗓 Моя запись", callback_data="my_bookings"),
        ],
        [
            InlineKeyboardButton("📒 Дневник терапии", callback_data="diary"),
            InlineKeyboardButton("💳 Оплата", callback_data="payment"),
        ],
        [InlineKeyboardButton("👤 Обо мне", callback_data="about_me")],
        [InlineKeyboardButton("🆘 SOS", callback_data="sos")],
    ]
    if is_admin:
        keyboard.append([InlineKeyboardButton("📋 Управление расписанием", url=project_url)])
        keyboard.append([InlineKeyboardButton("📢 Рассылка", callback_data="admin_broadcast")])
    return InlineKeyboardMarkup(keyboard)


def dates_keyboard(dates: Iterable[date]) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(format_date(d), callback_data=f"select_date_{d.isoformat()}")]
        for d in dates
    ]
    keyboard.append(back_button())
    return InlineKeyboardMarkup(keyboard)


def times_keyboard(slots: Iterable[Slot]) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(
            f"{format_time(s.time)} {FORMAT_ICONS[AvailableFormats(s.available_formats)]}",
            callback_data=f"select_slot_{s.id}",
        )]
        for s in slots
    ]
    keyboard.append(back_button("book_session", "◀️ Выбрать другой день"))
    return InlineKeyboardMarkup(keyboard)


def formats_keyboard(slot: Slot) -> InlineKeyboardMarkup:
    available = AvailableFormats(slot.available_formats)
    keyboard = []
    if available.allows(SessionFormat.OFFLINE):
        keyboard.append([InlineKeyboardButton("🏠 Очно", callback_data=f"book_offline_{slot.id}")])
    if available.allows(SessionFormat.ONLINE):
        keyboard.append([InlineKeyboardButton("💻 Онлайн", callback_data=f"book_online_{slot.id}")])
    keyboard.append(back_button("book_session"))
    return InlineKeyboardMarkup(keyboard)


def bookings_keyboard(bookings: Iterable[Booking]) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(
            f"❌ Отменить {format_date(b.slot.date)} {format_time(b.slot.time)}",
            callback_data=f"cancel_{b.id}",
        )]
        for b in bookings
    ]
    keyboard.append(back_button())
    return InlineKeyboardMarkup(keyboard)


def book_or_back_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("📅 Записаться", callback_data="book_session")],
        back_button(),
    ])


def diary_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("➕ Добавить запись", callback_data="diary_add")],
        [InlineKeyboardButton("📖 Посмотреть записи", callback_data="diary_view")],
        back_button(),
    ])


def payment_methods_keyboard(methods: Iterable[str]) -> InlineKeyboardMarkup:
    labels = {
        "payment_link": "🔗 Ссылка на оплату",
        "payment_erip": "📱 Путь ЕРИП",
        "payment_account": "🏦 Номер счёта",
        "payment_card": "💳 Номер карты",
    }
    keyboard = [[InlineKeyboardButton(labels[m], callback_data=m)] for m in methods]
    keyboard.append(back_button())
    return InlineKeyboardMarkup(keyboard)
