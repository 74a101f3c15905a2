"""
Telegram bot handlers for consultation booking.
Uses python-telegram-bot in webhook mode: updates arrive through the FastAPI
/webhook endpoint and are fed to Application.process_update.
"""
import logging
from datetime import date, time as dtime
from typing import Optional

from telegram import BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, MenuButtonCommands, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from . import keyboards
from .booking import book_slot, cancel_booking
from .cleanup import run_cleanup
from .config import settings
from .conversation import (
    WaitingBroadcast,
    WaitingDiary,
    WaitingPayment,
    WaitingSos,
    clear_state,
    get_state,
    set_state,
)
from .database import SessionLocal
from .models import Client, SessionFormat, SlotStatus
from .reminders import run_sweep
from .repository import Repository
from .storage import LocalStorage
from .telegram_service import TelegramNotifier, format_label
from .timeutils import format_date, format_short_date, format_time, local_now

logger = logging.getLogger(__name__)

ERROR_TEXT = "❌ Произошла ошибка. Попробуйте позже."
PAYMENT_METHODS = {
    # callback -> (ключ налаштування, заголовок)
    "payment_link": ("payment_link", "🔗 <b>Ссылка на оплату:</b>"),
    "payment_erip": ("erip_path", "📱 <b>Путь ЕРИП:</b>"),
    "payment_account": ("account_number", "🏦 <b>Номер счёта:</b>"),
    "payment_card": ("payment_card", "💳 <b>Номер карты:</b>"),
}
AFTER_PAYMENT = "После оплаты пришлите скриншот в этот чат."


def get_db(context: ContextTypes.DEFAULT_TYPE):
    """Get database session"""
    return context.bot_data.get("session_factory", SessionLocal)()


def get_notifier(context: ContextTypes.DEFAULT_TYPE) -> TelegramNotifier:
    return context.bot_data["notifier"]


def is_admin(context: ContextTypes.DEFAULT_TYPE, telegram_id: int) -> bool:
    return telegram_id in context.bot_data.get("admin_ids", settings.admin_ids)


async def send(context: ContextTypes.DEFAULT_TYPE, chat_id: int, text: str, reply_markup=None):
    await context.bot.send_message(chat_id=chat_id, text=text, parse_mode="HTML", reply_markup=reply_markup)


async def send_main_menu(context: ContextTypes.DEFAULT_TYPE, chat_id: int, telegram_id: int, text: str = "Вы в главном меню:"):
    await send(context, chat_id, text, keyboards.main_menu_keyboard(is_admin(context, telegram_id), settings.project_url))


async def register_client(db, context: ContextTypes.DEFAULT_TYPE, user) -> Client:
    """Знайти або створити клієнта; про нового повідомити адмінів"""
    client, created = Repository(db).get_or_create_client(
        user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
    )
    if created:
        await get_notifier(context).send_new_user_notification(client)
    return client


async def setup_bot_commands(bot, chat_id: Optional[int] = None, webhook_url: Optional[str] = None):
    """Команди бота, кнопка меню і (опціонально) webhook"""
    await bot.set_my_commands([BotCommand("menu", "🏠 Главное меню")])
    await bot.set_chat_menu_button(chat_id=chat_id, menu_button=MenuButtonCommands())
    if webhook_url:
        await bot.set_webhook(url=webhook_url, allowed_updates=["message", "callback_query"])
        logger.info(f"✓ Webhook встановлено: {webhook_url}")


# ---- commands / text ----------------------------------------------------

async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start, /menu and the menu button"""
    chat_id = update.effective_chat.id
    user = update.effective_user
    db = get_db(context)

    try:
        await register_client(db, context, user)
        clear_state(db, chat_id)
    finally:
        db.close()

    if update.effective_message.text and update.effective_message.text.startswith("/start"):
        try:
            await setup_bot_commands(context.bot, chat_id=chat_id)
        except TelegramError as e:
            logger.error(f"❌ Не вдалося налаштувати меню для чату {chat_id}: {e}")
        await send(context, chat_id, "👋 Добро пожаловать!", keyboards.menu_reply_keyboard())

    await send_main_menu(context, chat_id, user.id)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Admin /cancel: вийти з очікування розсилки"""
    chat_id = update.effective_chat.id
    user = update.effective_user
    if not is_admin(context, user.id):
        await handle_text(update, context)
        return

    db = get_db(context)
    try:
        clear_state(db, chat_id)
    finally:
        db.close()
    await send_main_menu(context, chat_id, user.id, "Отменено")


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Текст: продовження очікуваного кроку або підказка меню"""
    chat_id = update.effective_chat.id
    user = update.effective_user
    text = update.effective_message.text or ""
    notifier = get_notifier(context)
    db = get_db(context)

    try:
        client = await register_client(db, context, user)
        repo = Repository(db)
        flow = get_state(db, chat_id)

        if isinstance(flow, WaitingDiary):
            repo.add_diary_entry(client.id, text)
            clear_state(db, chat_id)
            await send(
                context,
                chat_id,
                "✅ Запись сохранена в дневник.\n\nСпасибо, что делитесь своими мыслями.",
                InlineKeyboardMarkup([
                    [InlineKeyboardButton("📖 Посмотреть записи", callback_data="diary_view")],
                    keyboards.back_button("main_menu", "◀️ В главное меню"),
                ]),
            )
            return

        if isinstance(flow, WaitingSos):
            request = repo.get_sos_request(flow.sos_request_id)
            if request and request.client_id == client.id:
                repo.attach_sos_text(request, text)
            clear_state(db, chat_id)
            await notifier.send_sos_addition_notification(client, text)
            await send_main_menu(context, chat_id, user.id, "✅ Сообщение отправлено психологу.")
            return

        if isinstance(flow, WaitingBroadcast) and is_admin(context, user.id):
            clear_state(db, chat_id)
            await send(context, chat_id, "⏳ Рассылаю сообщение...")
            sent = await notifier.broadcast(repo.list_broadcast_chat_ids(), text)
            await send_main_menu(context, chat_id, user.id, f"✅ Рассылка завершена!\n\nОтправлено: {sent} клиентам")
            return
    finally:
        db.close()

    await send_main_menu(context, chat_id, user.id, "Используйте меню для навигации:")


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Скріншот оплати (тільки в стані очікування оплати)"""
    chat_id = update.effective_chat.id
    user = update.effective_user
    message = update.effective_message
    storage: LocalStorage = context.bot_data["storage"]
    db = get_db(context)

    try:
        client = await register_client(db, context, user)
        flow = get_state(db, chat_id)
        if not isinstance(flow, WaitingPayment):
            logger.info(f"📸 Фото від {user.id} поза станом оплати, пропускаємо")
            return

        # Найбільша роздільна здатність - остання
        photo = message.photo[-1]
        try:
            tg_file = await context.bot.get_file(photo.file_id)
            content = bytes(await tg_file.download_as_bytearray())
        except TelegramError as e:
            logger.error(f"❌ Не вдалося отримати файл {photo.file_id}: {e}")
            await send(context, chat_id, "❌ Не удалось получить файл. Попробуйте ещё раз.", keyboards.back_keyboard())
            return

        try:
            url = storage.save_payment_screenshot(client.id, content)
        except OSError as e:
            logger.error(f"❌ Помилка збереження скріншота: {e}")
            await send(context, chat_id, "❌ Ошибка сохранения скриншота. Попробуйте ещё раз.", keyboards.back_keyboard())
            return

        Repository(db).create_payment(client.id, url)
        clear_state(db, chat_id)
        await send_main_menu(context, chat_id, user.id, "✅ Скриншот оплаты получен. Спасибо!")
        await get_notifier(context).send_payment_notification(client)
    finally:
        db.close()


# ---- callback screens ---------------------------------------------------

async def show_free_slots(context, chat_id, db, client, telegram_id):
    slots = Repository(db).list_available_slots(local_now())
    if not slots:
        await send(context, chat_id, "😔 К сожалению, свободных дат нет.\n\nПопробуйте позже.", keyboards.back_keyboard())
        return

    lines = [f"• {format_date(s.date)} в {format_time(s.time)}" for s in slots]
    text = "📁 <b>Свободные даты:</b>\n\n" + "\n".join(lines) + '\n\nДля записи нажмите "Записаться на консультацию"'
    await send(context, chat_id, text, keyboards.book_or_back_keyboard())


async def show_booking_dates(context, chat_id, db, client, telegram_id):
    dates = Repository(db).list_available_dates(local_now())
    if not dates:
        await send(
            context,
            chat_id,
            "😔 К сожалению, свободных слотов нет.\n\nПопробуйте позже или свяжитесь с психологом напрямую.",
            keyboards.back_keyboard(),
        )
        return
    await send(context, chat_id, "🗓 <b>Записаться на консультацию</b>\n\nВыберите день:", keyboards.dates_keyboard(dates))


async def show_times(context, chat_id, db, client, value: str):
    try:
        selected = date.fromisoformat(value)
    except ValueError:
        selected = None

    slots = Repository(db).list_free_slots_for_date(selected, local_now()) if selected else []
    if not slots:
        await send(
            context,
            chat_id,
            "😔 К сожалению, на этот день свободных слотов нет.\n\nВыберите другой день.",
            keyboards.back_keyboard("book_session", "◀️ Выбрать другой день"),
        )
        return

    await send(
        context,
        chat_id,
        f"🕐 <b>{format_date(selected)}</b>\n\nВыберите время:\n\n🏠 очно, 💻 онлайн",
        keyboards.times_keyboard(slots),
    )


async def show_formats(context, chat_id, db, client, value: str):
    slot = Repository(db).get_slot(int(value)) if value.isdigit() else None
    if slot is None or slot.status != SlotStatus.FREE:
        await send_slot_taken(context, chat_id)
        return
    await send(context, chat_id, "📍 <b>Выберите формат консультации:</b>", keyboards.formats_keyboard(slot))


async def send_slot_taken(context, chat_id):
    await send(
        context,
        chat_id,
        "😔 К сожалению, это время уже занято.\n\nПожалуйста, выберите другой слот.",
        keyboards.back_keyboard("book_session", "📅 Выбрать другое время"),
    )


async def book(context, chat_id, db, client, telegram_id, fmt: SessionFormat, value: str):
    if not value.isdigit():
        await send_slot_taken(context, chat_id)
        return

    slot_id = int(value)
    if not book_slot(db, client.id, slot_id, fmt):
        await send_slot_taken(context, chat_id)
        return

    await send_main_menu(
        context,
        chat_id,
        telegram_id,
        f"✅ <b>Вы успешно записались!</b>\n\nФормат: {format_label(fmt)}\n\n"
        f"Напоминания придут за 24 часа и за 1 час до сессии.",
    )
    slot = Repository(db).get_slot(slot_id)
    await get_notifier(context).send_new_booking_notification(client, slot)


async def show_my_bookings(context, chat_id, db, client, telegram_id):
    bookings = Repository(db).list_upcoming_bookings(client.id, local_now())
    if not bookings:
        await send(
            context,
            chat_id,
            "🗓 <b>Моя запись</b>\n\nУ вас нет предстоящих записей.\n\nХотите записаться на консультацию?",
            keyboards.book_or_back_keyboard(),
        )
        return

    lines = []
    for booking in bookings:
        icon = "💻" if booking.slot.format == SessionFormat.ONLINE else "🏠"
        lines.append(f"📌 {format_date(booking.slot.date)} в {format_time(booking.slot.time)} {icon}")
    text = (
        "🗓 <b>Предстоящие записи:</b>\n\n" + "\n".join(lines)
        + "\n\n<i>Отменить запись можно не позднее чем за 24 часа до начала.</i>"
    )
    await send(context, chat_id, text, keyboards.bookings_keyboard(bookings))


async def cancel(context, chat_id, db, client, telegram_id, value: str):
    if not value.isdigit():
        await send_main_menu(context, chat_id, telegram_id, "❌ Запись не найдена")
        return

    result = cancel_booking(db, int(value), by_admin=False, client_id=client.id)
    if not result.success:
        await send_main_menu(context, chat_id, telegram_id, f"❌ {result.error or 'Не удалось отменить запись. Попробуйте позже.'}")
        return

    await send_main_menu(context, chat_id, telegram_id, "✅ Запись отменена.")
    await get_notifier(context).send_client_cancelled_notification(client, result.slot)


async def show_diary(context, chat_id, db, client, telegram_id):
    await send(
        context,
        chat_id,
        "📒 <b>Дневник терапии</b>\n\nЗдесь вы можете записывать свои мысли, переживания или то, "
        "что вас беспокоит. Это останется между нами.",
        keyboards.diary_keyboard(),
    )


async def diary_add(context, chat_id, db, client, telegram_id):
    await send(
        context,
        chat_id,
        "📝 <b>Новая запись</b>\n\nНапишите свои мысли, переживания или то, что вас беспокоит.\n\n"
        "<i>Отправьте текст в следующем сообщении.</i>",
        keyboards.back_keyboard("diary", "◀️ Отмена"),
    )
    set_state(db, chat_id, WaitingDiary())


async def diary_view(context, chat_id, db, client, telegram_id):
    entries = Repository(db).list_diary_entries(client.id, limit=5)
    if not entries:
        text = "📖 <b>Ваши записи:</b>\n\nУ вас пока нет записей в дневнике."
    else:
        parts = []
        for entry in entries:
            preview = entry.text if len(entry.text) <= 100 else entry.text[:100] + "..."
            parts.append(f"📝 <b>{format_short_date(entry.created_at)}:</b>\n{preview}")
        text = "📖 <b>Ваши записи:</b>\n\n" + "\n\n".join(parts)

    await send(
        context,
        chat_id,
        text,
        InlineKeyboardMarkup([
            [InlineKeyboardButton("➕ Добавить запись", callback_data="diary_add")],
            keyboards.back_button("diary", "◀️ Назад в дневник"),
        ]),
    )


async def show_payment(context, chat_id, db, client, telegram_id):
    repo = Repository(db)
    methods = [
        callback for callback, (key, _) in PAYMENT_METHODS.items()
        if repo.get_text_setting(key).strip()
    ]
    if not methods:
        await send(context, chat_id, "💳 <b>Способы оплаты</b>\n\nСпособы оплаты пока не настроены.", keyboards.back_keyboard())
        return

    await send(context, chat_id, "💳 <b>Выберите способ оплаты:</b>", keyboards.payment_methods_keyboard(methods))
    set_state(db, chat_id, WaitingPayment(client.id))


async def show_payment_method(context, chat_id, db, client, method: str):
    key, title = PAYMENT_METHODS[method]
    value = Repository(db).get_text_setting(key).strip()
    back = keyboards.back_button("payment", "◀️ К способам оплаты")
    if not value:
        await send(context, chat_id, "❌ Способ оплаты не настроен.", keyboards.back_keyboard("payment"))
        return

    buttons = [back]
    if method == "payment_link":
        body = f'<a href="{value}">{value}</a>'
        buttons = [[InlineKeyboardButton("🔗 Перейти к оплате", url=value)], back]
    elif method == "payment_erip":
        body = "\n".join(f"<code>{line.strip()}</code>" for line in value.splitlines() if line.strip())
    else:
        body = f"<code>{value}</code>"

    await send(context, chat_id, f"{title}\n\n{body}\n\n{AFTER_PAYMENT}", InlineKeyboardMarkup(buttons))
    set_state(db, chat_id, WaitingPayment(client.id))


async def show_about_me(context, chat_id, db, client, telegram_id):
    repo = Repository(db)
    text = repo.get_text_setting("about_me_text")
    photo = repo.get_setting("about_me_photo") or {}
    photo_url = photo.get("photo_url") if isinstance(photo, dict) else photo

    if not text and not photo_url:
        await send(context, chat_id, 'ℹ️ Информация "Обо мне" пока не заполнена.', keyboards.back_keyboard())
        return

    if photo_url:
        await context.bot.send_photo(
            chat_id=chat_id,
            photo=photo_url,
            caption=text or None,
            parse_mode="HTML",
            reply_markup=keyboards.back_keyboard(),
        )
    else:
        await send(context, chat_id, f"👤 <b>Обо мне</b>\n\n{text}", keyboards.back_keyboard())


async def sos(context, chat_id, db, client, telegram_id):
    request = Repository(db).create_sos_request(client.id)
    await get_notifier(context).send_sos_notification(client)
    await send(
        context,
        chat_id,
        "🆘 <b>SOS-связь с психологом.</b>\n\nЯ передал ваше обращение!\n\n"
        "<i>Если хотите, опишите в следующем сообщении, что происходит.</i>",
        keyboards.back_keyboard("main_menu", "◀️ В главное меню"),
    )
    set_state(db, chat_id, WaitingSos(request.id))


async def admin_broadcast(context, chat_id, db, client, telegram_id):
    await send(
        context,
        chat_id,
        "📢 <b>Рассылка</b>\n\nОтправьте сообщение, которое хотите разослать всем клиентам.\n\n"
        "<i>Для отмены отправьте /cancel</i>",
        keyboards.back_keyboard("main_menu", "❌ Отмена"),
    )
    set_state(db, chat_id, WaitingBroadcast())


async def button_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle button callbacks"""
    query = update.callback_query
    await query.answer()

    data = query.data
    chat_id = query.message.chat_id if query.message else None
    if not chat_id or not data:
        logger.info("❌ Callback без chat_id або data")
        return

    telegram_id = query.from_user.id
    db = get_db(context)
    try:
        client = await register_client(db, context, query.from_user)
        # Будь-яка кнопка меню скидає очікуваний крок
        clear_state(db, chat_id)

        if data == "main_menu":
            await send_main_menu(context, chat_id, telegram_id)
        elif data == "free_slots":
            await show_free_slots(context, chat_id, db, client, telegram_id)
        elif data == "book_session":
            await show_booking_dates(context, chat_id, db, client, telegram_id)
        elif data == "my_bookings":
            await show_my_bookings(context, chat_id, db, client, telegram_id)
        elif data == "diary":
            await show_diary(context, chat_id, db, client, telegram_id)
        elif data == "diary_add":
            await diary_add(context, chat_id, db, client, telegram_id)
        elif data == "diary_view":
            await diary_view(context, chat_id, db, client, telegram_id)
        elif data == "payment":
            await show_payment(context, chat_id, db, client, telegram_id)
        elif data in PAYMENT_METHODS:
            await show_payment_method(context, chat_id, db, client, data)
        elif data == "about_me":
            await show_about_me(context, chat_id, db, client, telegram_id)
        elif data == "sos":
            await sos(context, chat_id, db, client, telegram_id)
        elif data == "admin_broadcast" and is_admin(context, telegram_id):
            await admin_broadcast(context, chat_id, db, client, telegram_id)
        elif data.startswith("select_date_"):
            await show_times(context, chat_id, db, client, data[len("select_date_"):])
        elif data.startswith("select_slot_"):
            await show_formats(context, chat_id, db, client, data[len("select_slot_"):])
        elif data.startswith("book_online_"):
            await book(context, chat_id, db, client, telegram_id, SessionFormat.ONLINE, data[len("book_online_"):])
        elif data.startswith("book_offline_"):
            await book(context, chat_id, db, client, telegram_id, SessionFormat.OFFLINE, data[len("book_offline_"):])
        elif data.startswith("cancel_"):
            await cancel(context, chat_id, db, client, telegram_id, data[len("cancel_"):])
        else:
            logger.info(f"Невідомий callback: {data}")
    finally:
        db.close()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error("❌ Помилка обробки оновлення", exc_info=context.error)
    if isinstance(update, Update) and update.effective_chat:
        try:
            await context.bot.send_message(chat_id=update.effective_chat.id, text=ERROR_TEXT)
        except TelegramError as e:
            logger.error(f"❌ Не вдалося повідомити про помилку: {e}")


# ---- jobs ---------------------------------------------------------------

async def reminder_job(context: ContextTypes.DEFAULT_TYPE):
    db = get_db(context)
    try:
        await run_sweep(db, get_notifier(context))
    finally:
        db.close()


async def cleanup_job(context: ContextTypes.DEFAULT_TYPE):
    db = get_db(context)
    try:
        run_cleanup(db, context.bot_data["storage"])
    finally:
        db.close()


def build_application(
    token: str,
    session_factory=SessionLocal,
    storage: Optional[LocalStorage] = None,
    admin_ids=None,
) -> Application:
    """Create the bot application (webhook mode, no updater)"""
    application = Application.builder().token(token).updater(None).build()

    application.bot_data["session_factory"] = session_factory
    application.bot_data["admin_ids"] = list(settings.admin_ids if admin_ids is None else admin_ids)
    application.bot_data["notifier"] = TelegramNotifier(application.bot, admin_ids=application.bot_data["admin_ids"])
    application.bot_data["storage"] = storage or LocalStorage()

    # Add handlers
    application.add_handler(CommandHandler(["start", "menu"], start))
    application.add_handler(CommandHandler("cancel", cancel_command))
    application.add_handler(MessageHandler(filters.Text([keyboards.MENU_BUTTON]), start))
    application.add_handler(CallbackQueryHandler(button_callback))
    application.add_handler(MessageHandler(filters.PHOTO, handle_photo))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    application.add_error_handler(error_handler)

    if application.job_queue:
        application.job_queue.run_repeating(
            reminder_job,
            interval=settings.reminder_interval_seconds,
            first=10,
            name="reminders",
        )
        application.job_queue.run_daily(cleanup_job, time=dtime(hour=3), name="cleanup")
    else:
        logger.warning("⚠️ JobQueue недоступна, нагадування не плануються")

    return application
