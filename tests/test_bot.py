from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from telegram import Chat, Message, ReplyKeyboardMarkup, Update
from telegram.ext import CallbackQueryHandler, CommandHandler, MessageHandler

from consultbot import bot, keyboards, models
from consultbot.conversation import WaitingBroadcast, WaitingDiary, WaitingPayment, WaitingSos, get_state
from consultbot.models import SlotStatus
from consultbot.repository import Repository
from consultbot.timeutils import local_now
from tests.conftest import ADMIN_ID, FakeBot, make_client, make_slot, run

CHAT = 111


@pytest.fixture
def context(session_factory, notifier, storage):
    return SimpleNamespace(
        bot=FakeBot(),
        bot_data={
            "session_factory": session_factory,
            "notifier": notifier,
            "storage": storage,
            "admin_ids": [ADMIN_ID],
        },
    )


def user(telegram_id=CHAT, first_name="Анна"):
    return SimpleNamespace(id=telegram_id, first_name=first_name, last_name=None, username="anna")


def message_update(text=None, telegram_id=CHAT, photo=None):
    return SimpleNamespace(
        effective_chat=SimpleNamespace(id=telegram_id),
        effective_user=user(telegram_id),
        effective_message=SimpleNamespace(text=text, photo=photo or []),
        callback_query=None,
    )


def callback_update(data, telegram_id=CHAT):
    answered = []

    async def answer(*args, **kwargs):
        answered.append(True)

    query = SimpleNamespace(
        data=data,
        message=SimpleNamespace(chat_id=telegram_id),
        from_user=user(telegram_id),
        answer=answer,
    )
    return SimpleNamespace(
        effective_chat=SimpleNamespace(id=telegram_id),
        effective_user=query.from_user,
        callback_query=query,
    )


def state_of(session_factory, chat_id=CHAT):
    db = session_factory()
    try:
        return get_state(db, chat_id)
    finally:
        db.close()


def test_first_contact_registers_client_and_notifies_admins(context, session_factory, notifier):
    run(bot.handle_text(message_update("привет"), context))

    db = session_factory()
    try:
        client = Repository(db).get_client_by_telegram_id(CHAT)
        assert client.first_name == "Анна"
    finally:
        db.close()
    assert any("Новый пользователь" in text for text in notifier.texts_to(ADMIN_ID))
    assert context.bot.texts_to(CHAT) == ["Используйте меню для навигации:"]

    # повторний контакт не повідомляє знову
    run(bot.handle_text(message_update("ещё"), context))
    assert len(notifier.texts_to(ADMIN_ID)) == 1


def test_start_clears_state_and_shows_menu(context, session_factory):
    run(bot.button_callback(callback_update("diary_add"), context))
    assert state_of(session_factory) == WaitingDiary()

    run(bot.start(message_update("/start"), context))

    assert state_of(session_factory) is None
    assert context.bot.texts_to(CHAT)[-1] == "Вы в главном меню:"
    assert context.bot.commands


def test_diary_flow(context, session_factory):
    run(bot.button_callback(callback_update("diary_add"), context))
    run(bot.handle_text(message_update("Сегодня было тревожно"), context))

    assert state_of(session_factory) is None
    db = session_factory()
    try:
        entries = db.query(models.DiaryEntry).all()
        assert [e.text for e in entries] == ["Сегодня было тревожно"]
    finally:
        db.close()

    run(bot.button_callback(callback_update("diary_view"), context))
    assert "Сегодня было тревожно" in context.bot.texts_to(CHAT)[-1]


def test_any_button_cancels_pending_flow(context, session_factory):
    run(bot.button_callback(callback_update("diary_add"), context))
    run(bot.button_callback(callback_update("main_menu"), context))
    run(bot.handle_text(message_update("не в дневник"), context))

    db = session_factory()
    try:
        assert db.query(models.DiaryEntry).count() == 0
    finally:
        db.close()


def test_sos_flow(context, session_factory, notifier):
    run(bot.button_callback(callback_update("sos"), context))

    state = state_of(session_factory)
    assert isinstance(state, WaitingSos)
    assert any("SOS-сигнал" in text for text in notifier.texts_to(ADMIN_ID))

    run(bot.handle_text(message_update("Очень плохо"), context))

    db = session_factory()
    try:
        request = db.get(models.SosRequest, state.sos_request_id)
        assert request.text == "Очень плохо"
    finally:
        db.close()
    assert state_of(session_factory) is None
    assert any("Очень плохо" in text for text in notifier.texts_to(ADMIN_ID))


def test_booking_through_buttons(context, session_factory, notifier):
    db = session_factory()
    tomorrow = (local_now() + timedelta(days=2)).date()
    slot_id = make_slot(db, slot_date=tomorrow).id
    db.close()

    run(bot.button_callback(callback_update("book_session"), context))
    run(bot.button_callback(callback_update(f"select_date_{tomorrow.isoformat()}"), context))
    run(bot.button_callback(callback_update(f"select_slot_{slot_id}"), context))
    run(bot.button_callback(callback_update(f"book_online_{slot_id}"), context))

    db = session_factory()
    try:
        slot = db.get(models.Slot, slot_id)
        assert slot.status == SlotStatus.BOOKED
        assert slot.client.telegram_id == CHAT
    finally:
        db.close()
    assert "успешно записались" in context.bot.texts_to(CHAT)[-1]
    assert any("Новая запись" in text for text in notifier.texts_to(ADMIN_ID))

    # той самий слот вдруге
    run(bot.button_callback(callback_update(f"book_offline_{slot_id}", telegram_id=222), context))
    assert "уже занято" in context.bot.texts_to(222)[-1]


def test_cancel_through_buttons(context, session_factory, notifier):
    db = session_factory()
    client = make_client(db, telegram_id=CHAT)
    slot = make_slot(db, slot_date=(local_now() + timedelta(days=5)).date())
    slot_id, client_id = slot.id, client.id
    db.close()

    run(bot.button_callback(callback_update(f"book_offline_{slot_id}"), context))
    db = session_factory()
    booking_id = db.query(models.Booking).filter(models.Booking.client_id == client_id).one().id
    db.close()

    run(bot.button_callback(callback_update("my_bookings"), context))
    assert "Предстоящие записи" in context.bot.texts_to(CHAT)[-1]

    run(bot.button_callback(callback_update(f"cancel_{booking_id}"), context))

    db = session_factory()
    try:
        assert db.get(models.Slot, slot_id).status == SlotStatus.FREE
    finally:
        db.close()
    assert context.bot.texts_to(CHAT)[-1] == "✅ Запись отменена."
    assert any("Клиент отменил запись" in text for text in notifier.texts_to(ADMIN_ID))


def test_broadcast_by_admin(context, session_factory, notifier):
    db = session_factory()
    make_client(db, telegram_id=1)
    make_client(db, telegram_id=2)
    db.close()

    run(bot.button_callback(callback_update("admin_broadcast", telegram_id=ADMIN_ID), context))
    run(bot.handle_text(message_update("Завтра выходной", telegram_id=ADMIN_ID), context))

    assert notifier.texts_to(1) == ["Завтра выходной"]
    assert notifier.texts_to(2) == ["Завтра выходной"]
    assert "Отправлено" in context.bot.texts_to(ADMIN_ID)[-1]


def test_broadcast_is_admin_only(context, session_factory, notifier):
    run(bot.button_callback(callback_update("admin_broadcast"), context))
    assert state_of(session_factory) is None

    run(bot.handle_text(message_update("всем привет"), context))
    assert notifier.texts_to(CHAT) == []


def test_payment_screenshot(context, session_factory, notifier, storage):
    db = session_factory()
    Repository(db).set_setting("payment_card", {"card_number": "1234 5678"})
    db.close()

    run(bot.button_callback(callback_update("payment"), context))
    assert isinstance(state_of(session_factory), WaitingPayment)

    run(bot.button_callback(callback_update("payment_card"), context))
    assert "1234 5678" in context.bot.texts_to(CHAT)[-1]

    photos = [SimpleNamespace(file_id="small"), SimpleNamespace(file_id="large")]
    run(bot.handle_photo(message_update(photo=photos), context))

    db = session_factory()
    try:
        payment = db.query(models.Payment).one()
        assert storage.path_for_url(payment.screenshot_url).read_bytes() == b"screenshot-large"
    finally:
        db.close()
    assert state_of(session_factory) is None
    assert any("скриншот оплаты" in text for text in notifier.texts_to(ADMIN_ID))


def test_photo_outside_payment_flow_is_ignored(context, session_factory):
    run(bot.handle_photo(message_update(photo=[SimpleNamespace(file_id="x")]), context))

    db = session_factory()
    try:
        assert db.query(models.Payment).count() == 0
    finally:
        db.close()


def test_payment_without_methods(context, session_factory):
    run(bot.button_callback(callback_update("payment"), context))
    assert "не настроены" in context.bot.texts_to(CHAT)[-1]
    assert state_of(session_factory) is None


def test_free_slots_list(context, session_factory):
    run(bot.button_callback(callback_update("free_slots"), context))
    assert "свободных дат нет" in context.bot.texts_to(CHAT)[-1]

    db = session_factory()
    make_slot(db, slot_date=(local_now() + timedelta(days=3)).date())
    db.close()

    run(bot.button_callback(callback_update("free_slots"), context))
    assert "Свободные даты" in context.bot.texts_to(CHAT)[-1]


def test_start_sends_persistent_menu_button(context):
    run(bot.start(message_update("/start"), context))

    markups = [m.reply_markup for m in context.bot.messages if isinstance(m.reply_markup, ReplyKeyboardMarkup)]
    assert len(markups) == 1
    assert markups[0].keyboard[0][0].text == keyboards.MENU_BUTTON

    # /menu і кнопка меню показують лише головне меню
    run(bot.start(message_update(keyboards.MENU_BUTTON), context))
    assert len([m for m in context.bot.messages if isinstance(m.reply_markup, ReplyKeyboardMarkup)]) == 1
    assert context.bot.texts_to(CHAT)[-1] == "Вы в главном меню:"


def test_admin_cancel_leaves_broadcast(context, session_factory):
    run(bot.button_callback(callback_update("admin_broadcast", telegram_id=ADMIN_ID), context))
    assert state_of(session_factory, ADMIN_ID) == WaitingBroadcast()

    run(bot.cancel_command(message_update("/cancel", telegram_id=ADMIN_ID), context))

    assert state_of(session_factory, ADMIN_ID) is None
    assert context.bot.texts_to(ADMIN_ID)[-1] == "Отменено"


def test_payment_link_method(context, session_factory):
    db = session_factory()
    Repository(db).set_setting("payment_link", {"value": "https://pay.example/psy"})
    db.close()

    run(bot.button_callback(callback_update("payment_link"), context))

    assert "https://pay.example/psy" in context.bot.texts_to(CHAT)[-1]
    assert isinstance(state_of(session_factory), WaitingPayment)


def test_unconfigured_payment_method(context, session_factory):
    run(bot.button_callback(callback_update("payment_erip"), context))

    assert "не настроен" in context.bot.texts_to(CHAT)[-1]
    assert state_of(session_factory) is None


def test_about_me_text(context, session_factory):
    run(bot.button_callback(callback_update("about_me"), context))
    assert "пока не заполнена" in context.bot.texts_to(CHAT)[-1]

    db = session_factory()
    Repository(db).set_setting("about_me_text", {"value": "Психолог, КПТ"})
    db.close()

    run(bot.button_callback(callback_update("about_me"), context))
    assert context.bot.texts_to(CHAT)[-1] == "👤 <b>Обо мне</b>\n\nПсихолог, КПТ"
    assert context.bot.photos == []


def test_about_me_with_photo(context, session_factory):
    db = session_factory()
    repo = Repository(db)
    repo.set_setting("about_me_text", {"value": "Психолог, КПТ"})
    repo.set_setting("about_me_photo", {"photo_url": "https://example.com/me.jpg"})
    db.close()

    run(bot.button_callback(callback_update("about_me"), context))

    assert len(context.bot.photos) == 1
    photo = context.bot.photos[0]
    assert photo.chat_id == CHAT
    assert photo.photo == "https://example.com/me.jpg"
    assert photo.caption == "Психолог, КПТ"


def test_error_handler_tells_the_user():
    update = Update(1, message=Message(1, datetime.now(timezone.utc), Chat(5, "private"), text="x"))
    context = SimpleNamespace(bot=FakeBot(), error=RuntimeError("boom"))

    run(bot.error_handler(update, context))

    assert context.bot.texts_to(5) == [bot.ERROR_TEXT]


def test_error_handler_without_chat():
    context = SimpleNamespace(bot=FakeBot(), error=RuntimeError("boom"))
    run(bot.error_handler(None, context))
    assert context.bot.messages == []


def test_build_application_wiring(session_factory, storage):
    application = bot.build_application("123:abc", session_factory=session_factory, storage=storage, admin_ids=[ADMIN_ID])

    assert application.bot_data["admin_ids"] == [ADMIN_ID]
    assert application.bot_data["storage"] is storage
    assert application.bot_data["session_factory"] is session_factory

    handlers = application.handlers[0]
    assert [type(h) for h in handlers] == [
        CommandHandler,
        CommandHandler,
        MessageHandler,
        CallbackQueryHandler,
        MessageHandler,
        MessageHandler,
    ]
    assert [h.callback for h in handlers] == [
        bot.start,
        bot.cancel_command,
        bot.start,
        bot.button_callback,
        bot.handle_photo,
        bot.handle_text,
    ]
    assert handlers[0].commands == frozenset({"start", "menu"})
    assert handlers[1].commands == frozenset({"cancel"})
    assert bot.error_handler in application.error_handlers

    def message(**fields):
        data = {"message_id": 1, "date": 0, "chat": {"id": 5, "type": "private"}, **fields}
        return Update.de_json({"update_id": 1, "message": data}, application.bot)

    menu_button, photo_handler, text_handler = handlers[2], handlers[4], handlers[5]
    photo = message(photo=[{"file_id": "a", "file_unique_id": "b", "width": 10, "height": 10}])

    assert menu_button.check_update(message(text=keyboards.MENU_BUTTON))
    assert not menu_button.check_update(message(text="Меню"))
    assert photo_handler.check_update(photo)
    assert not text_handler.check_update(photo)
    assert text_handler.check_update(message(text="привет"))

    jobs = {job.name for job in application.job_queue.jobs()}
    assert jobs == {"reminders", "cleanup"}
