import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from telegram import Update

from . import models
from .bot import build_application
from .config import settings
from .database import engine
from .routers import auth, bookings, clients, records, slots
from .routers import settings as settings_router
from .storage import LocalStorage
from .telegram_service import TelegramNotifier

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    # Створення таблиць
    models.Base.metadata.create_all(bind=engine)
    app.state.storage.init()

    bot_app = None
    if settings.bot_token:
        bot_app = build_application(settings.bot_token, storage=app.state.storage)
        await bot_app.initialize()
        await bot_app.start()
        app.state.bot_app = bot_app
        app.state.notifier = bot_app.bot_data["notifier"]
        logger.info("🤖 Telegram бот запущений (webhook)")
    else:
        logger.warning("⚠️ TELEGRAM_BOT_TOKEN не задано, бот вимкнений")

    yield

    if bot_app is not None:
        await bot_app.stop()
        await bot_app.shutdown()
        app.state.bot_app = None


app = FastAPI(title="Consultation Booking Bot", version="1.0.0", lifespan=lifespan)

app.state.storage = LocalStorage()
app.state.notifier = TelegramNotifier()
app.state.bot_app = None

app.include_router(auth.router)
app.include_router(clients.router)
app.include_router(slots.router)
app.include_router(bookings.router)
app.include_router(records.router)
app.include_router(settings_router.router)

# Скріншоти оплат
app.mount("/storage", StaticFiles(directory=settings.storage_dir, check_dir=False), name="storage")


@app.get("/health")
async def health():
    return {"status": "ok", "bot": app.state.bot_app is not None}


@app.post("/webhook")
async def telegram_webhook(request: Request):
    """Прийом оновлень від Telegram"""
    bot_app = request.app.state.bot_app
    if bot_app is None:
        return JSONResponse(status_code=500, content={"error": "Bot is not configured"})

    try:
        data = await request.json()
        update = Update.de_json(data, bot_app.bot)
        await bot_app.process_update(update)
    except Exception as e:
        logger.exception("❌ Помилка обробки webhook")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return {"ok": True}
