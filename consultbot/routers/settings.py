"""
Admin-configurable bot settings: payment details, "about me", schedule template, bot setup
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from telegram.error import TelegramError

from .. import schemas
from ..auth import get_current_admin
from ..bot import setup_bot_commands
from ..config import settings
from ..database import get_db
from ..dependencies import get_bot_application
from ..repository import Repository
from ..schedule import (
    TemplateError,
    apply_template,
    delete_template,
    get_template,
    save_week_as_template,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Settings"])

# поле відповіді -> (ключ налаштування, поле у значенні)
PAYMENT_FIELDS = {
    "payment_link": ("payment_link", "value"),
    "erip_path": ("erip_path", "value"),
    "account_number": ("account_number", "value"),
    "card_number": ("payment_card", "card_number"),
}


@router.get("/payment-card", response_model=schemas.PaymentCard)
def get_payment_card(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    return schemas.PaymentCard(card_number=Repository(db).get_text_setting("payment_card"))


@router.put("/payment-card", response_model=schemas.PaymentCard)
def update_payment_card(
    card: schemas.PaymentCard,
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    Repository(db).set_setting("payment_card", {"card_number": card.card_number.strip()})
    return get_payment_card(db, admin)


@router.get("/payment-settings", response_model=schemas.PaymentSettings)
def get_payment_settings(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    repo = Repository(db)
    return schemas.PaymentSettings(**{name: repo.get_text_setting(key) for name, (key, _) in PAYMENT_FIELDS.items()})


@router.put("/payment-settings", response_model=schemas.PaymentSettings)
def update_payment_settings(
    payment_settings: schemas.PaymentSettings,
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    repo = Repository(db)
    values = payment_settings.model_dump()
    for name, (key, field) in PAYMENT_FIELDS.items():
        repo.set_setting(key, {field: values[name].strip()})
    logger.info("💳 Способи оплати оновлено")
    return get_payment_settings(db, admin)


@router.get("/about-me", response_model=schemas.AboutMe)
def get_about_me(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    repo = Repository(db)
    photo = repo.get_setting("about_me_photo") or {}
    return schemas.AboutMe(
        text=repo.get_text_setting("about_me_text"),
        photo_url=photo.get("photo_url") if isinstance(photo, dict) else photo,
    )


@router.put("/about-me", response_model=schemas.AboutMe)
def update_about_me(
    about: schemas.AboutMe,
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    repo = Repository(db)
    repo.set_setting("about_me_text", {"value": about.text})
    if about.photo_url:
        repo.set_setting("about_me_photo", {"photo_url": about.photo_url})
    else:
        repo.delete_setting("about_me_photo")
    return get_about_me(db, admin)


@router.get("/schedule-template", response_model=schemas.ScheduleTemplate)
def read_schedule_template(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    return get_template(db)


@router.post("/schedule-template", response_model=schemas.ScheduleTemplate)
def save_schedule_template(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    """Зберегти поточний тиждень як шаблон"""
    return save_week_as_template(db)


@router.delete("/schedule-template", status_code=status.HTTP_204_NO_CONTENT)
def remove_schedule_template(db: Session = Depends(get_db), admin: dict = Depends(get_current_admin)):
    delete_template(db)
    return None


@router.post("/schedule-template/apply", response_model=schemas.TemplateApplyResponse)
def apply_schedule_template(
    apply_data: schemas.TemplateApply,
    db: Session = Depends(get_db),
    admin: dict = Depends(get_current_admin),
):
    try:
        created = apply_template(db, weeks=apply_data.weeks)
    except TemplateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.TemplateApplyResponse(created=created)


@router.post("/bot/setup", response_model=schemas.BotSetupResponse)
async def bot_setup(bot_app=Depends(get_bot_application), admin: dict = Depends(get_current_admin)):
    """Команди, кнопка меню і webhook"""
    if bot_app is None:
        raise HTTPException(status_code=503, detail="Telegram бот не налаштований")

    webhook_url = f"{settings.public_url}/webhook"
    try:
        await setup_bot_commands(bot_app.bot, webhook_url=webhook_url)
    except TelegramError as e:
        logger.error(f"❌ Помилка налаштування бота: {e}")
        raise HTTPException(status_code=502, detail=f"Telegram API: {e}")

    return schemas.BotSetupResponse(ok=True, webhook_url=webhook_url)
