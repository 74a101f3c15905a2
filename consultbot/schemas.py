from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime, time
from typing import Optional, List

from .models import AvailableFormats, BookingStatus, SessionFormat, SlotStatus, SosStatus


class ClientShort(BaseModel):
    id: int
    telegram_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    class Config:
        from_attributes = True


class ClientResponse(ClientShort):
    created_at: datetime
    bookings_count: int = 0
    diary_count: int = 0


class ClientUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)


class SlotCreate(BaseModel):
    date: date
    time: time
    available_formats: AvailableFormats = AvailableFormats.BOTH


class SlotResponse(BaseModel):
    id: int
    date: date
    time: time
    status: SlotStatus
    format: Optional[SessionFormat] = None
    available_formats: AvailableFormats
    comment: Optional[str] = None
    client: Optional[ClientShort] = None

    class Config:
        from_attributes = True


class BookingCreate(BaseModel):
    client_id: int
    date: date
    time: time
    format: SessionFormat = SessionFormat.OFFLINE


class RegularBookingCreate(BookingCreate):
    weeks: int = Field(4, ge=1, le=52)


class BookingResponse(BaseModel):
    id: int
    status: BookingStatus
    created_at: datetime
    reminder_24h_sent: bool
    reminder_1h_sent: bool
    slot: SlotResponse
    client: ClientShort

    class Config:
        from_attributes = True


class RegularBookingResponse(BaseModel):
    created: int
    errors: List[str] = []
    bookings: List[BookingResponse] = []


class SosResponse(BaseModel):
    id: int
    text: Optional[str] = None
    status: SosStatus
    created_at: datetime
    client: ClientShort

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    screenshot_url: str
    created_at: datetime
    client: ClientShort

    class Config:
        from_attributes = True


class DiaryEntryResponse(BaseModel):
    id: int
    text: str
    created_at: datetime
    client: ClientShort

    class Config:
        from_attributes = True


# Settings schemas
class PaymentCard(BaseModel):
    card_number: str = ""


class PaymentSettings(BaseModel):
    payment_link: str = ""
    erip_path: str = ""
    account_number: str = ""
    card_number: str = ""


class AboutMe(BaseModel):
    text: str = ""
    photo_url: Optional[str] = None


class TemplateTime(BaseModel):
    time: str
    available_formats: AvailableFormats = AvailableFormats.BOTH

    @field_validator("time")
    @classmethod
    def time_format(cls, v):
        try:
            return time.fromisoformat(v).strftime("%H:%M")
        except ValueError:
            raise ValueError("Время должно быть в формате HH:MM")


class TemplateDay(BaseModel):
    day: str
    times: List[TemplateTime] = []


class ScheduleTemplate(BaseModel):
    days: List[TemplateDay] = []


class TemplateApply(BaseModel):
    weeks: int = Field(1, ge=1, le=12)


class TemplateApplyResponse(BaseModel):
    created: int


class BotSetupResponse(BaseModel):
    ok: bool
    webhook_url: str


# Admin schemas
class LoginRequest(BaseModel):
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
