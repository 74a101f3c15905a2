"""
Database models for consultation booking bot
"""
import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base


class SlotStatus(str, enum.Enum):
    FREE = "free"
    BOOKED = "booked"


class SessionFormat(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class AvailableFormats(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    BOTH = "both"

    def allows(self, fmt: SessionFormat) -> bool:
        return self is AvailableFormats.BOTH or self.value == fmt.value


class BookingStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    COMPLETED = "completed"


class SosStatus(str, enum.Enum):
    NEW = "new"
    VIEWED = "viewed"


def _enum(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class Client(Base):
    """Client model"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, nullable=False, unique=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    username = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    bookings = relationship("Booking", back_populates="client", cascade="all, delete-orphan")
    diary_entries = relationship("DiaryEntry", back_populates="client", cascade="all, delete-orphan")
    sos_requests = relationship("SosRequest", back_populates="client", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="client", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.first_name or "Клиент"

    @property
    def mention(self) -> str:
        return f"@{self.username}" if self.username else "нет username"


class Slot(Base):
    """Bookable date/time unit"""
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(Time, nullable=False)
    status = Column(_enum(SlotStatus), nullable=False, default=SlotStatus.FREE)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    format = Column(_enum(SessionFormat), nullable=True)
    available_formats = Column(_enum(AvailableFormats), nullable=False, default=AvailableFormats.BOTH)
    comment = Column(Text, nullable=True)

    # Relationships
    client = relationship("Client")
    bookings = relationship("Booking", back_populates="slot", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("date", "time", name="unique_slot_datetime"),
        # booked <=> client_id і format заповнені
        CheckConstraint(
            "(status = 'free' AND client_id IS NULL AND format IS NULL) OR "
            "(status = 'booked' AND client_id IS NOT NULL AND format IS NOT NULL)",
            name="slot_booking_consistency",
        ),
    )

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.time)


class Booking(Base):
    """Booking model with reminder flags"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False)
    status = Column(_enum(BookingStatus), nullable=False, default=BookingStatus.ACTIVE)
    reminder_24h_sent = Column(Boolean, nullable=False, default=False)
    reminder_1h_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    client = relationship("Client", back_populates="bookings")
    slot = relationship("Slot", back_populates="bookings")

    __table_args__ = (
        # Одна активна запис на слот
        Index(
            "unique_active_booking_per_slot",
            "slot_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )


class DiaryEntry(Base):
    __tablename__ = "diary_entries"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    client = relationship("Client", back_populates="diary_entries")


class SosRequest(Base):
    __tablename__ = "sos_requests"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    text = Column(Text, nullable=True)
    status = Column(_enum(SosStatus), nullable=False, default=SosStatus.NEW)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    client = relationship("Client", back_populates="sos_requests")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    screenshot_url = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    client = relationship("Client", back_populates="payments")


class BotSetting(Base):
    """Admin-configurable key/value settings"""
    __tablename__ = "bot_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ChatState(Base):
    """Pending multi-step flow per chat"""
    __tablename__ = "chat_states"

    chat_id = Column(BigInteger, primary_key=True)
    flow = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
