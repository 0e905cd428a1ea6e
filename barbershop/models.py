# barbershop/models.py

from enum import Enum
from typing import Optional, List
from datetime import datetime, date as Date

from sqlalchemy import UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    declined = "declined"
    completed = "completed"
    cancelled = "cancelled"


# Statuses that occupy their slot
ACTIVE_STATUSES = (BookingStatus.pending, BookingStatus.confirmed)
TERMINAL_STATUSES = (BookingStatus.declined, BookingStatus.completed, BookingStatus.cancelled)


class Service(SQLModel, table=True):
    id: int = Field(primary_key=True)
    name: str = Field(index=True, unique=True, max_length=50)
    duration: int  # minutes
    price: float


class Client(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    email: str = Field(index=True, unique=True, max_length=100)
    name: str = Field(max_length=50)
    phone_number: str = Field(index=True, max_length=30)
    country_code: str = Field(default="+40", max_length=5)

    is_blocked: bool = Field(default=False, index=True)
    block_reason: Optional[str] = Field(default=None, max_length=200)
    block_date: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.now)
    last_visit: Optional[datetime] = None
    total_bookings: int = 0
    completed_bookings: int = 0
    emails_sent: int = 0
    last_email_sent_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    last_modified: datetime = Field(default_factory=datetime.now)


class Booking(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    client_id: Optional[int] = Field(default=None, foreign_key="client.id", index=True)
    # Contact snapshot taken at creation, kept even if the client profile changes
    client_name: str = Field(max_length=50)
    phone_number: str = Field(max_length=30)
    email: str = Field(index=True, max_length=100)
    country_code: str = Field(default="+40", max_length=5)

    service_id: int = Field(foreign_key="service.id")
    date: Date = Field(index=True)
    time: str  # "HH:MM"
    status: BookingStatus = Field(default=BookingStatus.pending, index=True)

    verification_code: Optional[str] = Field(default=None, max_length=10)
    verified: bool = False
    email_count: int = 0
    last_email_sent_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.now, index=True)
    completed_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class SlotLock(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("date", "time", "service_id", name="uq_slot_lock"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    date: Date = Field(index=True)
    time: str
    service_id: int
    holder: str
    locked_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime = Field(index=True)


class BlockedDate(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    date: Date = Field(index=True, unique=True)
    is_full_day_blocked: bool = False
    blocked_hours: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    reason: str = Field(max_length=500)
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class EmailUsage(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("email", "day", name="uq_email_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, max_length=100)
    day: Date = Field(index=True)
    count: int = 0


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str  # admin or barber


class BlockedPhone(SQLModel, table=True):
    """Legacy blocklist keyed by raw phone number."""

    id: Optional[int] = Field(default=None, primary_key=True)
    phone_number: str = Field(index=True, unique=True, max_length=30)
    email: Optional[str] = Field(default=None, max_length=100)
    reason: Optional[str] = Field(default=None, max_length=200)
    blocked_at: datetime = Field(default_factory=datetime.now)
