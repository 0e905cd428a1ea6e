# barbershop/schemas.py

from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from datetime import datetime, date
from typing import List, Optional

from .core import is_valid_time, normalize_time
from .models import BookingStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[0-9 ]{7,20}$"
TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    admin = "admin"
    barber = "barber"


class UserPublic(BaseModel):
    id: int
    email: str
    role: UserRole


class UserCreate(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=72)
    role: UserRole


# --- public booking flow -----------------------------------------------------


class ServicePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    duration: int
    price: float


class AvailabilityRequest(BaseModel):
    date: date
    service_id: int = Field(gt=0)


class AvailabilityResponse(BaseModel):
    date: date
    service_id: int
    service_name: str
    duration: int
    available_slots: List[str]
    reason: str
    message: str
    is_today: bool
    schedule: str


class SlotClaimRequest(BaseModel):
    date: date
    time: str = Field(pattern=TIME_PATTERN)
    service_id: int = Field(gt=0)


class SlotClaimResponse(BaseModel):
    hold_token: str
    date: date
    time: str
    service_id: int
    expires_at: datetime


class BookingCompleteRequest(BaseModel):
    hold_token: str = Field(min_length=1)
    name: str = Field(min_length=2, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=100)
    phone_number: str = Field(pattern=PHONE_PATTERN)
    country_code: str = Field(default="+40", pattern=r"^\+[0-9]{1,4}$")

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name is too short")
        return value

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.strip().lower()


class BookingCreated(BaseModel):
    booking_id: int
    email: str
    message: str


class VerifyRequest(BaseModel):
    booking_id: int = Field(gt=0)
    code: str = Field(pattern=r"^[0-9]{4,10}$")


class ResendRequest(BaseModel):
    booking_id: int = Field(gt=0)


class ResendResponse(BaseModel):
    message: str
    daily_remaining: int
    booking_remaining: Optional[int] = None


class SuspendRequest(BaseModel):
    hold_token: Optional[str] = None


class HoldReleaseRequest(BaseModel):
    hold_token: str


class BookingPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: Optional[int] = None
    client_name: str
    email: str
    phone_number: str
    country_code: str
    service_id: int
    date: date
    time: str
    status: BookingStatus
    verified: bool
    email_count: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None


class BookingStatusResponse(BaseModel):
    message: str
    booking: BookingPublic


# --- staff -------------------------------------------------------------------


class TransitionResponse(BaseModel):
    message: str
    booking: BookingPublic
    email_status: str
    email_error: Optional[str] = None


class ConfirmedBookings(BaseModel):
    date: date
    bookings: List[BookingPublic]
    total_price: float


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BlockUserRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=200)


class ClientPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    phone_number: str
    country_code: str
    is_blocked: bool
    block_reason: Optional[str] = None
    block_date: Optional[datetime] = None
    created_at: datetime
    last_visit: Optional[datetime] = None
    total_bookings: int
    completed_bookings: int
    emails_sent: int
    last_email_sent_at: Optional[datetime] = None


class BlockUserResponse(TransitionResponse):
    client: ClientPublic


class ClientList(BaseModel):
    items: List[ClientPublic]
    total: int
    page: int
    limit: int
    pages: int


class ClientStats(BaseModel):
    total_bookings: int
    completed: int
    cancelled: int
    total_spent: float
    average_price: float


class ClientDetails(BaseModel):
    client: ClientPublic
    bookings: List[BookingPublic]
    stats: ClientStats


class BlockedPhonePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    email: Optional[str] = None
    reason: Optional[str] = None
    blocked_at: datetime


class BlockedUsers(BaseModel):
    clients: List[ClientPublic]
    phones: List[BlockedPhonePublic]


class BlockDateRequest(BaseModel):
    date: date
    is_full_day: bool = False
    hours: List[str] = Field(default_factory=list, max_length=20)
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("hours")
    @classmethod
    def check_hours(cls, value: List[str]) -> List[str]:
        for hour in value:
            if not is_valid_time(hour):
                raise ValueError(f"Invalid hour format: {hour}")
        return [normalize_time(hour) for hour in value]


class BlockedDatePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: date
    date_formatted: Optional[str] = None
    is_full_day_blocked: bool
    blocked_hours: List[str]
    reason: str
    created_by: Optional[int] = None
    created_at: datetime


class BlockCheckResponse(BaseModel):
    is_blocked: bool
    reason: Optional[str] = None
    type: Optional[str] = None


class BlockedHoursResponse(BaseModel):
    date: date
    date_formatted: str
    is_full_day_blocked: bool
    blocked_hours: List[str]
    reason: Optional[str] = None
