# barbershop/routers/public_routes.py

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..core import format_day, is_valid_time
from ..db import get_session
from ..errors import ValidationFailure
from ..notifications import Notifier, get_notifier
from ..schemas import (
    AvailabilityRequest,
    AvailabilityResponse,
    BlockCheckResponse,
    BlockedHoursResponse,
    BookingCompleteRequest,
    BookingCreated,
    BookingStatusResponse,
    HoldReleaseRequest,
    ResendRequest,
    ResendResponse,
    ServicePublic,
    SlotClaimRequest,
    SlotClaimResponse,
    SuspendRequest,
    VerifyRequest,
)
from ..services import blocked_dates, bookings, locks
from ..services.availability import compute_available_slots
from ..services.catalog import ServiceCatalog, get_catalog

router = APIRouter(
    prefix="/api",
    tags=["booking"],
)


@router.get("/services", response_model=List[ServicePublic])
def list_services(
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    return catalog.list_services(session)


@router.post("/available-time-slots", response_model=AvailabilityResponse)
def available_time_slots(
    body: AvailabilityRequest,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    result = compute_available_slots(session, body.date, body.service_id, catalog, datetime.now())
    return {
        "date": result.date,
        "service_id": result.service.id,
        "service_name": result.service.name,
        "duration": result.service.duration,
        "available_slots": result.slots,
        "reason": result.reason.value,
        "message": result.message,
        "is_today": result.is_today,
        "schedule": result.schedule,
    }


@router.post("/bookings", response_model=SlotClaimResponse, status_code=201)
def claim_slot(
    body: SlotClaimRequest,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    claim = locks.claim_slot(session, body.date, body.time, body.service_id, catalog, datetime.now())
    return {
        "hold_token": claim.token,
        "date": claim.lock.date,
        "time": claim.lock.time,
        "service_id": claim.lock.service_id,
        "expires_at": claim.expires_at,
    }


@router.post("/bookings/release")
def release_hold(
    body: HoldReleaseRequest,
    session: Session = Depends(get_session),
):
    released = bookings.release_hold(session, body.hold_token)
    return {"released": released}


@router.post("/bookings/complete", response_model=BookingCreated, status_code=201)
def complete_booking(
    body: BookingCompleteRequest,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    notifier: Notifier = Depends(get_notifier),
):
    contact = bookings.ContactDetails(
        name=body.name,
        email=body.email,
        phone_number=body.phone_number,
        country_code=body.country_code,
    )
    booking = bookings.create_booking(session, body.hold_token, contact, catalog, notifier, datetime.now())
    return {
        "booking_id": booking.id,
        "email": booking.email,
        "message": f"A verification code was sent to {booking.email}.",
    }


@router.post("/bookings/verify", response_model=BookingStatusResponse)
def verify_booking(
    body: VerifyRequest,
    session: Session = Depends(get_session),
):
    booking = bookings.verify_booking(session, body.booking_id, body.code)
    return {
        "message": "Your request was sent. You will receive an email once the shop confirms it.",
        "booking": booking,
    }


@router.post("/bookings/resend-code", response_model=ResendResponse)
def resend_code(
    body: ResendRequest,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    notifier: Notifier = Depends(get_notifier),
):
    remaining = bookings.resend_code(session, body.booking_id, catalog, notifier, datetime.now())
    return {
        "message": "A new verification code was sent.",
        "daily_remaining": remaining.daily_remaining,
        "booking_remaining": remaining.booking_remaining,
    }


@router.put("/bookings/{booking_id}/suspend", response_model=BookingStatusResponse)
def suspend_booking(
    booking_id: int,
    body: Optional[SuspendRequest] = None,
    session: Session = Depends(get_session),
):
    hold_token = body.hold_token if body is not None else None
    booking = bookings.suspend_booking(session, booking_id, hold_token, datetime.now())
    return {"message": "Booking cancelled.", "booking": booking}


@router.get("/check-blocked-date", response_model=BlockCheckResponse)
def check_blocked_date(
    date: date,
    time: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
):
    if time is not None and not is_valid_time(time):
        raise ValidationFailure("Invalid time format.")
    return blocked_dates.check_blocked(session, date, time)


@router.get("/blocked-hours/{day}", response_model=BlockedHoursResponse)
def blocked_hours(
    day: date,
    session: Session = Depends(get_session),
):
    info = blocked_dates.get_blocked_hours(session, day)
    return {"date": day, "date_formatted": format_day(day), **info}


@router.get("/health")
def health():
    return {"status": "ok", "time": datetime.now().isoformat()}
