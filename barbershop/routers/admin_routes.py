# barbershop/routers/admin_routes.py

import math
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..db import get_session
from ..deps import get_admin_user, get_staff_user
from ..notifications import Notifier, get_notifier
from ..schemas import (
    BlockedUsers,
    BlockUserRequest,
    BlockUserResponse,
    BookingPublic,
    ClientDetails,
    ClientList,
    ClientPublic,
    ConfirmedBookings,
    DeclineRequest,
    TransitionResponse,
)
from ..services import bookings, clients, email_quota
from ..services.catalog import ServiceCatalog, get_catalog
from ..services.cleanup import run_full_cleanup, scheduler

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
)

EMAIL_MESSAGES = {
    bookings.EMAIL_SENT: "email sent",
    bookings.EMAIL_FAILED: "email could not be sent",
    bookings.EMAIL_LIMITED: "email skipped, sending limit reached",
}


def _transition_body(outcome: bookings.TransitionOutcome, action: str) -> dict:
    return {
        "message": f"Booking {action}, {EMAIL_MESSAGES[outcome.email_status]}.",
        "booking": outcome.booking,
        "email_status": outcome.email_status,
        "email_error": outcome.email_error,
    }


# --- bookings ----------------------------------------------------------------


@router.get("/bookings/pending", response_model=List[BookingPublic])
def pending_bookings(
    include_unverified: bool = False,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_staff_user),
):
    return bookings.list_pending(session, include_unverified)


@router.get("/bookings/confirmed", response_model=ConfirmedBookings)
def confirmed_bookings(
    day: Optional[date] = Query(default=None, alias="date"),
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    current_user: dict = Depends(get_staff_user),
):
    day = day or date.today()
    items, total = bookings.list_confirmed(session, day, catalog)
    return {"date": day, "bookings": items, "total_price": total}


@router.put("/bookings/{booking_id}/confirm", response_model=TransitionResponse)
def confirm_booking(
    booking_id: int,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    notifier: Notifier = Depends(get_notifier),
    current_user: dict = Depends(get_staff_user),
):
    outcome = bookings.confirm_booking(session, booking_id, catalog, notifier, datetime.now())
    return _transition_body(outcome, "confirmed")


@router.put("/bookings/{booking_id}/decline", response_model=TransitionResponse)
def decline_booking(
    booking_id: int,
    body: Optional[DeclineRequest] = None,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    notifier: Notifier = Depends(get_notifier),
    current_user: dict = Depends(get_staff_user),
):
    reason = body.reason if body is not None else None
    outcome = bookings.decline_booking(session, booking_id, catalog, notifier, datetime.now(), reason)
    return _transition_body(outcome, "declined")


@router.put("/bookings/{booking_id}/complete", response_model=BookingPublic)
def complete_service(
    booking_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_staff_user),
):
    return bookings.complete_service(session, booking_id, datetime.now())


@router.post("/bookings/{booking_id}/block-user", response_model=BlockUserResponse)
def block_user(
    booking_id: int,
    body: BlockUserRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
    current_user: dict = Depends(get_admin_user),
):
    outcome, client = bookings.block_user(session, booking_id, body.reason, notifier, datetime.now())
    return {**_transition_body(outcome, "declined and client blocked"), "client": client}


# --- clients -----------------------------------------------------------------


@router.get("/clients", response_model=ClientList)
def list_clients(
    search: Optional[str] = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    blocked: Optional[bool] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_staff_user),
):
    items, total = clients.list_clients(session, search, page, limit, blocked)
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/clients/blocked", response_model=BlockedUsers)
def blocked_clients(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_admin_user),
):
    return clients.list_blocked(session)


@router.get("/clients/{client_id}", response_model=ClientDetails)
def client_details(
    client_id: int,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    current_user: dict = Depends(get_staff_user),
):
    return clients.client_details(session, client_id, catalog)


@router.put("/clients/{client_id}/unblock", response_model=ClientPublic)
def unblock_client(
    client_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_admin_user),
):
    return clients.unblock_client(session, client_id, datetime.now())


# --- maintenance -------------------------------------------------------------


@router.get("/email-stats")
def email_stats(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_admin_user),
):
    return email_quota.email_statistics(session, date.today())


@router.post("/cleanup/run")
def run_cleanup(
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    notifier: Notifier = Depends(get_notifier),
    current_user: dict = Depends(get_admin_user),
):
    report = run_full_cleanup(bind=session.get_bind(), catalog=catalog, notifier=notifier)
    scheduler.last_report = report
    return report.to_dict()


@router.get("/cleanup/status")
def cleanup_status(current_user: dict = Depends(get_admin_user)):
    return scheduler.status()
