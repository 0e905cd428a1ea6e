# barbershop/services/bookings.py
"""
Booking lifecycle.

    pending (unverified) --verify--> pending (verified) --confirm--> confirmed --complete--> completed
            |                               |     \
            |                               |      `--decline / block / auto-expire--> declined
            `--------- suspend -------------+--> cancelled

``declined``, ``completed`` and ``cancelled`` are terminal. Every transition
checks its precondition and raises InvalidTransition without touching the row
when it does not hold.

Staff transitions commit first and email afterwards: the email outcome
(sent / failed / limited) is reported next to the booking and never undoes
the transition. Creation is the exception, a booking whose verification
email did not go out is deleted again.
"""
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlmodel import Session, select

from ..config import VERIFICATION_CODE_LENGTH
from ..core import combine
from ..errors import (
    BookingError,
    ClientBlocked,
    DeliveryFailed,
    InvalidCode,
    InvalidTransition,
    NotFound,
    QuotaExceeded,
)
from ..models import (
    ACTIVE_STATUSES,
    BlockedPhone,
    Booking,
    BookingStatus,
    Client,
)
from ..notifications import BookingSummary, ClientSummary, DeliveryResult, Notifier
from . import email_quota, locks
from .availability import ensure_slot_available
from .catalog import ServiceCatalog

logger = logging.getLogger(__name__)

EMAIL_SENT = "sent"
EMAIL_FAILED = "failed"
EMAIL_LIMITED = "limited"


@dataclass
class TransitionOutcome:
    booking: Booking
    email_status: str
    email_error: Optional[str] = None


@dataclass
class ContactDetails:
    name: str
    email: str
    phone_number: str
    country_code: str = "+40"


def generate_code(length: int = VERIFICATION_CODE_LENGTH) -> str:
    """Random numeric code without a leading zero, e.g. 6 digits -> 100000..999999."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def get_booking(session: Session, booking_id: int) -> Booking:
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found.", booking_id=booking_id)
    return booking


def booking_summary(session: Session, booking: Booking, catalog: ServiceCatalog) -> BookingSummary:
    service = catalog.find(session, booking.service_id)
    return BookingSummary(
        booking_id=booking.id,
        client_name=booking.client_name,
        service_name=service.name if service else "Unknown service",
        date=booking.date,
        time=booking.time,
        price=service.price if service else 0,
    )


def _client_for(session: Session, booking: Booking) -> Optional[Client]:
    if booking.client_id is not None:
        client = session.get(Client, booking.client_id)
        if client is not None:
            return client
    return session.exec(select(Client).where(Client.email == booking.email.lower())).first()


def _decrement_total(client: Optional[Client], now: datetime) -> None:
    if client is None:
        return
    client.total_bookings = max(0, (client.total_bookings or 0) - 1)
    client.last_modified = now


def _notify(
    session: Session,
    booking: Booking,
    send: Callable[[], DeliveryResult],
    now: datetime,
) -> Tuple[str, Optional[str]]:
    """Send one non-fatal email about ``booking`` if its quotas allow it."""
    quota = email_quota.check_send_allowed(session, booking.email, booking, now)
    if not quota.allowed:
        logger.info("Email for booking %s skipped: %s", booking.id, quota.reason)
        return EMAIL_LIMITED, quota.reason

    result = send()
    if not result.success:
        return EMAIL_FAILED, result.error

    email_quota.record_send(session, booking.email, booking, _client_for(session, booking), now)
    return EMAIL_SENT, None


def _require(booking: Booking, allowed, action: str) -> None:
    if booking.status not in allowed:
        raise InvalidTransition(
            f"Cannot {action} a booking that is {booking.status.value}.",
            booking_id=booking.id,
            status=booking.status.value,
        )


def check_blocked_user(session: Session, email: Optional[str] = None, phone_number: Optional[str] = None) -> dict:
    if email:
        client = session.exec(select(Client).where(Client.email == email.lower())).first()
        if client is not None and client.is_blocked:
            return {"is_blocked": True, "reason": client.block_reason, "source": "client"}
    if phone_number:
        legacy = session.exec(select(BlockedPhone).where(BlockedPhone.phone_number == phone_number)).first()
        if legacy is not None:
            return {"is_blocked": True, "reason": legacy.reason, "source": "phone"}
    return {"is_blocked": False, "reason": None, "source": None}


# --- client flow -------------------------------------------------------------


def create_booking(
    session: Session,
    hold_token: str,
    contact: ContactDetails,
    catalog: ServiceCatalog,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> Booking:
    """Turn a held slot into a pending, unverified booking and email its code.

    The lock is released only after the verification email went out; if the
    email fails the booking is removed and the client keeps the slot until
    the hold runs out.
    """
    now = now or datetime.now()
    email = contact.email.strip().lower()

    hold = locks.resolve_hold(session, hold_token, now)

    blocked = check_blocked_user(session, email, contact.phone_number)
    if blocked["is_blocked"]:
        logger.info("Blocked client %s tried to book (%s)", email, blocked["source"])
        raise ClientBlocked(
            "Online booking is not available for this account. Please contact the shop.",
            reason=blocked["reason"],
        )

    quota = email_quota.check_send_allowed(session, email, now=now)
    if not quota.allowed:
        raise QuotaExceeded(quota.message, reason=quota.reason)

    service = catalog.get_service(session, hold.service_id)
    ensure_slot_available(session, hold.date, hold.time, service, catalog, now, ignore_holder=hold.holder)

    client = session.exec(select(Client).where(Client.email == email)).first()
    if client is None:
        client = Client(
            email=email,
            name=contact.name,
            phone_number=contact.phone_number,
            country_code=contact.country_code,
            created_at=now,
            last_modified=now,
        )
        logger.info("New client %s", email)
    elif client.name != contact.name or client.phone_number != contact.phone_number:
        client.name = contact.name
        client.phone_number = contact.phone_number
        client.country_code = contact.country_code
        client.last_modified = now
    client.total_bookings = (client.total_bookings or 0) + 1
    session.add(client)
    session.commit()
    session.refresh(client)

    booking = Booking(
        client_id=client.id,
        client_name=contact.name,
        phone_number=contact.phone_number,
        email=email,
        country_code=contact.country_code,
        service_id=service.id,
        date=hold.date,
        time=hold.time,
        status=BookingStatus.pending,
        verification_code=generate_code(),
        verified=False,
        created_at=now,
    )
    session.add(booking)
    session.commit()
    session.refresh(booking)

    result = notifier.send_verification_code(
        booking.email, booking.verification_code, booking_summary(session, booking, catalog)
    )
    if not result.success:
        logger.error("Verification email for booking %s failed, rolling back: %s", booking.id, result.error)
        session.delete(booking)
        _decrement_total(client, now)
        session.add(client)
        session.commit()
        raise DeliveryFailed(
            "We could not send the verification email. Please check the address and try again.",
            error=result.error,
        )

    email_quota.record_send(session, email, booking, client, now)
    locks.release(session, hold.date, hold.time, hold.service_id, hold.holder)
    logger.info("Booking %s created for %s on %s %s", booking.id, email, booking.date, booking.time)
    session.refresh(booking)
    return booking


def verify_booking(session: Session, booking_id: int, code: str) -> Booking:
    booking = get_booking(session, booking_id)
    _require(booking, (BookingStatus.pending,), "verify")
    if booking.verified:
        raise InvalidTransition("This booking is already verified.", booking_id=booking.id)

    expected = (booking.verification_code or "").encode()
    if not expected or not hmac.compare_digest(expected, (code or "").strip().encode()):
        logger.info("Wrong verification code for booking %s", booking.id)
        raise InvalidCode("The verification code is incorrect.")

    booking.verified = True
    booking.verification_code = None
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s verified", booking.id)
    return booking


def resend_code(
    session: Session,
    booking_id: int,
    catalog: ServiceCatalog,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> email_quota.QuotaCheck:
    """Email a fresh code. Refusals (quota, delivery) leave the booking as it was."""
    now = now or datetime.now()
    booking = get_booking(session, booking_id)
    _require(booking, (BookingStatus.pending,), "resend the code for")
    if booking.verified:
        raise InvalidTransition("This booking is already verified.", booking_id=booking.id)

    quota = email_quota.check_send_allowed(session, booking.email, booking, now, enforce_interval=True)
    if not quota.allowed:
        raise QuotaExceeded(quota.message, reason=quota.reason, wait_seconds=quota.wait_seconds)

    code = generate_code()
    result = notifier.send_verification_code(booking.email, code, booking_summary(session, booking, catalog))
    if not result.success:
        raise DeliveryFailed("We could not send the verification email. Please try again later.", error=result.error)

    booking.verification_code = code
    session.add(booking)
    email_quota.record_send(session, booking.email, booking, _client_for(session, booking), now)
    logger.info("Verification code resent for booking %s", booking.id)
    return email_quota.check_send_allowed(session, booking.email, booking, now)


def suspend_booking(
    session: Session,
    booking_id: int,
    hold_token: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Client walked away from the flow: cancel a pending booking and free its slot."""
    now = now or datetime.now()
    booking = get_booking(session, booking_id)
    if booking.status == BookingStatus.cancelled:
        return booking
    _require(booking, (BookingStatus.pending,), "cancel")

    booking.status = BookingStatus.cancelled
    booking.notes = f"Cancelled by client at {now.isoformat()}"
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s cancelled by client", booking.id)

    if hold_token:
        release_hold(session, hold_token)
    return booking


def release_hold(session: Session, hold_token: str) -> bool:
    """Drop the lock behind a hold token; unreadable tokens are ignored."""
    try:
        hold = locks.read_hold_token(hold_token)
    except BookingError as exc:
        logger.info("Ignoring unusable hold token on release: %s", exc.message)
        return False
    return locks.release_holder(session, hold.holder) > 0


# --- staff actions -----------------------------------------------------------


def confirm_booking(
    session: Session,
    booking_id: int,
    catalog: ServiceCatalog,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    now = now or datetime.now()
    booking = get_booking(session, booking_id)
    _require(booking, (BookingStatus.pending,), "confirm")
    if not booking.verified:
        raise InvalidTransition("The client has not verified this booking yet.", booking_id=booking.id)

    booking.status = BookingStatus.confirmed
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s confirmed", booking.id)

    summary = booking_summary(session, booking, catalog)
    status, error = _notify(session, booking, lambda: notifier.send_confirmation(booking.email, summary), now)
    return TransitionOutcome(booking, status, error)


def decline_booking(
    session: Session,
    booking_id: int,
    catalog: ServiceCatalog,
    notifier: Notifier,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> TransitionOutcome:
    now = now or datetime.now()
    booking = get_booking(session, booking_id)
    _require(booking, (BookingStatus.pending,), "decline")

    booking.status = BookingStatus.declined
    if reason:
        booking.notes = reason
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s declined", booking.id)

    summary = booking_summary(session, booking, catalog)
    status, error = _notify(session, booking, lambda: notifier.send_rejection(booking.email, summary), now)
    return TransitionOutcome(booking, status, error)


def block_user(
    session: Session,
    booking_id: int,
    reason: str,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> Tuple[TransitionOutcome, Client]:
    """Block the booking's client and decline the booking."""
    now = now or datetime.now()
    booking = get_booking(session, booking_id)
    _require(booking, ACTIVE_STATUSES, "block the client of")

    client = _client_for(session, booking)
    if client is None:
        client = Client(
            email=booking.email.lower(),
            name=booking.client_name,
            phone_number=booking.phone_number,
            country_code=booking.country_code,
            created_at=now,
        )
    client.is_blocked = True
    client.block_reason = reason
    client.block_date = now
    client.last_modified = now
    session.add(client)

    booking.status = BookingStatus.declined
    booking.notes = f"Declined - client blocked: {reason}"
    session.add(booking)
    session.commit()
    session.refresh(booking)
    session.refresh(client)
    logger.info("Client %s blocked from booking %s", client.email, booking.id)

    summary = ClientSummary(name=client.name, email=client.email, phone_number=client.phone_number)
    status, error = _notify(
        session, booking, lambda: notifier.send_blocked_notice(booking.email, summary, reason), now
    )
    return TransitionOutcome(booking, status, error), client


def complete_service(session: Session, booking_id: int, now: Optional[datetime] = None) -> Booking:
    now = now or datetime.now()
    booking = get_booking(session, booking_id)
    if booking.status != BookingStatus.confirmed:
        raise InvalidTransition(
            f"Only confirmed bookings can be completed (this one is {booking.status.value}).",
            booking_id=booking.id,
            status=booking.status.value,
        )

    booking.status = BookingStatus.completed
    booking.completed_at = now
    session.add(booking)

    client = _client_for(session, booking)
    if client is not None:
        client.completed_bookings = (client.completed_bookings or 0) + 1
        client.last_visit = now
        client.last_modified = now
        session.add(client)

    session.commit()
    session.refresh(booking)
    logger.info("Booking %s completed", booking.id)
    return booking


# --- sweeper -----------------------------------------------------------------


AUTO_DECLINE_NOTE = "Automatically declined - appointment time passed at {}"


def auto_expire(
    session: Session,
    booking: Booking,
    catalog: ServiceCatalog,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> Optional[TransitionOutcome]:
    """Decline a verified pending booking whose time has passed; None when it has not."""
    now = now or datetime.now()
    if booking.status != BookingStatus.pending or not booking.verified:
        return None
    if combine(booking.date, booking.time) >= now:
        return None

    booking.status = BookingStatus.declined
    booking.notes = AUTO_DECLINE_NOTE.format(now.isoformat())
    session.add(booking)
    client = _client_for(session, booking)
    _decrement_total(client, now)
    if client is not None:
        session.add(client)
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s auto-declined (was %s %s)", booking.id, booking.date, booking.time)

    summary = booking_summary(session, booking, catalog)
    status, error = _notify(session, booking, lambda: notifier.send_rejection(booking.email, summary), now)
    return TransitionOutcome(booking, status, error)


# --- staff queries -----------------------------------------------------------


def list_pending(session: Session, include_unverified: bool = False) -> List[Booking]:
    query = select(Booking).where(Booking.status == BookingStatus.pending)
    if not include_unverified:
        query = query.where(Booking.verified == True)  # noqa: E712
    return session.exec(query.order_by(Booking.date, Booking.time)).all()


def list_confirmed(session: Session, day, catalog: ServiceCatalog) -> Tuple[List[Booking], float]:
    bookings = session.exec(
        select(Booking)
        .where(Booking.status == BookingStatus.confirmed)
        .where(Booking.date == day)
        .order_by(Booking.time)
    ).all()
    total = 0.0
    for booking in bookings:
        service = catalog.find(session, booking.service_id)
        total += service.price if service else 0
    return bookings, total
