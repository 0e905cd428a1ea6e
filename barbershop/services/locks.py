# barbershop/services/locks.py
"""
Short-lived slot claims.

A claim is a row in ``slotlock`` guarded by a unique constraint on
(date, time, service_id); whoever inserts first owns the slot until the row
expires. Conflicts are reported, never retried.

The claiming browser session gets back a signed hold token. It names the
holder and the slot, and expires together with the lock, so a client that
takes too long to fill in the form has to start again from slot selection.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..config import ALGORITHM, BOOKING_SESSION_TIMEOUT_MINUTES, SECRET_KEY, SLOT_LOCK_TTL_MINUTES
from ..core import normalize_time
from ..errors import SessionExpired, SlotConflict, ValidationFailure
from ..models import SlotLock
from .availability import ensure_slot_available
from .catalog import ServiceCatalog, ServiceInfo

logger = logging.getLogger(__name__)

HOLD_TOKEN_TYPE = "slot_hold"


@dataclass
class SlotHold:
    holder: str
    date: date
    time: str
    service_id: int


@dataclass
class ClaimResult:
    token: str
    lock: SlotLock
    service: ServiceInfo
    expires_at: datetime


def acquire(
    session: Session,
    day: date,
    time_str: str,
    service_id: int,
    holder: str,
    now: Optional[datetime] = None,
    ttl_minutes: int = SLOT_LOCK_TTL_MINUTES,
) -> SlotLock:
    now = now or datetime.now()

    # An expired row for the same tuple would still trip the unique constraint
    stale = session.exec(
        select(SlotLock)
        .where(SlotLock.date == day)
        .where(SlotLock.time == time_str)
        .where(SlotLock.service_id == service_id)
        .where(SlotLock.expires_at <= now)
    ).all()
    if stale:
        for row in stale:
            session.delete(row)
        session.commit()
        logger.info("Reaped %d expired lock(s) on %s %s service %s", len(stale), day, time_str, service_id)

    lock = SlotLock(
        date=day,
        time=time_str,
        service_id=service_id,
        holder=holder,
        locked_at=now,
        expires_at=now + timedelta(minutes=ttl_minutes),
    )
    session.add(lock)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("Lock conflict on %s %s service %s", day, time_str, service_id)
        raise SlotConflict(
            "This time slot was just reserved by another client. Please choose another time.",
            date=day.isoformat(),
            time=time_str,
            service_id=service_id,
        )
    session.refresh(lock)
    logger.info("Slot %s %s service %s locked by %s", day, time_str, service_id, holder)
    return lock


def release(session: Session, day: date, time_str: str, service_id: int, holder: str) -> bool:
    """Delete the holder's lock. Never raises: an unreleased lock expires on its own."""
    try:
        rows = session.exec(
            select(SlotLock)
            .where(SlotLock.date == day)
            .where(SlotLock.time == time_str)
            .where(SlotLock.service_id == service_id)
            .where(SlotLock.holder == holder)
        ).all()
        for row in rows:
            session.delete(row)
        session.commit()
        return bool(rows)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Could not release lock %s %s service %s: %s", day, time_str, service_id, exc)
        return False


def release_holder(session: Session, holder: str) -> int:
    """Drop every lock owned by ``holder``; best effort like ``release``."""
    try:
        rows = session.exec(select(SlotLock).where(SlotLock.holder == holder)).all()
        for row in rows:
            session.delete(row)
        session.commit()
        return len(rows)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Could not release locks of %s: %s", holder, exc)
        return 0


def get_active_lock(session: Session, holder: str, now: Optional[datetime] = None) -> Optional[SlotLock]:
    now = now or datetime.now()
    return session.exec(
        select(SlotLock).where(SlotLock.holder == holder).where(SlotLock.expires_at > now)
    ).first()


def active_locks(session: Session, day: date, now: Optional[datetime] = None) -> List[SlotLock]:
    now = now or datetime.now()
    return session.exec(
        select(SlotLock)
        .where(SlotLock.date == day)
        .where(SlotLock.expires_at > now)
        .order_by(SlotLock.time)
    ).all()


def purge_expired(session: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.now()
    expired = session.exec(select(SlotLock).where(SlotLock.expires_at <= now)).all()
    for row in expired:
        session.delete(row)
    session.commit()
    if expired:
        logger.info("Removed %d expired slot lock(s)", len(expired))
    return len(expired)


# --- hold tokens -------------------------------------------------------------


def issue_hold_token(hold: SlotHold, expires_minutes: int = BOOKING_SESSION_TIMEOUT_MINUTES) -> str:
    payload = {
        "typ": HOLD_TOKEN_TYPE,
        "sid": hold.holder,
        "date": hold.date.isoformat(),
        "time": hold.time,
        "service_id": hold.service_id,
        "exp": datetime.utcnow() + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def read_hold_token(token: str) -> SlotHold:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise SessionExpired("Your booking session has expired. Please select a time slot again.")
    except JWTError:
        raise ValidationFailure("Invalid booking session. Please select a time slot again.")

    if payload.get("typ") != HOLD_TOKEN_TYPE:
        raise ValidationFailure("Invalid booking session. Please select a time slot again.")
    try:
        return SlotHold(
            holder=payload["sid"],
            date=date.fromisoformat(payload["date"]),
            time=payload["time"],
            service_id=int(payload["service_id"]),
        )
    except (KeyError, TypeError, ValueError):
        raise ValidationFailure("Invalid booking session. Please select a time slot again.")


def claim_slot(
    session: Session,
    day: date,
    time_str: str,
    service_id: int,
    catalog: ServiceCatalog,
    now: Optional[datetime] = None,
) -> ClaimResult:
    """Check the slot is still free, lock it, and hand back a hold token for the client."""
    now = now or datetime.now()
    service = catalog.get_service(session, service_id)
    time_str = normalize_time(time_str)

    ensure_slot_available(session, day, time_str, service, catalog, now)

    holder = uuid.uuid4().hex
    lock = acquire(session, day, time_str, service.id, holder, now=now)
    token = issue_hold_token(SlotHold(holder=holder, date=day, time=time_str, service_id=service.id))
    return ClaimResult(token=token, lock=lock, service=service, expires_at=lock.expires_at)


def resolve_hold(session: Session, token: str, now: Optional[datetime] = None) -> SlotHold:
    """Decode the hold token and make sure its lock is still alive."""
    hold = read_hold_token(token)
    lock = get_active_lock(session, hold.holder, now)
    if lock is None or lock.date != hold.date or lock.time != hold.time or lock.service_id != hold.service_id:
        raise SessionExpired("Your booking session has expired. Please select a time slot again.")
    return hold
