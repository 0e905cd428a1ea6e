# barbershop/services/blocked_dates.py
"""
Days and hours closed by the shop.

One row per calendar date: either the whole day is closed or a list of
"HH:MM" hours is. A block that would leave an existing pending or confirmed
booking inside closed time is refused with the list of those bookings, so
staff can deal with them first.
"""
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlmodel import Session, select

from ..core import format_day, is_valid_time, normalize_time, overlaps, to_minutes
from ..data import shop_settings
from ..errors import BlockConflict, NotFound, ValidationFailure
from ..models import ACTIVE_STATUSES, BlockedDate, Booking
from .availability import get_blocked_date
from .catalog import ServiceCatalog

logger = logging.getLogger(__name__)


def automatic_reason(day: date, is_full_day: bool) -> str:
    if is_full_day:
        return f"Closed on {format_day(day)}"
    return f"Some hours are unavailable on {format_day(day)}"


def clean_hours(hours: Optional[List[str]]) -> List[str]:
    """Validate, de-duplicate and sort hour strings."""
    if not hours:
        raise ValidationFailure("Select at least one hour to block, or block the whole day.")
    if len(hours) > shop_settings["max_blocked_hours"]:
        raise ValidationFailure(f"Too many hours selected (at most {shop_settings['max_blocked_hours']}).")

    low = to_minutes(shop_settings["blockable_start"])
    high = to_minutes(shop_settings["blockable_end"])
    cleaned = set()
    for hour in hours:
        if not is_valid_time(hour):
            raise ValidationFailure(f"Invalid hour format: {hour}")
        if not low <= to_minutes(hour) <= high:
            raise ValidationFailure(
                f"Hour {hour} is outside {shop_settings['blockable_start']}-{shop_settings['blockable_end']}."
            )
        cleaned.add(normalize_time(hour))
    return sorted(cleaned, key=to_minutes)


def find_conflicts(
    session: Session,
    day: date,
    is_full_day: bool,
    hours: List[str],
    catalog: ServiceCatalog,
) -> List[dict]:
    bookings = session.exec(
        select(Booking)
        .where(Booking.date == day)
        .where(Booking.status.in_(ACTIVE_STATUSES))
        .order_by(Booking.time)
    ).all()

    conflicts = []
    block_minutes = shop_settings["blocked_hour_minutes"]
    for booking in bookings:
        service = catalog.find(session, booking.service_id)
        entry = {
            "id": booking.id,
            "client_name": booking.client_name,
            "time": booking.time,
            "service": service.name if service else "Unknown service",
            "status": booking.status.value,
        }
        if is_full_day:
            conflicts.append(entry)
            continue
        if service is None or not is_valid_time(booking.time):
            continue
        start = to_minutes(booking.time)
        end = start + service.duration
        overlapping = [
            hour for hour in hours
            if overlaps(to_minutes(hour), to_minutes(hour) + block_minutes, start, end)
        ]
        if overlapping:
            conflicts.append({**entry, "conflicting_hour": overlapping[0], "conflicting_hours": overlapping})
    return conflicts


def block_date(
    session: Session,
    day: date,
    is_full_day: bool,
    hours: Optional[List[str]],
    catalog: ServiceCatalog,
    staff_id: Optional[int] = None,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> BlockedDate:
    """Create or replace the block for ``day``; without a ``reason`` one is generated."""
    now = now or datetime.now()
    if day < now.date():
        raise ValidationFailure("Dates in the past cannot be blocked.")

    cleaned = [] if is_full_day else clean_hours(hours)

    conflicts = find_conflicts(session, day, is_full_day, cleaned, catalog)
    if conflicts:
        logger.info("Block of %s refused, %d conflicting booking(s)", day, len(conflicts))
        if is_full_day:
            message = f"The whole day cannot be blocked: there are {len(conflicts)} bookings on this date."
        else:
            message = "The selected hours cannot be blocked: they overlap existing bookings."
        raise BlockConflict(
            message,
            conflicting_bookings=conflicts,
            suggest_action="Decline or move the existing bookings before blocking this date.",
        )

    reason = (reason or "").strip() or automatic_reason(day, is_full_day)
    blocked = get_blocked_date(session, day)
    if blocked is None:
        blocked = BlockedDate(date=day, created_at=now)
    blocked.is_full_day_blocked = is_full_day
    # JSON column: assign a new list so the change is persisted
    blocked.blocked_hours = list(cleaned)
    blocked.reason = reason
    blocked.created_by = staff_id
    blocked.updated_at = now
    session.add(blocked)
    session.commit()
    session.refresh(blocked)
    logger.info("Blocked %s (%s)", day, "full day" if is_full_day else ", ".join(cleaned))
    return blocked


def list_blocked_dates(session: Session) -> List[BlockedDate]:
    return session.exec(select(BlockedDate).order_by(BlockedDate.date)).all()


def delete_blocked_date(session: Session, blocked_id: int) -> date:
    """Remove a block, returning the date it covered."""
    blocked = session.get(BlockedDate, blocked_id)
    if blocked is None:
        raise NotFound("Blocked date not found.", blocked_date_id=blocked_id)
    day = blocked.date
    session.delete(blocked)
    session.commit()
    logger.info("Block on %s removed", day)
    return day


def check_blocked(session: Session, day: date, time_str: Optional[str] = None) -> dict:
    blocked = get_blocked_date(session, day)
    if blocked is None:
        return {"is_blocked": False, "reason": None, "type": None}
    if blocked.is_full_day_blocked:
        return {"is_blocked": True, "reason": blocked.reason, "type": "full_day"}
    if time_str and normalize_time(time_str) in (blocked.blocked_hours or []):
        return {"is_blocked": True, "reason": blocked.reason, "type": "hour"}
    return {"is_blocked": False, "reason": None, "type": None}


def get_blocked_hours(session: Session, day: date) -> dict:
    blocked = get_blocked_date(session, day)
    if blocked is None:
        return {"is_full_day_blocked": False, "blocked_hours": [], "reason": None}
    return {
        "is_full_day_blocked": blocked.is_full_day_blocked,
        "blocked_hours": list(blocked.blocked_hours or []),
        "reason": blocked.reason,
    }


def purge_expired(session: Session, today: Optional[date] = None) -> int:
    """Delete blocks for dates before yesterday."""
    today = today or date.today()
    cutoff = today - timedelta(days=1)
    expired = session.exec(select(BlockedDate).where(BlockedDate.date < cutoff)).all()
    for blocked in expired:
        session.delete(blocked)
    session.commit()
    if expired:
        logger.info("Removed %d expired blocked date(s)", len(expired))
    return len(expired)
