# barbershop/services/availability.py
"""
Time-slot availability.

A candidate slot is a start time on the 30-minute grid inside the day's
opening window that leaves room for the whole service. It is offered only
when its interval is clear of:

* active slot locks, for any service, sized by the locked service's duration
* pending or confirmed bookings, sized by their own service's duration
* admin-blocked hours, each occupying one grid slot

Everything here is a read: calling it twice without writes in between gives
the same answer.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from ..config import MAX_BOOKING_DAYS_AHEAD
from ..core import (
    combine,
    describe_schedule,
    format_minutes,
    is_valid_time,
    opening_window,
    overlaps,
    to_minutes,
)
from ..data import MAX_SERVICE_DURATION, shop_settings
from ..errors import SlotConflict, ValidationFailure
from ..models import ACTIVE_STATUSES, BlockedDate, Booking, SlotLock
from .catalog import ServiceCatalog, ServiceInfo

logger = logging.getLogger(__name__)

Interval = Tuple[int, int]


class AvailabilityReason(str, Enum):
    available = "available"
    closed = "closed"
    day_blocked = "day_blocked"
    hours_blocked = "hours_blocked"
    fully_booked = "fully_booked"
    past = "past"
    out_of_range = "out_of_range"
    invalid_duration = "invalid_duration"
    invalid_time = "invalid_time"
    locked = "locked"
    booked = "booked"


@dataclass
class DayState:
    """Everything on a date that can take a slot away."""

    day: date
    blocked: Optional[BlockedDate] = None
    lock_intervals: List[Interval] = field(default_factory=list)
    booking_intervals: List[Interval] = field(default_factory=list)
    blocked_intervals: List[Interval] = field(default_factory=list)

    @property
    def full_day_blocked(self) -> bool:
        return self.blocked is not None and self.blocked.is_full_day_blocked

    def conflict(self, start: int, end: int) -> Optional[AvailabilityReason]:
        for lock_start, lock_end in self.lock_intervals:
            if overlaps(start, end, lock_start, lock_end):
                return AvailabilityReason.locked
        for booking_start, booking_end in self.booking_intervals:
            if overlaps(start, end, booking_start, booking_end):
                return AvailabilityReason.booked
        for block_start, block_end in self.blocked_intervals:
            if overlaps(start, end, block_start, block_end):
                return AvailabilityReason.hours_blocked
        return None


@dataclass
class AvailabilityResult:
    date: date
    service: ServiceInfo
    slots: List[str]
    reason: AvailabilityReason
    message: str
    is_today: bool = False
    schedule: str = ""


@dataclass
class SlotCheck:
    available: bool
    reason: AvailabilityReason
    message: str = ""


def get_blocked_date(session: Session, day: date) -> Optional[BlockedDate]:
    return session.exec(select(BlockedDate).where(BlockedDate.date == day)).first()


def _interval(time_str: str, duration: int) -> Interval:
    start = to_minutes(time_str)
    return start, start + duration


def load_day_state(
    session: Session,
    day: date,
    catalog: ServiceCatalog,
    now: datetime,
    ignore_holder: Optional[str] = None,
) -> DayState:
    state = DayState(day=day, blocked=get_blocked_date(session, day))

    services: Dict[int, ServiceInfo] = catalog.all(session)

    # Expired locks are ignored here even if the reaper has not removed them yet
    locks = session.exec(
        select(SlotLock).where(SlotLock.date == day).where(SlotLock.expires_at > now)
    ).all()
    for lock in locks:
        if ignore_holder is not None and lock.holder == ignore_holder:
            continue
        service = services.get(lock.service_id) or catalog.find(session, lock.service_id)
        if service is None or not is_valid_time(lock.time):
            continue
        state.lock_intervals.append(_interval(lock.time, service.duration))

    bookings = session.exec(
        select(Booking).where(Booking.date == day).where(Booking.status.in_(ACTIVE_STATUSES))
    ).all()
    for booking in bookings:
        service = services.get(booking.service_id) or catalog.find(session, booking.service_id)
        if service is None or not is_valid_time(booking.time):
            logger.warning("Booking %s has no usable service/time, skipped in availability", booking.id)
            continue
        state.booking_intervals.append(_interval(booking.time, service.duration))

    if state.blocked is not None and not state.blocked.is_full_day_blocked:
        block_minutes = shop_settings["blocked_hour_minutes"]
        for hour in state.blocked.blocked_hours or []:
            if is_valid_time(hour):
                state.blocked_intervals.append(_interval(hour, block_minutes))

    return state


def candidate_starts(day: date, duration: int) -> List[int]:
    """Grid start times (minutes-of-day) whose service fits before closing."""
    window = opening_window(day)
    if window is None:
        return []
    window_start, window_end = window
    cadence = shop_settings["slot_minutes"]
    return [start for start in range(window_start, window_end, cadence) if start + duration <= window_end]


def _valid_duration(duration) -> bool:
    return isinstance(duration, int) and 0 < duration <= MAX_SERVICE_DURATION


def _empty(day, service, reason, message, is_today=False) -> AvailabilityResult:
    logger.info("No slots on %s for service %s: %s", day, service.id, reason.value)
    return AvailabilityResult(
        date=day,
        service=service,
        slots=[],
        reason=reason,
        message=message,
        is_today=is_today,
        schedule=describe_schedule(day),
    )


def compute_available_slots(
    session: Session,
    day: date,
    service_id: int,
    catalog: ServiceCatalog,
    now: Optional[datetime] = None,
) -> AvailabilityResult:
    """Free start times for ``service_id`` on ``day``, with the reason when there are none.

    Raises NotFound when the service does not exist; every other "no slot"
    outcome is a normal result.
    """
    now = now or datetime.now()
    service = catalog.get_service(session, service_id)
    today = now.date()
    is_today = day == today

    if not _valid_duration(service.duration):
        logger.error("Service %s has invalid duration %r", service.id, service.duration)
        return _empty(day, service, AvailabilityReason.invalid_duration,
                      "This service cannot be booked online right now.")

    if day < today:
        return _empty(day, service, AvailabilityReason.past,
                      "The selected date is in the past. Please choose another date.")

    if day > today + timedelta(days=MAX_BOOKING_DAYS_AHEAD):
        return _empty(day, service, AvailabilityReason.out_of_range,
                      f"Bookings can be made at most {MAX_BOOKING_DAYS_AHEAD} days in advance.")

    if opening_window(day) is None:
        return _empty(day, service, AvailabilityReason.closed,
                      "We are closed on Sundays. Opening hours: Monday to Saturday.")

    state = load_day_state(session, day, catalog, now)
    if state.full_day_blocked:
        return _empty(day, service, AvailabilityReason.day_blocked,
                      f"{state.blocked.reason}. Please choose another date.", is_today)

    slots: List[str] = []
    excluded: Dict[AvailabilityReason, int] = {}
    for start in candidate_starts(day, service.duration):
        end = start + service.duration
        if is_today and combine(day, format_minutes(start)) <= now:
            reason = AvailabilityReason.past
        else:
            reason = state.conflict(start, end)
        if reason is None:
            slots.append(format_minutes(start))
        else:
            excluded[reason] = excluded.get(reason, 0) + 1

    # The day may have been closed while the slots were being computed
    blocked_now = get_blocked_date(session, day)
    if blocked_now is not None and blocked_now.is_full_day_blocked:
        return _empty(day, service, AvailabilityReason.day_blocked,
                      f"{blocked_now.reason}. Please choose another date.", is_today)

    if slots:
        return AvailabilityResult(
            date=day,
            service=service,
            slots=slots,
            reason=AvailabilityReason.available,
            message=f"{len(slots)} time slots available",
            is_today=is_today,
            schedule=describe_schedule(day),
        )

    if excluded.get(AvailabilityReason.hours_blocked):
        return _empty(day, service, AvailabilityReason.hours_blocked,
                      f"{state.blocked.reason}. Please choose another date.", is_today)
    only_past = excluded.get(AvailabilityReason.past, 0) == sum(excluded.values())
    if is_today and only_past:
        return _empty(day, service, AvailabilityReason.past,
                      f"There are no more time slots available today (current time {now:%H:%M}). "
                      "Please choose another date.", is_today)
    return _empty(day, service, AvailabilityReason.fully_booked,
                  "There are no time slots available for the selected date. Please choose another date.",
                  is_today)


def check_slot(
    session: Session,
    day: date,
    time_str: str,
    service: ServiceInfo,
    catalog: ServiceCatalog,
    now: Optional[datetime] = None,
    ignore_holder: Optional[str] = None,
) -> SlotCheck:
    """Whether one specific (date, time) can still take ``service``.

    ``ignore_holder`` lets the holder of a lock re-check the slot it claimed.
    """
    now = now or datetime.now()

    if not _valid_duration(service.duration):
        return SlotCheck(False, AvailabilityReason.invalid_duration, "This service cannot be booked online right now.")
    if not is_valid_time(time_str):
        return SlotCheck(False, AvailabilityReason.invalid_time, f"Invalid time {time_str!r}.")
    if day < now.date() or combine(day, time_str) <= now:
        return SlotCheck(False, AvailabilityReason.past, "The selected time is in the past.")
    if day > now.date() + timedelta(days=MAX_BOOKING_DAYS_AHEAD):
        return SlotCheck(False, AvailabilityReason.out_of_range,
                         f"Bookings can be made at most {MAX_BOOKING_DAYS_AHEAD} days in advance.")
    if opening_window(day) is None:
        return SlotCheck(False, AvailabilityReason.closed, "We are closed on Sundays.")

    start = to_minutes(time_str)
    if start not in candidate_starts(day, service.duration):
        return SlotCheck(False, AvailabilityReason.invalid_time,
                         f"{time_str} is not a bookable start time for {service.name} on {describe_schedule(day)}.")

    state = load_day_state(session, day, catalog, now, ignore_holder=ignore_holder)
    if state.full_day_blocked:
        return SlotCheck(False, AvailabilityReason.day_blocked, f"{state.blocked.reason}. Please choose another date.")

    reason = state.conflict(start, start + service.duration)
    if reason == AvailabilityReason.hours_blocked:
        return SlotCheck(False, reason, f"{state.blocked.reason}. Please choose another date or time.")
    if reason is not None:
        return SlotCheck(False, reason,
                         f"The time slot {time_str} was just taken by another client. Please choose another time.")
    return SlotCheck(True, AvailabilityReason.available)


def is_slot_available(session, day, time_str, service, catalog, now=None, ignore_holder=None) -> bool:
    return check_slot(session, day, time_str, service, catalog, now, ignore_holder).available


def explain_unavailable(session, day, time_str, service, catalog, now=None, ignore_holder=None) -> Optional[str]:
    """Human-readable reason the slot cannot be taken, or None when it is free."""
    result = check_slot(session, day, time_str, service, catalog, now, ignore_holder)
    return None if result.available else result.message


_CONFLICT_REASONS = (
    AvailabilityReason.locked,
    AvailabilityReason.booked,
    AvailabilityReason.hours_blocked,
    AvailabilityReason.day_blocked,
)


def ensure_slot_available(session, day, time_str, service, catalog, now=None, ignore_holder=None) -> None:
    """Raise SlotConflict when the slot is taken, ValidationFailure when it can never be booked."""
    result = check_slot(session, day, time_str, service, catalog, now, ignore_holder)
    if result.available:
        return
    if result.reason in _CONFLICT_REASONS:
        raise SlotConflict(result.message, reason=result.reason.value)
    raise ValidationFailure(result.message, reason=result.reason.value)
