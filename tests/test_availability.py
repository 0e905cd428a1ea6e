"""Tests for the availability calculator."""

from datetime import datetime, timedelta

import pytest

from barbershop.core import combine
from barbershop.errors import NotFound, SlotConflict, ValidationFailure
from barbershop.models import BlockedDate, BookingStatus, Service, SlotLock
from barbershop.services.availability import (
    AvailabilityReason,
    compute_available_slots,
    ensure_slot_available,
    explain_unavailable,
    is_slot_available,
)

from conftest import next_weekday

TUNS = 1
PRECISION = 3


def _slots(session, catalog, day, service_id, now):
    return compute_available_slots(session, day, service_id, catalog, now).slots


def test_weekday_grid_respects_closing_time(session, catalog, tuesday, now):
    """30-minute cadence, the service has to end by 19:00."""
    tuns = _slots(session, catalog, tuesday, TUNS, now)
    assert tuns[0] == "10:00"
    assert tuns[-1] == "18:30"
    assert len(tuns) == 18

    precision = _slots(session, catalog, tuesday, PRECISION, now)
    assert precision[-1] == "18:00"
    assert len(precision) == 17


def test_saturday_short_window(session, catalog, now):
    saturday = next_weekday(5)
    assert _slots(session, catalog, saturday, TUNS, now) == ["10:00", "10:30", "11:00", "11:30", "12:00", "12:30"]


def test_sunday_is_closed(session, catalog, now):
    result = compute_available_slots(session, next_weekday(6), TUNS, catalog, now)
    assert result.slots == []
    assert result.reason == AvailabilityReason.closed
    assert "closed" in result.message.lower()


def test_full_day_block(session, catalog, tuesday, now):
    session.add(BlockedDate(date=tuesday, is_full_day_blocked=True, reason="Closed for training"))
    session.commit()

    result = compute_available_slots(session, tuesday, TUNS, catalog, now)
    assert result.slots == []
    assert result.reason == AvailabilityReason.day_blocked
    assert result.message.startswith("Closed for training")


def test_booking_overlap_uses_booking_duration(session, catalog, tuesday, now, make_booking):
    """A 60-minute booking at 14:00 occupies [14:00, 15:00)."""
    make_booking(tuesday, "14:00", service_id=PRECISION)

    tuns = _slots(session, catalog, tuesday, TUNS, now)
    assert "13:30" in tuns
    assert "14:00" not in tuns
    assert "14:30" not in tuns
    assert "15:00" in tuns


def test_touching_boundaries_are_available(session, catalog, tuesday, now, make_booking):
    """A 30-minute booking at 14:00 blocks 13:30 for a 60-minute service but not 13:00."""
    make_booking(tuesday, "14:00", service_id=TUNS)

    precision = _slots(session, catalog, tuesday, PRECISION, now)
    assert "13:00" in precision
    assert "13:30" not in precision
    assert "14:00" not in precision
    assert "14:30" in precision


@pytest.mark.parametrize("status", [BookingStatus.declined, BookingStatus.cancelled, BookingStatus.completed])
def test_inactive_bookings_do_not_occupy(session, catalog, tuesday, now, make_booking, status):
    make_booking(tuesday, "14:00", status=status)
    assert "14:00" in _slots(session, catalog, tuesday, TUNS, now)


def test_unverified_pending_booking_occupies(session, catalog, tuesday, now, make_booking):
    make_booking(tuesday, "11:00", verified=False)
    assert "11:00" not in _slots(session, catalog, tuesday, TUNS, now)


def test_lock_of_another_service_blocks_all_services(session, catalog, tuesday, now):
    """A Precision Haircut lock at 16:00 is sized by its own 60 minutes."""
    session.add(SlotLock(date=tuesday, time="16:00", service_id=PRECISION, holder="other",
                         locked_at=now, expires_at=now + timedelta(minutes=15)))
    session.commit()

    tuns = _slots(session, catalog, tuesday, TUNS, now)
    assert "16:00" not in tuns
    assert "16:30" not in tuns
    assert "15:30" in tuns
    assert "17:00" in tuns


def test_expired_lock_is_ignored(session, catalog, tuesday, now):
    session.add(SlotLock(date=tuesday, time="16:00", service_id=TUNS, holder="gone",
                         locked_at=now - timedelta(minutes=20), expires_at=now - timedelta(minutes=5)))
    session.commit()

    assert "16:00" in _slots(session, catalog, tuesday, TUNS, now)


def test_blocked_hours_occupy_one_slot(session, catalog, tuesday, now):
    session.add(BlockedDate(date=tuesday, blocked_hours=["12:00"], reason="Some hours are unavailable"))
    session.commit()

    assert "12:00" not in _slots(session, catalog, tuesday, TUNS, now)
    assert "12:30" in _slots(session, catalog, tuesday, TUNS, now)
    precision = _slots(session, catalog, tuesday, PRECISION, now)
    assert "11:00" in precision
    assert "11:30" not in precision
    assert "12:00" not in precision
    assert "12:30" in precision


def test_today_only_offers_future_slots(session, catalog, tuesday):
    now = combine(tuesday, "14:10")
    result = compute_available_slots(session, tuesday, TUNS, catalog, now)
    assert result.is_today is True
    assert result.slots[0] == "14:30"


def test_today_after_last_slot_reports_past(session, catalog, tuesday):
    now = combine(tuesday, "18:45")
    result = compute_available_slots(session, tuesday, TUNS, catalog, now)
    assert result.slots == []
    assert result.reason == AvailabilityReason.past
    assert "18:45" in result.message


def test_saturday_fully_booked(session, catalog, now, make_booking):
    saturday = next_weekday(5)
    for time in ("10:00", "11:00", "12:00"):
        make_booking(saturday, time, service_id=PRECISION)

    result = compute_available_slots(session, saturday, TUNS, catalog, now)
    assert result.slots == []
    assert result.reason == AvailabilityReason.fully_booked


def test_every_hour_blocked_reports_block_reason(session, catalog, now):
    saturday = next_weekday(5)
    hours = ["10:00", "10:30", "11:00", "11:30", "12:00", "12:30"]
    session.add(BlockedDate(date=saturday, blocked_hours=hours, reason="Some hours are unavailable on Saturday"))
    session.commit()

    result = compute_available_slots(session, saturday, TUNS, catalog, now)
    assert result.reason == AvailabilityReason.hours_blocked
    assert result.message.startswith("Some hours are unavailable on Saturday")


def test_past_and_far_future_dates(session, catalog, now):
    past = compute_available_slots(session, now.date() - timedelta(days=1), TUNS, catalog, now)
    assert past.reason == AvailabilityReason.past

    far = compute_available_slots(session, now.date() + timedelta(days=45), TUNS, catalog, now)
    assert far.reason == AvailabilityReason.out_of_range


def test_invalid_duration_fails_closed(session, catalog, tuesday, now):
    session.add(Service(id=9, name="Marathon", duration=300, price=500))
    session.commit()

    result = compute_available_slots(session, tuesday, 9, catalog, now)
    assert result.slots == []
    assert result.reason == AvailabilityReason.invalid_duration


def test_unknown_service_is_not_found(session, catalog, tuesday, now):
    with pytest.raises(NotFound):
        compute_available_slots(session, tuesday, 99, catalog, now)


def test_repeated_calls_are_identical(session, catalog, tuesday, now, make_booking):
    make_booking(tuesday, "10:30")
    first = compute_available_slots(session, tuesday, TUNS, catalog, now)
    second = compute_available_slots(session, tuesday, TUNS, catalog, now)
    assert first == second


def test_single_slot_checks(session, catalog, tuesday, now, make_booking):
    tuns = catalog.get_service(session, TUNS)
    make_booking(tuesday, "15:00")

    assert is_slot_available(session, tuesday, "14:30", tuns, catalog, now) is True
    assert is_slot_available(session, tuesday, "15:00", tuns, catalog, now) is False
    assert "taken" in explain_unavailable(session, tuesday, "15:00", tuns, catalog, now)
    assert explain_unavailable(session, tuesday, "14:30", tuns, catalog, now) is None

    with pytest.raises(SlotConflict):
        ensure_slot_available(session, tuesday, "15:00", tuns, catalog, now)
    with pytest.raises(ValidationFailure):
        ensure_slot_available(session, tuesday, "10:15", tuns, catalog, now)
    with pytest.raises(ValidationFailure):
        ensure_slot_available(session, next_weekday(6), "10:00", tuns, catalog, now)


def test_lock_holder_can_recheck_own_slot(session, catalog, tuesday, now):
    tuns = catalog.get_service(session, TUNS)
    session.add(SlotLock(date=tuesday, time="11:00", service_id=TUNS, holder="me",
                         locked_at=now, expires_at=now + timedelta(minutes=15)))
    session.commit()

    assert is_slot_available(session, tuesday, "11:00", tuns, catalog, now) is False
    assert is_slot_available(session, tuesday, "11:00", tuns, catalog, now, ignore_holder="me") is True


def test_lock_ignored_when_now_moves_past_expiry(session, catalog, tuesday):
    locked_at = datetime.combine(tuesday - timedelta(days=1), datetime.min.time()).replace(hour=9)
    session.add(SlotLock(date=tuesday, time="11:00", service_id=TUNS, holder="x",
                         locked_at=locked_at, expires_at=locked_at + timedelta(minutes=15)))
    session.commit()

    assert "11:00" not in _slots(session, catalog, tuesday, TUNS, locked_at)
    assert "11:00" in _slots(session, catalog, tuesday, TUNS, locked_at + timedelta(minutes=16))
