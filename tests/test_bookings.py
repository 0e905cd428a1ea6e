"""Tests for the booking lifecycle."""

from datetime import timedelta

import pytest
from sqlmodel import select

from barbershop.errors import (
    ClientBlocked,
    DeliveryFailed,
    InvalidCode,
    InvalidTransition,
    QuotaExceeded,
    SessionExpired,
    SlotConflict,
)
from barbershop.models import BlockedPhone, Booking, BookingStatus, Client, EmailUsage, SlotLock
from barbershop.services import bookings, locks
from barbershop.services.availability import compute_available_slots


def _contact(email="ion@example.com", name="Ion Popescu", phone="0722000111"):
    return bookings.ContactDetails(name=name, email=email, phone_number=phone)


@pytest.fixture
def create(session, catalog, notifier, tuesday, now):
    """Claim a slot on Tuesday and turn it into a booking."""

    def _create(time="14:00", service_id=1, contact=None):
        claim = locks.claim_slot(session, tuesday, time, service_id, catalog, now)
        return bookings.create_booking(session, claim.token, contact or _contact(), catalog, notifier, now)

    return _create


def test_generate_code_is_six_digits():
    for _ in range(50):
        code = bookings.generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


def test_create_sends_code_and_releases_lock(session, catalog, notifier, tuesday, now, create):
    booking = create()

    assert booking.status == BookingStatus.pending
    assert booking.verified is False
    assert len(booking.verification_code) == 6
    assert booking.email_count == 1
    assert session.exec(select(SlotLock)).all() == []

    assert len(notifier.outbox) == 1
    assert booking.verification_code in notifier.outbox[0]["html"]

    client = session.get(Client, booking.client_id)
    assert client.total_bookings == 1
    assert client.emails_sent == 1


def test_booked_slot_disappears_from_availability(session, catalog, tuesday, now, create):
    create(time="14:00")
    slots = compute_available_slots(session, tuesday, 1, catalog, now).slots
    assert "14:00" not in slots
    assert "13:30" in slots
    assert "14:30" in slots


def test_create_rolls_back_when_email_fails(session, catalog, notifier, tuesday, now):
    claim = locks.claim_slot(session, tuesday, "14:00", 1, catalog, now)
    notifier.fail = True

    with pytest.raises(DeliveryFailed):
        bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now)

    assert session.exec(select(Booking)).all() == []
    client = session.exec(select(Client).where(Client.email == "ion@example.com")).one()
    assert client.total_bookings == 0
    # the client keeps the slot and can retry
    assert locks.get_active_lock(session, claim.lock.holder, now) is not None

    notifier.fail = False
    booking = bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now)
    assert booking.status == BookingStatus.pending


def test_create_after_hold_expired(session, catalog, notifier, tuesday, now):
    claim = locks.claim_slot(session, tuesday, "14:00", 1, catalog, now)

    with pytest.raises(SessionExpired):
        bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now + timedelta(minutes=16))
    assert session.exec(select(Booking)).all() == []


def test_create_rejects_blocked_client(session, catalog, notifier, tuesday, now):
    session.add(Client(email="ion@example.com", name="Ion", phone_number="0722000111", is_blocked=True,
                       block_reason="no-shows"))
    session.commit()
    claim = locks.claim_slot(session, tuesday, "14:00", 1, catalog, now)

    with pytest.raises(ClientBlocked) as exc:
        bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now)
    assert exc.value.extra["reason"] == "no-shows"
    assert notifier.outbox == []


def test_create_rejects_legacy_blocked_phone(session, catalog, notifier, tuesday, now):
    session.add(BlockedPhone(phone_number="0722000111", reason="legacy"))
    session.commit()
    claim = locks.claim_slot(session, tuesday, "14:00", 1, catalog, now)

    with pytest.raises(ClientBlocked):
        bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now)


def test_create_refused_when_daily_quota_used(session, catalog, notifier, tuesday, now):
    session.add(EmailUsage(email="ion@example.com", day=now.date(), count=20))
    session.commit()
    claim = locks.claim_slot(session, tuesday, "14:00", 1, catalog, now)

    with pytest.raises(QuotaExceeded):
        bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now)
    assert session.exec(select(Booking)).all() == []
    assert notifier.outbox == []


def test_create_rechecks_slot(session, catalog, notifier, tuesday, now, make_booking):
    claim = locks.claim_slot(session, tuesday, "14:00", 1, catalog, now)
    # staff squeezed a booking in while the client was typing
    make_booking(tuesday, "14:00")

    with pytest.raises(SlotConflict):
        bookings.create_booking(session, claim.token, _contact(), catalog, notifier, now)


def test_existing_client_profile_is_updated(session, create):
    first = create(time="10:00")
    second = create(time="11:00", contact=_contact(name="Ion P.", phone="0799999999"))

    assert first.client_id == second.client_id
    client = session.get(Client, second.client_id)
    assert client.name == "Ion P."
    assert client.phone_number == "0799999999"
    assert client.total_bookings == 2
    # snapshot on the first booking is untouched
    session.refresh(first)
    assert first.client_name == "Ion Popescu"


def test_verify(session, create):
    booking = create()
    code = booking.verification_code

    with pytest.raises(InvalidCode):
        bookings.verify_booking(session, booking.id, "000000")

    verified = bookings.verify_booking(session, booking.id, code)
    assert verified.verified is True
    assert verified.status == BookingStatus.pending
    assert verified.verification_code is None

    with pytest.raises(InvalidTransition):
        bookings.verify_booking(session, booking.id, code)


def test_resend_respects_interval_and_limits(session, catalog, notifier, now, create):
    booking = create()
    original_code = booking.verification_code

    with pytest.raises(QuotaExceeded) as exc:
        bookings.resend_code(session, booking.id, catalog, notifier, now)
    assert exc.value.extra["reason"] == "too_soon"
    session.refresh(booking)
    assert booking.verification_code == original_code
    assert booking.email_count == 1

    later = now + timedelta(seconds=61)
    remaining = bookings.resend_code(session, booking.id, catalog, notifier, later)
    session.refresh(booking)
    assert len(notifier.outbox) == 2
    assert booking.email_count == 2
    assert remaining.booking_remaining == 3

    booking.email_count = 5
    session.add(booking)
    session.commit()
    with pytest.raises(QuotaExceeded) as exc:
        bookings.resend_code(session, booking.id, catalog, notifier, later + timedelta(minutes=5))
    assert exc.value.extra["reason"] == "booking_limit"


def test_resend_delivery_failure_keeps_old_code(session, catalog, notifier, now, create):
    booking = create()
    code = booking.verification_code
    notifier.fail = True

    with pytest.raises(DeliveryFailed):
        bookings.resend_code(session, booking.id, catalog, notifier, now + timedelta(minutes=2))
    session.refresh(booking)
    assert booking.verification_code == code
    assert booking.email_count == 1


def test_confirm_requires_verification(session, catalog, notifier, create):
    booking = create()
    with pytest.raises(InvalidTransition):
        bookings.confirm_booking(session, booking.id, catalog, notifier)


def test_confirm_and_email_outcomes(session, catalog, notifier, tuesday, make_booking):
    sent = make_booking(tuesday, "10:00")
    outcome = bookings.confirm_booking(session, sent.id, catalog, notifier)
    assert outcome.booking.status == BookingStatus.confirmed
    assert outcome.email_status == "sent"

    failed = make_booking(tuesday, "11:00", email="b@example.com")
    notifier.fail = True
    outcome = bookings.confirm_booking(session, failed.id, catalog, notifier)
    assert outcome.booking.status == BookingStatus.confirmed
    assert outcome.email_status == "failed"

    limited = make_booking(tuesday, "12:00", email="c@example.com")
    limited.email_count = 5
    session.add(limited)
    session.commit()
    outcome = bookings.confirm_booking(session, limited.id, catalog, notifier)
    assert outcome.booking.status == BookingStatus.confirmed
    assert outcome.email_status == "limited"


def test_decline_pending_unverified_or_verified(session, catalog, notifier, tuesday, make_booking):
    unverified = make_booking(tuesday, "10:00", verified=False)
    outcome = bookings.decline_booking(session, unverified.id, catalog, notifier, reason="double booked")
    assert outcome.booking.status == BookingStatus.declined
    assert outcome.booking.notes == "double booked"
    assert "request" in notifier.subjects()[0]


def test_complete_service_only_from_confirmed(session, catalog, notifier, tuesday, make_booking):
    booking = make_booking(tuesday, "10:00")

    with pytest.raises(InvalidTransition):
        bookings.complete_service(session, booking.id)
    session.refresh(booking)
    assert booking.status == BookingStatus.pending

    bookings.confirm_booking(session, booking.id, catalog, notifier)
    done = bookings.complete_service(session, booking.id)
    assert done.status == BookingStatus.completed
    assert done.completed_at is not None

    client = session.get(Client, done.client_id)
    assert client.completed_bookings == 1
    assert client.last_visit is not None


@pytest.mark.parametrize("terminal", [BookingStatus.declined, BookingStatus.completed, BookingStatus.cancelled])
def test_terminal_states_refuse_every_transition(session, catalog, notifier, tuesday, make_booking, terminal):
    booking = make_booking(tuesday, "10:00", status=terminal)

    for action in (
        lambda: bookings.confirm_booking(session, booking.id, catalog, notifier),
        lambda: bookings.decline_booking(session, booking.id, catalog, notifier),
        lambda: bookings.complete_service(session, booking.id),
        lambda: bookings.block_user(session, booking.id, "spam", notifier),
        lambda: bookings.verify_booking(session, booking.id, "123456"),
    ):
        with pytest.raises(InvalidTransition):
            action()
        session.refresh(booking)
        assert booking.status == terminal


def test_suspend(session, tuesday, make_booking):
    booking = make_booking(tuesday, "10:00", verified=False)

    cancelled = bookings.suspend_booking(session, booking.id)
    assert cancelled.status == BookingStatus.cancelled
    # second call is a no-op
    assert bookings.suspend_booking(session, booking.id).status == BookingStatus.cancelled

    confirmed = make_booking(tuesday, "11:00", status=BookingStatus.confirmed)
    with pytest.raises(InvalidTransition):
        bookings.suspend_booking(session, confirmed.id)


def test_suspend_releases_hold_and_ignores_bad_token(session, catalog, tuesday, now, make_booking):
    booking = make_booking(tuesday, "10:00", verified=False)
    claim = locks.claim_slot(session, tuesday, "15:00", 1, catalog, now)

    bookings.suspend_booking(session, booking.id, claim.token, now)
    assert session.exec(select(SlotLock)).all() == []

    other = make_booking(tuesday, "11:00", verified=False)
    assert bookings.suspend_booking(session, other.id, "garbage", now).status == BookingStatus.cancelled


def test_block_user_declines_and_flags_client(session, notifier, tuesday, make_booking):
    booking = make_booking(tuesday, "10:00", status=BookingStatus.confirmed)

    outcome, client = bookings.block_user(session, booking.id, "abusive messages", notifier)

    assert outcome.booking.status == BookingStatus.declined
    assert client.is_blocked is True
    assert client.block_reason == "abusive messages"
    assert outcome.email_status == "sent"
    assert "abusive messages" in notifier.outbox[-1]["html"]


def test_auto_expire(session, catalog, notifier, now, make_booking):
    yesterday = now.date() - timedelta(days=1)
    booking = make_booking(yesterday, "10:00")

    outcome = bookings.auto_expire(session, booking, catalog, notifier, now)

    assert outcome.booking.status == BookingStatus.declined
    assert outcome.booking.notes.startswith("Automatically declined - appointment time passed at")
    assert session.get(Client, booking.client_id).total_bookings == 0


def test_auto_expire_leaves_future_and_unverified(session, catalog, notifier, tuesday, now, make_booking):
    future = make_booking(tuesday, "10:00")
    past_unverified = make_booking(now.date() - timedelta(days=1), "10:00", verified=False)

    assert bookings.auto_expire(session, future, catalog, notifier, now) is None
    assert bookings.auto_expire(session, past_unverified, catalog, notifier, now) is None


def test_staff_lists(session, catalog, tuesday, make_booking):
    make_booking(tuesday, "12:00")
    make_booking(tuesday, "10:00")
    make_booking(tuesday, "11:00", verified=False)
    make_booking(tuesday, "13:00", status=BookingStatus.confirmed, service_id=3)
    make_booking(tuesday, "15:00", status=BookingStatus.confirmed, service_id=2)

    assert [b.time for b in bookings.list_pending(session)] == ["10:00", "12:00"]
    assert len(bookings.list_pending(session, include_unverified=True)) == 3

    confirmed, total = bookings.list_confirmed(session, tuesday, catalog)
    assert [b.time for b in confirmed] == ["13:00", "15:00"]
    assert total == 250
