# barbershop/services/email_quota.py
"""
Anti-abuse limits on emails sent to clients.

Three limits apply: a daily cap per recipient address (counted in
``emailusage``, one row per address and calendar day), a cap per booking, and
a minimum interval between two emails for the same booking. Callers ask
``check_send_allowed`` before sending and call ``record_send`` after a
successful send.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..config import BOOKING_EMAIL_LIMIT, DAILY_EMAIL_LIMIT, MIN_SECONDS_BETWEEN_EMAILS
from ..models import Booking, Client, EmailUsage

logger = logging.getLogger(__name__)


@dataclass
class QuotaCheck:
    allowed: bool
    reason: Optional[str] = None
    daily_remaining: int = 0
    booking_remaining: Optional[int] = None
    wait_seconds: int = 0

    @property
    def message(self) -> str:
        if self.reason == "daily_limit":
            return "Daily email limit reached for this address. Please try again tomorrow."
        if self.reason == "booking_limit":
            return "Email limit reached for this booking. Please contact the shop."
        if self.reason == "too_soon":
            return f"Please wait {self.wait_seconds} seconds before requesting another email."
        return ""


def _usage_row(session: Session, email: str, day: date) -> Optional[EmailUsage]:
    return session.exec(
        select(EmailUsage).where(EmailUsage.email == email).where(EmailUsage.day == day)
    ).first()


def daily_usage(session: Session, email: str, day: Optional[date] = None) -> int:
    row = _usage_row(session, email.lower(), day or date.today())
    return row.count if row is not None else 0


def booking_usage(booking: Booking) -> int:
    return booking.email_count or 0


def check_send_allowed(
    session: Session,
    email: str,
    booking: Optional[Booking] = None,
    now: Optional[datetime] = None,
    enforce_interval: bool = False,
) -> QuotaCheck:
    now = now or datetime.now()
    used_today = daily_usage(session, email, now.date())
    daily_remaining = max(0, DAILY_EMAIL_LIMIT - used_today)
    booking_remaining = None

    if booking is not None:
        booking_remaining = max(0, BOOKING_EMAIL_LIMIT - booking_usage(booking))

    if daily_remaining <= 0:
        return QuotaCheck(False, "daily_limit", daily_remaining, booking_remaining)
    if booking_remaining is not None and booking_remaining <= 0:
        return QuotaCheck(False, "booking_limit", daily_remaining, booking_remaining)

    if enforce_interval and booking is not None and booking.last_email_sent_at is not None:
        elapsed = (now - booking.last_email_sent_at).total_seconds()
        if elapsed < MIN_SECONDS_BETWEEN_EMAILS:
            wait = int(MIN_SECONDS_BETWEEN_EMAILS - elapsed) + 1
            return QuotaCheck(False, "too_soon", daily_remaining, booking_remaining, wait)

    return QuotaCheck(True, None, daily_remaining, booking_remaining)


def record_send(
    session: Session,
    email: str,
    booking: Optional[Booking] = None,
    client: Optional[Client] = None,
    now: Optional[datetime] = None,
) -> int:
    """Count one sent email against every limit it is subject to; returns today's count."""
    now = now or datetime.now()
    email = email.lower()

    row = _usage_row(session, email, now.date())
    if row is None:
        row = EmailUsage(email=email, day=now.date(), count=0)
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            # Created concurrently by another request
            session.rollback()
            row = _usage_row(session, email, now.date())

    row.count += 1
    session.add(row)

    if booking is not None:
        booking.email_count = (booking.email_count or 0) + 1
        booking.last_email_sent_at = now
        session.add(booking)
    if client is not None:
        client.emails_sent = (client.emails_sent or 0) + 1
        client.last_email_sent_at = now
        client.last_modified = now
        session.add(client)

    session.commit()
    logger.info("Email usage for %s on %s: %d/%d", email, now.date(), row.count, DAILY_EMAIL_LIMIT)
    return row.count


def email_statistics(session: Session, today: Optional[date] = None, top: int = 10) -> dict:
    """Usage today per address, heaviest recipients overall and the last seven days."""
    today = today or date.today()

    todays = session.exec(
        select(EmailUsage).where(EmailUsage.day == today).order_by(EmailUsage.count.desc())
    ).all()

    top_clients = session.exec(
        select(Client).where(Client.emails_sent > 0).order_by(Client.emails_sent.desc()).limit(top)
    ).all()

    week_start = today - timedelta(days=6)
    per_day = session.exec(
        select(EmailUsage.day, func.sum(EmailUsage.count))
        .where(EmailUsage.day >= week_start)
        .where(EmailUsage.day <= today)
        .group_by(EmailUsage.day)
        .order_by(EmailUsage.day)
    ).all()

    return {
        "today": {
            "date": today.isoformat(),
            "total": sum(u.count for u in todays),
            "by_email": [
                {"email": u.email, "count": u.count, "remaining": max(0, DAILY_EMAIL_LIMIT - u.count)}
                for u in todays
            ],
        },
        "top_clients": [
            {
                "email": c.email,
                "name": c.name,
                "emails_sent": c.emails_sent,
                "last_email_sent_at": c.last_email_sent_at.isoformat() if c.last_email_sent_at else None,
            }
            for c in top_clients
        ],
        "last_7_days": [{"date": day.isoformat(), "total": int(total or 0)} for day, total in per_day],
        "limits": {
            "daily": DAILY_EMAIL_LIMIT,
            "per_booking": BOOKING_EMAIL_LIMIT,
            "min_seconds_between": MIN_SECONDS_BETWEEN_EMAILS,
        },
    }
