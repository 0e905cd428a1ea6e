# barbershop/services/cleanup.py
"""
Periodic reconciliation of stale state.

Passes (independent, any order):

* expired_pending: verified pending bookings whose time has passed are declined
* unverified: pending bookings never verified within the TTL are deleted
* declined: declined bookings past the retention window are deleted
* blocked_dates: blocks for dates before yesterday are deleted
* slot_locks: expired slot locks are deleted

Every pass runs in its own session and every booking is handled in its own
try block, so one bad record or one failing pass never stops the rest.
Queries select by state, so a booking staff already acted on is skipped.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlmodel import Session, select

from ..config import (
    CLEANUP_INTERVAL_SECONDS,
    DECLINED_RETENTION_DAYS,
    UNVERIFIED_BOOKING_TTL_MINUTES,
)
from ..db import engine
from ..models import Booking, BookingStatus, Client
from ..notifications import Notifier, get_notifier
from . import blocked_dates, locks
from .bookings import EMAIL_SENT, auto_expire
from .catalog import ServiceCatalog, get_catalog

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    cleaned: int = 0
    errors: int = 0
    emails_sent: int = 0


@dataclass
class CleanupReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    passes: Dict[str, PassResult] = field(default_factory=dict)

    @property
    def total_cleaned(self) -> int:
        return sum(p.cleaned for p in self.passes.values())

    @property
    def total_errors(self) -> int:
        return sum(p.errors for p in self.passes.values())

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "passes": {name: asdict(result) for name, result in self.passes.items()},
            "total_cleaned": self.total_cleaned,
            "total_errors": self.total_errors,
        }


def cleanup_expired_pending(
    session: Session,
    catalog: ServiceCatalog,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> PassResult:
    now = now or datetime.now()
    result = PassResult()
    candidate_ids = session.exec(
        select(Booking.id)
        .where(Booking.status == BookingStatus.pending)
        .where(Booking.verified == True)  # noqa: E712
        .where(Booking.date <= now.date())
        .order_by(Booking.id)
    ).all()

    for booking_id in candidate_ids:
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                continue
            outcome = auto_expire(session, booking, catalog, notifier, now)
            if outcome is None:
                continue
            result.cleaned += 1
            if outcome.email_status == EMAIL_SENT:
                result.emails_sent += 1
        except Exception:
            session.rollback()
            result.errors += 1
            logger.exception("Auto-expire failed for booking %s", booking_id)
    return result


def cleanup_unverified(session: Session, now: Optional[datetime] = None) -> PassResult:
    now = now or datetime.now()
    cutoff = now - timedelta(minutes=UNVERIFIED_BOOKING_TTL_MINUTES)
    result = PassResult()
    abandoned_ids = session.exec(
        select(Booking.id)
        .where(Booking.status == BookingStatus.pending)
        .where(Booking.verified == False)  # noqa: E712
        .where(Booking.created_at < cutoff)
        .order_by(Booking.id)
    ).all()

    for booking_id in abandoned_ids:
        try:
            booking = session.get(Booking, booking_id)
            # Gone, or verified since the query ran
            if booking is None or booking.verified or booking.status != BookingStatus.pending:
                continue
            client = session.get(Client, booking.client_id) if booking.client_id is not None else None
            if client is not None:
                client.total_bookings = max(0, (client.total_bookings or 0) - 1)
                client.last_modified = now
                session.add(client)
            session.delete(booking)
            session.commit()
            result.cleaned += 1
        except Exception:
            session.rollback()
            result.errors += 1
            logger.exception("Deleting unverified booking %s failed", booking_id)
    if result.cleaned:
        logger.info("Deleted %d unverified booking(s)", result.cleaned)
    return result


def cleanup_declined(session: Session, now: Optional[datetime] = None) -> PassResult:
    now = now or datetime.now()
    cutoff = now - timedelta(days=DECLINED_RETENTION_DAYS)
    result = PassResult()
    stale_ids = session.exec(
        select(Booking.id)
        .where(Booking.status == BookingStatus.declined)
        .where(Booking.created_at < cutoff)
        .order_by(Booking.id)
    ).all()

    for booking_id in stale_ids:
        try:
            booking = session.get(Booking, booking_id)
            if booking is None or booking.status != BookingStatus.declined:
                continue
            session.delete(booking)
            session.commit()
            result.cleaned += 1
        except Exception:
            session.rollback()
            result.errors += 1
            logger.exception("Deleting declined booking %s failed", booking_id)
    if result.cleaned:
        logger.info("Deleted %d declined booking(s) older than %d days", result.cleaned, DECLINED_RETENTION_DAYS)
    return result


def cleanup_blocked_dates(session: Session, now: Optional[datetime] = None) -> PassResult:
    now = now or datetime.now()
    return PassResult(cleaned=blocked_dates.purge_expired(session, now.date()))


def cleanup_slot_locks(session: Session, now: Optional[datetime] = None) -> PassResult:
    return PassResult(cleaned=locks.purge_expired(session, now))


def run_full_cleanup(
    bind=None,
    catalog: Optional[ServiceCatalog] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> CleanupReport:
    bind = bind or engine
    catalog = catalog or get_catalog()
    notifier = notifier or get_notifier()
    now = now or datetime.now()

    passes: Dict[str, Callable[[Session], PassResult]] = {
        "expired_pending": lambda s: cleanup_expired_pending(s, catalog, notifier, now),
        "unverified": lambda s: cleanup_unverified(s, now),
        "declined": lambda s: cleanup_declined(s, now),
        "blocked_dates": lambda s: cleanup_blocked_dates(s, now),
        "slot_locks": lambda s: cleanup_slot_locks(s, now),
    }

    report = CleanupReport(started_at=datetime.now())
    for name, run_pass in passes.items():
        try:
            with Session(bind) as session:
                report.passes[name] = run_pass(session)
        except Exception:
            logger.exception("Cleanup pass %s failed", name)
            report.passes[name] = PassResult(errors=1)
    report.finished_at = datetime.now()

    logger.info(
        "Cleanup finished: %d cleaned, %d errors (%s)",
        report.total_cleaned,
        report.total_errors,
        ", ".join(f"{name}={p.cleaned}" for name, p in report.passes.items()),
    )
    return report


class CleanupScheduler:
    """Runs ``run_full_cleanup`` once at start-up and then every ``interval`` seconds."""

    def __init__(self, interval: int = CLEANUP_INTERVAL_SECONDS, runner: Callable[[], CleanupReport] = run_full_cleanup):
        self.interval = interval
        self.runner = runner
        self.last_report: Optional[CleanupReport] = None
        self.next_run_at: Optional[datetime] = None
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> CleanupReport:
        report = await asyncio.to_thread(self.runner)
        self.last_report = report
        return report

    async def _loop(self):
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduled cleanup failed")
            self.next_run_at = datetime.now() + timedelta(seconds=self.interval)
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task is None or self._task.done():
            self.running = True
            self._task = asyncio.create_task(self._loop())
            logger.info("Cleanup scheduler started (every %d s)", self.interval)

    async def stop(self):
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def status(self) -> dict:
        return {
            "running": self.running,
            "interval_seconds": self.interval,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_run": self.last_report.to_dict() if self.last_report else None,
        }


scheduler = CleanupScheduler()
