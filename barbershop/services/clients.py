# barbershop/services/clients.py

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import Session, select

from ..errors import NotFound, ValidationFailure
from ..models import BlockedPhone, Booking, BookingStatus, Client
from .catalog import ServiceCatalog

logger = logging.getLogger(__name__)


def get_client(session: Session, client_id: int) -> Client:
    client = session.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found.", client_id=client_id)
    return client


def list_clients(
    session: Session,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    blocked: Optional[bool] = None,
) -> Tuple[List[Client], int]:
    """One page of clients, newest first, optionally filtered by name/email/phone."""
    page = max(1, page)
    limit = min(max(1, limit), 100)

    query = select(Client)
    count_query = select(func.count()).select_from(Client)
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(Client.name.ilike(pattern), Client.email.ilike(pattern), Client.phone_number.ilike(pattern))
        )
    if blocked is not None:
        filters.append(Client.is_blocked == blocked)
    for clause in filters:
        query = query.where(clause)
        count_query = count_query.where(clause)

    total = session.exec(count_query).one()
    clients = session.exec(
        query.order_by(Client.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return clients, total


def client_details(session: Session, client_id: int, catalog: ServiceCatalog) -> dict:
    client = get_client(session, client_id)
    bookings = session.exec(
        select(Booking)
        .where(or_(Booking.client_id == client.id, Booking.email == client.email))
        .order_by(Booking.date.desc(), Booking.time.desc())
    ).all()

    completed = [b for b in bookings if b.status == BookingStatus.completed]
    cancelled = [b for b in bookings if b.status == BookingStatus.cancelled]
    total_spent = 0.0
    for booking in completed:
        service = catalog.find(session, booking.service_id)
        total_spent += service.price if service else 0

    return {
        "client": client,
        "bookings": bookings,
        "stats": {
            "total_bookings": len(bookings),
            "completed": len(completed),
            "cancelled": len(cancelled),
            "total_spent": total_spent,
            "average_price": round(total_spent / len(completed), 2) if completed else 0,
        },
    }


def list_blocked(session: Session) -> dict:
    clients = session.exec(
        select(Client).where(Client.is_blocked == True).order_by(Client.block_date.desc())  # noqa: E712
    ).all()
    phones = session.exec(select(BlockedPhone).order_by(BlockedPhone.blocked_at.desc())).all()
    return {"clients": clients, "phones": phones}


def unblock_client(session: Session, client_id: int, now: Optional[datetime] = None) -> Client:
    now = now or datetime.now()
    client = get_client(session, client_id)
    if not client.is_blocked:
        raise ValidationFailure("Client is not blocked.", client_id=client.id)

    client.is_blocked = False
    client.block_reason = None
    client.block_date = None
    client.last_modified = now
    session.add(client)

    # Lift the legacy phone entry too, otherwise the client stays locked out
    for legacy in session.exec(select(BlockedPhone).where(BlockedPhone.phone_number == client.phone_number)).all():
        session.delete(legacy)

    session.commit()
    session.refresh(client)
    logger.info("Client %s unblocked", client.email)
    return client
