# barbershop/routers/blocked_dates_routes.py

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..core import format_day
from ..db import get_session
from ..deps import get_admin_user, get_staff_user
from ..models import BlockedDate
from ..schemas import BlockDateRequest, BlockedDatePublic
from ..services import blocked_dates
from ..services.catalog import ServiceCatalog, get_catalog

router = APIRouter(
    prefix="/api/admin/blocked-dates",
    tags=["blocked-dates"],
)


def _public(blocked: BlockedDate) -> dict:
    return {
        "id": blocked.id,
        "date": blocked.date,
        "date_formatted": format_day(blocked.date),
        "is_full_day_blocked": blocked.is_full_day_blocked,
        "blocked_hours": list(blocked.blocked_hours or []),
        "reason": blocked.reason,
        "created_by": blocked.created_by,
        "created_at": blocked.created_at,
    }


@router.get("", response_model=List[BlockedDatePublic])
def list_blocked_dates(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_staff_user),
):
    return [_public(b) for b in blocked_dates.list_blocked_dates(session)]


@router.post("", response_model=BlockedDatePublic)
def block_date(
    body: BlockDateRequest,
    session: Session = Depends(get_session),
    catalog: ServiceCatalog = Depends(get_catalog),
    current_user: dict = Depends(get_admin_user),
):
    blocked = blocked_dates.block_date(
        session,
        body.date,
        body.is_full_day,
        body.hours,
        catalog,
        staff_id=current_user["id"],
        now=datetime.now(),
        reason=body.reason,
    )
    return _public(blocked)


@router.delete("/{blocked_id}")
def delete_blocked_date(
    blocked_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_admin_user),
):
    day = blocked_dates.delete_blocked_date(session, blocked_id)
    return {"message": f"Block for {format_day(day)} removed."}
