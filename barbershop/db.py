# barbershop/db.py

import logging

from sqlmodel import SQLModel, Session, create_engine, select

from .config import DATABASE_URL, ADMIN_EMAIL, ADMIN_PASSWORD
from .data import DEFAULT_SERVICES
from .models import Service, User

logger = logging.getLogger(__name__)

# Engine = connection to the database
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,  # required for SQLite + FastAPI
)


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session


def seed_services(session: Session) -> int:
    """Insert the default catalogue into an empty services table."""
    if session.exec(select(Service)).first() is not None:
        return 0
    for service_id, name, duration, price in DEFAULT_SERVICES:
        session.add(Service(id=service_id, name=name, duration=duration, price=price))
    session.commit()
    logger.info("Default services created")
    return len(DEFAULT_SERVICES)


def ensure_admin(session: Session) -> None:
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return
    existing = session.exec(select(User).where(User.email == ADMIN_EMAIL)).first()
    if existing is not None:
        return
    from .auth import hash_password

    session.add(User(email=ADMIN_EMAIL, password_hash=hash_password(ADMIN_PASSWORD), role="admin"))
    session.commit()
    logger.info("Bootstrap admin %s created", ADMIN_EMAIL)


def init_db(bind=None) -> None:
    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    with Session(bind) as session:
        seed_services(session)
        ensure_admin(session)
