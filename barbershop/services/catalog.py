# barbershop/services/catalog.py

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlmodel import Session, select

from ..cache import Cache
from ..config import SERVICE_CACHE_TTL_SECONDS
from ..errors import NotFound
from ..models import Service

logger = logging.getLogger(__name__)

CACHE_KEY = "services"


@dataclass(frozen=True)
class ServiceInfo:
    id: int
    name: str
    duration: int
    price: float

    @classmethod
    def from_model(cls, service: Service) -> "ServiceInfo":
        return cls(id=service.id, name=service.name, duration=service.duration, price=service.price)


class ServiceCatalog:
    """Read-only view of the services table, cached for ``cache.ttl`` seconds."""

    def __init__(self, cache: Cache):
        self.cache = cache

    def _load(self, session: Session) -> Dict[int, ServiceInfo]:
        services = session.exec(select(Service).order_by(Service.id)).all()
        return {s.id: ServiceInfo.from_model(s) for s in services}

    def all(self, session: Session) -> Dict[int, ServiceInfo]:
        return self.cache.get_or_set(CACHE_KEY, lambda: self._load(session))

    def list_services(self, session: Session) -> List[ServiceInfo]:
        services = sorted(self.all(session).values(), key=lambda s: s.id)
        if not services:
            raise NotFound("No services found. Please contact the shop.")
        return services

    def find(self, session: Session, service_id: int) -> Optional[ServiceInfo]:
        service = self.all(session).get(service_id)
        if service is not None:
            return service
        # Cache may predate a newly added service
        row = session.get(Service, service_id)
        return ServiceInfo.from_model(row) if row is not None else None

    def get_service(self, session: Session, service_id: int) -> ServiceInfo:
        service = self.find(session, service_id)
        if service is None:
            logger.warning("Service %s not found", service_id)
            raise NotFound("Service not found. Please choose a valid service.", service_id=service_id)
        return service

    def invalidate(self) -> None:
        self.cache.delete(CACHE_KEY)


catalog = ServiceCatalog(Cache(ttl=SERVICE_CACHE_TTL_SECONDS))


def get_catalog() -> ServiceCatalog:
    return catalog
