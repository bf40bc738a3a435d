"""Database package for regintel."""

from regintel.db.gateway import InMemoryGateway, PersistenceGateway
from regintel.db.models import Base, IngestionRun, RegulatoryUpdate
from regintel.db.session import get_session, init_db

__all__ = [
    "Base",
    "InMemoryGateway",
    "IngestionRun",
    "PersistenceGateway",
    "RegulatoryUpdate",
    "get_session",
    "init_db",
]
