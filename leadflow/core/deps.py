"""FastAPI dependencies for database access and outbound collaborators."""

from typing import Generator

from sqlalchemy.orm import Session

from leadflow.core.geo import get_geo_lookup
from leadflow.db.session import SessionLocal
from leadflow.services.clients import get_clients

__all__ = ["get_db", "get_clients", "get_geo_lookup"]


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
