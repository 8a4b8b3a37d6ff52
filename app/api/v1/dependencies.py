from typing import Generator

from fastapi import Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.lending_engine import LendingEngine


def get_db() -> Generator[Session, None, None]:
    """
    Dependencia para obtener una sesión de base de datos por request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_lending_engine() -> LendingEngine:
    """
    El motor abre su propia sesión por operación (transacción con locks),
    separada de la sesión de lectura del request.
    """
    return LendingEngine(SessionLocal)


class Pagination:
    """Parámetros de paginación validados antes de tocar la base."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    ):
        self.page = page
        self.page_size = page_size
