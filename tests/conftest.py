#configuracion de los test
import os
import sys
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# ======================================================
# Base de datos SQLite temporal (antes de importar la app)
# ======================================================
TEST_DB_PATH = Path(tempfile.gettempdir()) / f"lending_test_{uuid.uuid4().hex[:8]}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOCK_TIMEOUT_MS", "10000")

# ======================================================
# Ajuste del sys.path para que 'app/' sea importable
# ======================================================
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# ======================================================
# Imports de la aplicación
# ======================================================
from app.main import app
from app.db.session import Base, SessionLocal, engine
from app.db.models import Book, Borrower
from app.core.security import hash_password
from app.services.lending_engine import LendingEngine


@pytest.fixture(scope="session", autouse=True)
def database_schema():
    """Crea el esquema una vez por sesión y borra el archivo al final."""
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()
    for suffix in ("", "-wal", "-shm"):
        Path(f"{TEST_DB_PATH}{suffix}").unlink(missing_ok=True)


# ======================================================
# DB SESSION FIXTURE
# ======================================================
@pytest.fixture
def db_session() -> Generator:
    """
    Provee una sesión de DB para cada test.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ======================================================
# CLIENT FIXTURE
# ======================================================
@pytest.fixture(scope="session")
def client():
    """
    TestClient de FastAPI (con contexto).
    """
    with TestClient(app) as c:
        yield c


@pytest.fixture
def lending_engine() -> LendingEngine:
    return LendingEngine(SessionLocal)


# ======================================================
# FACTORIES
# ======================================================
def unique_suffix() -> str:
    return uuid.uuid4().hex[:8]


@pytest.fixture
def make_book():
    """Crea un libro directamente en la base con el stock indicado."""

    def _make_book(available_quantity: int = 1, title: str = "Libro de Pruebas") -> int:
        with SessionLocal() as db:
            book = Book(
                title=title,
                author="Autor Test",
                isbn=f"T{unique_suffix()}",
                shelf_location="A-1",
                available_quantity=available_quantity,
            )
            db.add(book)
            db.commit()
            return book.id

    return _make_book


@pytest.fixture
def make_borrower():
    """Crea un borrower directamente en la base."""

    def _make_borrower(name: str = "Borrower Test") -> int:
        with SessionLocal() as db:
            borrower = Borrower(
                name=name,
                email=f"borrower_{unique_suffix()}@example.com",
                hashed_password=hash_password("secret123"),
            )
            db.add(borrower)
            db.commit()
            return borrower.id

    return _make_borrower


def book_quantity(book_id: int) -> int:
    with SessionLocal() as db:
        return db.get(Book, book_id).available_quantity


def past_date(days: int = 3) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def future_date(days: int = 14) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


# ======================================================
# AUTH FIXTURES
# ======================================================
@pytest.fixture(scope="session")
def borrower_credentials(client: TestClient):
    """Registra (una vez) un borrower de pruebas vía API."""
    credentials = {
        "name": "Member Test",
        "email": f"member_{unique_suffix()}@example.com",
        "password": "member123",
    }
    resp = client.post("/api/v1/auth/register", json=credentials)
    assert resp.status_code == 201, resp.text
    return {**credentials, "id": resp.json()["id"]}


@pytest.fixture(scope="session")
def borrower_token(client: TestClient, borrower_credentials):
    resp = client.post(
        "/api/v1/auth/login",
        data={
            "username": borrower_credentials["email"],
            "password": borrower_credentials["password"],
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


@pytest.fixture
def auth_headers(borrower_token):
    return {"Authorization": f"Bearer {borrower_token}"}
