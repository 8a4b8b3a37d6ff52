from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    LendingError,
    LockTimeoutError,
    NotFoundError,
    StorageError,
)
from app.core.logging import get_logger
from app.db.models import Book, Borrower, Loan
from app.db.session import begin_locking_transaction, is_lock_timeout

logger = get_logger("services.lending")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Las fechas sin zona horaria se interpretan como UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LendingEngine:
    """
    Orquesta los flujos de préstamo y devolución.

    Cada operación abre su propia sesión y transacción, toma los locks de fila
    necesarios (siempre en el orden loan -> book) y hace commit o rollback
    completo. El único punto de serialización es el lock de la base de datos.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        lock_timeout_ms: int = settings.LOCK_TIMEOUT_MS,
    ):
        self.session_factory = session_factory
        self.lock_timeout_ms = lock_timeout_ms

    # ---- Préstamo ----
    def borrow(
        self,
        book_id: int,
        borrower_id: int,
        due_date: datetime,
        borrowed_date: Optional[datetime] = None,
    ) -> Loan:
        logger.info(
            "Borrowing book",
            extra={
                "operation": "loan_borrow",
                "resource": "loan",
                "book_id": book_id,
                "borrower_id": borrower_id,
            },
        )

        with self.session_factory() as db:
            with self._transaction(db, operation="loan_borrow"):
                book = self._lock_book(db, book_id)
                if book is None:
                    self._reject("loan_borrow", book_id=book_id, borrower_id=borrower_id, reason="book_not_found")
                    raise NotFoundError("book", book_id)

                if book.available_quantity <= 0:
                    self._reject("loan_borrow", book_id=book_id, borrower_id=borrower_id, reason="book_unavailable")
                    raise ConflictError(
                        ConflictError.BOOK_UNAVAILABLE,
                        f"Book with ID {book_id} is not available for borrowing",
                    )

                # borrower es inmutable para este flujo: lectura simple, sin lock
                borrower = db.get(Borrower, borrower_id)
                if borrower is None:
                    self._reject("loan_borrow", book_id=book_id, borrower_id=borrower_id, reason="borrower_not_found")
                    raise NotFoundError("borrower", borrower_id)

                book.available_quantity -= 1

                loan = Loan(
                    book_id=book.id,
                    borrower_id=borrower.id,
                    borrowed_date=as_utc(borrowed_date) if borrowed_date else utcnow(),
                    due_date=as_utc(due_date),
                    returned_date=None,
                )
                db.add(loan)
                db.flush()
                loan_id = loan.id
                remaining = book.available_quantity

            logger.info(
                "loan_borrowed",
                extra={
                    "operation": "loan_borrow",
                    "resource": "loan",
                    "loan_id": loan_id,
                    "book_id": book_id,
                    "borrower_id": borrower_id,
                    "available_quantity": remaining,
                },
            )
            return self._load_loan(db, loan_id)

    # ---- Devolución ----
    def return_loan(self, loan_id: int) -> Loan:
        logger.info(
            "Returning loan",
            extra={"operation": "loan_return", "resource": "loan", "loan_id": loan_id},
        )

        with self.session_factory() as db:
            with self._transaction(db, operation="loan_return"):
                loan = db.execute(
                    select(Loan).where(Loan.id == loan_id).with_for_update()
                ).scalar_one_or_none()
                if loan is None:
                    self._reject("loan_return", loan_id=loan_id, reason="loan_not_found")
                    raise NotFoundError("loan", loan_id)

                book = self._lock_book(db, loan.book_id)
                if book is None:
                    # anomalía de integridad: préstamo sin libro
                    self._reject("loan_return", loan_id=loan_id, book_id=loan.book_id, reason="book_not_found")
                    raise NotFoundError("book", loan.book_id)

                if loan.returned_date is not None:
                    self._reject("loan_return", loan_id=loan_id, book_id=book.id, reason="already_returned")
                    raise ConflictError(
                        ConflictError.ALREADY_RETURNED,
                        f"Loan with ID {loan_id} has already been returned",
                    )

                book.available_quantity += 1
                loan.returned_date = utcnow()
                db.flush()
                book_id = book.id
                remaining = book.available_quantity

            logger.info(
                "loan_returned",
                extra={
                    "operation": "loan_return",
                    "resource": "loan",
                    "loan_id": loan_id,
                    "book_id": book_id,
                    "available_quantity": remaining,
                },
            )
            return self._load_loan(db, loan_id)

    # ---- Helpers ----
    def _transaction(self, db: Session, operation: str):
        return _LockingTransaction(db, operation, self.lock_timeout_ms)

    def _lock_book(self, db: Session, book_id: int) -> Optional[Book]:
        return db.execute(
            select(Book).where(Book.id == book_id).with_for_update()
        ).scalar_one_or_none()

    def _load_loan(self, db: Session, loan_id: int) -> Loan:
        # Lectura ya comprometida, con book y borrower para la respuesta.
        # Al cerrar la sesión el objeto queda desacoplado pero cargado.
        return db.execute(
            select(Loan)
            .options(joinedload(Loan.book), joinedload(Loan.borrower))
            .where(Loan.id == loan_id)
        ).scalar_one()

    def _reject(self, operation: str, reason: str, **ids) -> None:
        logger.warning(
            "loan_rejected",
            extra={"operation": operation, "resource": "loan", "reason": reason, **ids},
        )


class _LockingTransaction:
    """
    Context manager de una transacción con locks de fila.

    Hace commit al salir sin errores; ante cualquier excepción hace rollback
    y traduce los errores de SQLAlchemy a errores tipados.
    """

    def __init__(self, db: Session, operation: str, lock_timeout_ms: int):
        self.db = db
        self.operation = operation
        self.lock_timeout_ms = lock_timeout_ms

    def __enter__(self) -> Session:
        self._tx = self.db.begin()
        try:
            begin_locking_transaction(self.db, self.lock_timeout_ms)
        except BaseException as exc:
            self.db.rollback()
            self._raise_translated(exc)
            raise
        return self.db

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            try:
                self._tx.commit()
            except BaseException as commit_exc:
                self.db.rollback()
                self._raise_translated(commit_exc)
                raise
            return False

        self.db.rollback()
        self._raise_translated(exc)
        return False

    def _raise_translated(self, exc: BaseException) -> None:
        if isinstance(exc, LendingError):
            return

        if isinstance(exc, OperationalError) and is_lock_timeout(exc):
            logger.warning(
                "lock_timeout",
                extra={
                    "operation": self.operation,
                    "resource": "loan",
                    "lock_timeout_ms": self.lock_timeout_ms,
                },
            )
            raise LockTimeoutError() from exc

        if isinstance(exc, SQLAlchemyError):
            logger.error(
                "storage_failure",
                extra={"operation": self.operation, "resource": "loan"},
                exc_info=exc,
            )
            raise StorageError(original=exc) from exc
