# app/core/errors.py
from typing import Optional


class LendingError(Exception):
    """Base de los errores tipados del motor de préstamos."""

    status_code: int = 500
    code: str = "lending_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(LendingError):
    """El libro, borrower o préstamo referenciado no existe. No se reintenta."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, resource_id: int):
        super().__init__(f"{resource.capitalize()} with ID {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(LendingError):
    """Violación de una regla de negocio: sin copias o préstamo ya devuelto."""

    status_code = 409

    BOOK_UNAVAILABLE = "book_unavailable"
    ALREADY_RETURNED = "already_returned"

    def __init__(self, reason: str, detail: str):
        super().__init__(detail)
        self.code = reason


class LockTimeoutError(LendingError):
    """No se obtuvo el lock de la fila a tiempo. Se puede reintentar la operación."""

    status_code = 503
    code = "lock_timeout"
    retry_after_seconds = 1

    def __init__(self, detail: str = "Resource is busy, retry the operation"):
        super().__init__(detail)


class StorageError(LendingError):
    """Fallo inesperado de persistencia; la transacción se revirtió completa."""

    status_code = 500
    code = "storage_failure"

    def __init__(self, detail: str = "Storage failure", original: Optional[Exception] = None):
        super().__init__(detail)
        self.original = original
