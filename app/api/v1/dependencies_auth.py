from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_db
from app.core.security import decode_access_token
from app.db.models import Borrower
from app.core.logging import borrower_id_ctx


# Esta URL debe coincidir con el endpoint de login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_borrower(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Borrower:
    """
    Obtiene el borrower autenticado a partir del token JWT.
    Lanza 401 si no se puede validar.
    """

    # 1) Revisar si el token ha sido revocado
    revoked_tokens = getattr(request.app.state, "revoked_tokens", set())
    if token in revoked_tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token revoked",
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    borrower = db.get(Borrower, payload["borrower_id"])
    if borrower is None:
        raise credentials_exception

    # Guardar borrower_id para LOGGING estructurado
    borrower_id_ctx.set(borrower.id)

    return borrower
