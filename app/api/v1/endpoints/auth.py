from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_db
from app.api.v1.dependencies_auth import get_current_borrower
from app.core.security import hash_password, verify_password, create_access_token
from app.db.models import Borrower
from app.schemas.auth import Token
from app.schemas.borrower import BorrowerCreate, BorrowerRead

import logging
logger = logging.getLogger("api.auth")

router = APIRouter(
    prefix="/api/v1/auth",
    tags=["auth"],
)


@router.post("/register", response_model=BorrowerRead, status_code=status.HTTP_201_CREATED)
def register_borrower(
    payload: BorrowerCreate,
    db: Session = Depends(get_db),
):
    existing = db.query(Borrower).filter(Borrower.email == payload.email).first()
    if existing:
        logger.warning(
            "register_failed",
            extra={"operation": "auth_register", "resource": "borrower", "email": payload.email, "status_code": 409},
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    borrower = Borrower(
        name=payload.name,
        email=payload.email,
        hashed_password=hash_password(payload.password),
    )
    db.add(borrower)
    db.commit()
    db.refresh(borrower)

    logger.info(
        "register_success",
        extra={"operation": "auth_register", "resource": "borrower", "borrower_id": borrower.id, "status_code": 201},
    )
    return borrower


@router.post("/login", response_model=Token)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    # username se usa como email
    email = form_data.username
    borrower = db.query(Borrower).filter(Borrower.email == email).first()

    client_ip = request.client.host if request.client else None

    if not borrower or not verify_password(form_data.password, borrower.hashed_password):
        logger.warning(
            "login_failed",
            extra={
                "operation": "auth_login",
                "resource": "borrower",
                "email": email,
                "status_code": 401,
                "ip": client_ip,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    access_token = create_access_token(borrower_id=borrower.id)

    logger.info(
        "login_success",
        extra={
            "operation": "auth_login",
            "resource": "borrower",
            "email": email,
            "status_code": 200,
            "ip": client_ip,
        },
    )

    return Token(access_token=access_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    current_borrower: Borrower = Depends(get_current_borrower),
):
    """
    Logout: revoca el token actual del borrower.
    """
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split()
    token = parts[1] if len(parts) == 2 and parts[0].lower() == "bearer" else None

    if token:
        if not hasattr(request.app.state, "revoked_tokens"):
            request.app.state.revoked_tokens = set()

        request.app.state.revoked_tokens.add(token)

    logger.info(
        "logout_success",
        extra={
            "operation": "auth_logout",
            "resource": "borrower",
            "borrower_id": current_borrower.id,
            "status_code": 204,
        },
    )
