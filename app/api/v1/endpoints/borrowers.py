from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.v1.dependencies import Pagination, get_db
from app.api.v1.dependencies_auth import get_current_borrower
from app.core.security import hash_password
from app.db.models import Borrower
from app.schemas.borrower import BorrowerRead, BorrowerUpdate
from app.schemas.pagination import Page


router = APIRouter(
    prefix="/api/v1/borrowers",
    tags=["borrowers"],
    dependencies=[Depends(get_current_borrower)],
)


def _get_borrower_or_404(db: Session, borrower_id: int) -> Borrower:
    borrower = db.get(Borrower, borrower_id)
    if not borrower:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Borrower with ID {borrower_id} not found",
        )
    return borrower


@router.get("/", response_model=Page[BorrowerRead])
def list_borrowers(
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
):
    total = db.execute(select(func.count(Borrower.id))).scalar_one()
    borrowers = (
        db.execute(
            select(Borrower)
            .order_by(Borrower.id)
            .offset((pagination.page - 1) * pagination.page_size)
            .limit(pagination.page_size)
        )
        .scalars()
        .all()
    )
    return {
        "items": borrowers,
        "total": total,
        "page": pagination.page,
        "page_size": pagination.page_size,
    }


@router.get("/{borrower_id}", response_model=BorrowerRead)
def get_borrower(
    borrower_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    return _get_borrower_or_404(db, borrower_id)


@router.put("/{borrower_id}", response_model=BorrowerRead)
def update_borrower(
    payload: BorrowerUpdate,
    borrower_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    borrower = _get_borrower_or_404(db, borrower_id)

    update_data = payload.model_dump(exclude_unset=True)
    new_password = update_data.pop("new_password", None)

    # verificar email único
    new_email = update_data.get("email")
    if new_email and new_email != borrower.email:
        taken = db.query(Borrower).filter(Borrower.email == new_email).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    for field, value in update_data.items():
        setattr(borrower, field, value)

    if new_password:
        borrower.hashed_password = hash_password(new_password)

    db.commit()
    db.refresh(borrower)
    return borrower


@router.delete("/{borrower_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_borrower(
    borrower_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    borrower = _get_borrower_or_404(db, borrower_id)

    db.delete(borrower)
    db.commit()
    return None
