from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.api.v1.dependencies import Pagination, get_db
from app.api.v1.dependencies_auth import get_current_borrower
from app.db.models import Book
from app.schemas.book import BookCreate, BookUpdate, BookRead
from app.schemas.pagination import Page

import logging
logger = logging.getLogger("api.books")

router = APIRouter(
    prefix="/api/v1/books",
    tags=["books"],
    dependencies=[Depends(get_current_borrower)],
)


def _get_book_or_404(db: Session, book_id: int) -> Book:
    book = db.get(Book, book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Book with ID {book_id} not found",
        )
    return book


def _isbn_taken(db: Session, isbn: str) -> bool:
    return db.query(Book).filter(Book.isbn == isbn).first() is not None


@router.get("/", response_model=Page[BookRead])
def list_books(
    title: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    isbn: Optional[str] = Query(None),
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
):
    stmt = select(Book)

    if title:
        stmt = stmt.where(Book.title.ilike(f"%{title}%"))
    if author:
        stmt = stmt.where(Book.author.ilike(f"%{author}%"))
    if isbn:
        stmt = stmt.where(Book.isbn.ilike(f"%{isbn}%"))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    books = (
        db.execute(
            stmt.order_by(Book.id)
            .offset((pagination.page - 1) * pagination.page_size)
            .limit(pagination.page_size)
        )
        .scalars()
        .all()
    )

    return {
        "items": books,
        "total": total,
        "page": pagination.page,
        "page_size": pagination.page_size,
    }


@router.post("/", response_model=BookRead, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreate,
    db: Session = Depends(get_db),
):
    if _isbn_taken(db, payload.isbn):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ISBN already exists")

    book = Book(**payload.model_dump())
    db.add(book)
    try:
        db.commit()
    except IntegrityError:
        # carrera con otra creación del mismo ISBN
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ISBN already exists")

    db.refresh(book)
    logger.info(
        "Book created",
        extra={"operation": "book_create", "resource": "book", "book_id": book.id, "status_code": 201},
    )
    return book


@router.get("/{book_id}", response_model=BookRead)
def get_book(
    book_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    return _get_book_or_404(db, book_id)


@router.put("/{book_id}", response_model=BookRead)
def update_book(
    payload: BookUpdate,
    book_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    book = _get_book_or_404(db, book_id)

    update_data = payload.model_dump(exclude_unset=True)
    if "isbn" in update_data and update_data["isbn"] != book.isbn and _isbn_taken(db, update_data["isbn"]):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ISBN already exists")

    for field, value in update_data.items():
        setattr(book, field, value)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ISBN already exists")

    db.refresh(book)
    return book


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(
    book_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    book = _get_book_or_404(db, book_id)

    # los préstamos del libro se eliminan en cascada
    db.delete(book)
    db.commit()
    logger.info(
        "Book deleted",
        extra={"operation": "book_delete", "resource": "book", "book_id": book_id, "status_code": 204},
    )
    return None
