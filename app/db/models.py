from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from app.db.session import Base
from sqlalchemy.sql import func


# ======================
# Book (inventario por título)
# ======================

class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("isbn", name="uq_books_isbn"),
        CheckConstraint("available_quantity >= 0", name="ck_books_available_quantity_non_negative"),
        Index("ix_books_title", "title"),
        Index("ix_books_author", "author"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    isbn: Mapped[str] = mapped_column(String(20), nullable=False)
    shelf_location: Mapped[str] = mapped_column(String(255), nullable=False)

    # Solo el LendingEngine modifica este contador (borrow / return)
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    loans: Mapped[list["Loan"]] = relationship(
        "Loan",
        back_populates="book",
        cascade="all, delete-orphan",
    )


# ======================
# Borrower
# ======================

class Borrower(Base):
    __tablename__ = "borrowers"
    __table_args__ = (
        UniqueConstraint("email", name="uq_borrowers_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    registered_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    loans: Mapped[list["Loan"]] = relationship(
        "Loan",
        back_populates="borrower",
        cascade="all, delete-orphan",
    )


# ======================
# Loan
# ======================

class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("book_id > 0", name="ck_loans_book_id_positive"),
        CheckConstraint("borrower_id > 0", name="ck_loans_borrower_id_positive"),
        Index("ix_loans_due_date", "due_date"),
        Index("ix_loans_returned_date", "returned_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
    )

    borrower_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("borrowers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    borrowed_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    due_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # NULL = en préstamo; se asigna una sola vez al devolver
    returned_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    book: Mapped["Book"] = relationship("Book", back_populates="loans")
    borrower: Mapped["Borrower"] = relationship("Borrower", back_populates="loans")
