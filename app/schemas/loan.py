from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.book import BookSummary
from app.schemas.borrower import BorrowerSummary


class LoanCreate(BaseModel):
    book_id: int = Field(gt=0)
    borrower_id: int = Field(gt=0)
    borrowed_date: Optional[datetime] = None  # por defecto: ahora
    due_date: datetime  # no se valida contra borrowed_date


class LoanRead(BaseModel):
    id: int
    book_id: int
    borrower_id: int
    borrowed_date: datetime
    due_date: datetime
    returned_date: Optional[datetime]
    book: BookSummary
    borrower: BorrowerSummary

    class Config:
        from_attributes = True
