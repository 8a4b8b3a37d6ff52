from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BookCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    isbn: str = Field(min_length=1, max_length=20)
    shelf_location: str = Field(min_length=1, max_length=255)
    available_quantity: int = Field(ge=0)  # stock inicial


class BookUpdate(BaseModel):
    # available_quantity no se edita aquí: solo lo cambian borrow / return
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    author: Optional[str] = Field(default=None, min_length=1, max_length=255)
    isbn: Optional[str] = Field(default=None, min_length=1, max_length=20)
    shelf_location: Optional[str] = Field(default=None, min_length=1, max_length=255)

    class Config:
        extra = "forbid"


class BookSummary(BaseModel):
    id: int
    title: str
    author: str
    isbn: str

    class Config:
        from_attributes = True


class BookRead(BaseModel):
    id: int
    title: str
    author: str
    isbn: str
    shelf_location: str
    available_quantity: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
