from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class BorrowerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)


class BorrowerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    new_password: Optional[str] = Field(default=None, min_length=6)


class BorrowerSummary(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class BorrowerRead(BorrowerSummary):
    registered_date: datetime

    class Config:
        from_attributes = True  # pydantic v2
