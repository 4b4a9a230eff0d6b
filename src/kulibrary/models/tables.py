from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from .base import UserBase, BookBase, LoanStatus


class User(UserBase, table=True):
    id: int | None = Field(default=None, primary_key=True)
    password: str  # argon2 hash


class Book(BookBase, table=True):
    id: int | None = Field(default=None, primary_key=True)


class Loan(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    # naive UTC, hence the explicit timezone-less column type
    loan_date: datetime = Field(sa_type=DateTime(timezone=False))
    due_date: datetime = Field(sa_type=DateTime(timezone=False))
    status: LoanStatus = Field(default=LoanStatus.ACTIVE)
    renewal_count: int = Field(default=0, ge=0)
    return_date: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=False)
    )


class LoginSession(SQLModel, table=True):
    token: str = Field(primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    issued_at: float
    expire_at: float
