from datetime import date, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic.alias_generators import to_camel

from .base import Role, LoanStatus, split_authors
from .tables import Book


class CamelModel(BaseModel):
    """Wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class LoginPayload(CamelModel):
    email: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    password: Annotated[str, StringConstraints(min_length=1)]
    remember_me: bool = False


class BorrowPayload(CamelModel):
    book_id: int


class LoanActionPayload(CamelModel):
    loan_id: int


class UserInfoResp(CamelModel):
    id: int
    name: str
    email: str
    role: Role
    department: str | None = None
    phone: str | None = None
    join_date: date | None = None


class MemberResp(UserInfoResp):
    active_loans: int = 0


class BookResp(CamelModel):
    id: int
    title: str
    authors: list[str]
    isbn: str
    publication_year: int | None = None
    total_copies: int
    available_copies: int

    @classmethod
    def from_book(cls, book: Book) -> "BookResp":
        return cls(
            id=book.id,
            title=book.title,
            authors=split_authors(book.authors),
            isbn=book.isbn,
            publication_year=book.publication_year,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
        )


class LoanResp(CamelModel):
    id: int
    book_id: int
    user_id: int
    loan_date: datetime
    due_date: datetime
    status: LoanStatus
    status_view: LoanStatus
    days_overdue: int = 0
    renewal_count: int = 0
    return_date: datetime | None = None


class LoginResp(CamelModel):
    success: bool = True
    token: str
    user: UserInfoResp
    current_loans: list[LoanResp] | None = None


class VerifyResp(CamelModel):
    success: bool = True
    user: UserInfoResp


class LoanResultResp(CamelModel):
    success: bool = True
    loan: LoanResp
    book: BookResp | None = None


class StatsResp(CamelModel):
    total_books: int
    total_members: int
    active_loans: int
    overdue_loans: int


class SuccessResp(CamelModel):
    success: bool = True


class ErrorResp(CamelModel):
    success: bool = False
    kind: str
    message: str
