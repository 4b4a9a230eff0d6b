import re
from datetime import date
from typing import Annotated
from enum import Enum

from pydantic import (
    StringConstraints,
    field_validator,
    model_validator,
)
from sqlmodel import Field, SQLModel


BAD_LETTER_PATTERN = re.compile(r"[<>{}\[\]\\]")
# one author per line; names may contain commas
AUTHOR_SEPARATOR = "\n"


class Role(str, Enum):
    STUDENT = "student"
    STAFF = "staff"
    FACULTY = "faculty"
    ADMIN = "admin"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"  # derived from the due date, never stored
    RETURNED = "returned"


class UserBase(SQLModel):
    name: Annotated[
        str, StringConstraints(strip_whitespace=True, max_length=80, min_length=1)
    ]
    email: Annotated[
        str, StringConstraints(strip_whitespace=True, to_lower=True, min_length=3)
    ] = Field(unique=True, index=True)
    role: Role = Field(default=Role.STUDENT)
    department: str | None = None
    phone: str | None = None
    join_date: date | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str):
        if BAD_LETTER_PATTERN.search(v):
            raise ValueError("Bad letter detected")
        return v


class BookBase(SQLModel):
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    # stored joined with AUTHOR_SEPARATOR, exposed as a list
    authors: str
    isbn: Annotated[str, StringConstraints(strip_whitespace=True)] = Field(
        unique=True, index=True
    )
    publication_year: int | None = None
    total_copies: int = Field(ge=0)
    available_copies: int = Field(ge=0)

    @field_validator("authors", mode="before")
    @classmethod
    def join_authors(cls, v):
        if isinstance(v, (list, tuple)):
            names = [a.strip() for a in v if a and a.strip()]
            if any(AUTHOR_SEPARATOR in a for a in names):
                raise ValueError("Author names cannot span lines")
            v = AUTHOR_SEPARATOR.join(names)
        return v

    @model_validator(mode="after")
    def check_copies(self):
        if self.available_copies > self.total_copies:
            raise ValueError("available_copies cannot exceed total_copies")
        return self


def split_authors(authors: str) -> list[str]:
    return [a.strip() for a in authors.split(AUTHOR_SEPARATOR) if a.strip()]
