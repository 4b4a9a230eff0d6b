from sqlalchemy import or_
from sqlmodel import Session, col, select

from .errors import NotFound
from .models import Book


def list_books(dbsession: Session, query: str | None = None) -> list[Book]:
    """Return the catalog ordered by title then ISBN.

    A non-blank ``query`` keeps the books whose title, authors or ISBN
    contain it, case-insensitively. ``%`` and ``_`` match literally.
    """
    statement = select(Book)
    if query and query.strip():
        term = query.strip()
        statement = statement.where(
            or_(
                col(Book.title).icontains(term, autoescape=True),
                col(Book.authors).icontains(term, autoescape=True),
                col(Book.isbn).icontains(term, autoescape=True),
            )
        )
    return list(
        dbsession.exec(statement.order_by(col(Book.title), col(Book.isbn))).all()
    )


def get_book(dbsession: Session, book_id: int) -> Book:
    if book := dbsession.get(Book, book_id):
        return book
    raise NotFound("Book not found")
