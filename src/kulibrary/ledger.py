"""Loan ledger: borrow, return and renew transitions.

Every availability or status change is a single conditional ``UPDATE`` whose
``WHERE`` clause re-checks the precondition, so two racing callers can never
both succeed: the loser's update matches no row and is reported as a conflict.
Overdue is never stored; it is derived from the due date when a loan is shown.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, update
from sqlmodel import Session, col, select

from .errors import AlreadyReturned, Conflict, NotFound, RenewalLimitExceeded
from .models import Book, Loan, LoanStatus, LoanResp

LOAN_PERIOD = timedelta(days=14)
MAX_RENEWALS = 3

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC, the form loan timestamps are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def status_view(loan: Loan, now: datetime | None = None) -> LoanStatus:
    now = utcnow() if now is None else now
    if loan.status == LoanStatus.ACTIVE and loan.due_date < now:
        return LoanStatus.OVERDUE
    return loan.status


def days_overdue(loan: Loan, now: datetime | None = None) -> int:
    now = utcnow() if now is None else now
    if loan.status == LoanStatus.RETURNED:
        return 0
    return max(0, (now - loan.due_date) // timedelta(days=1))


def loan_view(loan: Loan, now: datetime | None = None) -> LoanResp:
    now = utcnow() if now is None else now
    return LoanResp(
        id=loan.id,
        book_id=loan.book_id,
        user_id=loan.user_id,
        loan_date=_as_utc(loan.loan_date),
        due_date=_as_utc(loan.due_date),
        status=loan.status,
        status_view=status_view(loan, now),
        days_overdue=days_overdue(loan, now),
        renewal_count=loan.renewal_count,
        return_date=_as_utc(loan.return_date),
    )


def get_loan(dbsession: Session, loan_id: int, owner_id: int | None = None) -> Loan:
    """Fetch a loan; with ``owner_id`` other users' loans look missing."""
    loan = dbsession.get(Loan, loan_id)
    if loan is None or (owner_id is not None and loan.user_id != owner_id):
        raise NotFound("Loan not found")
    return loan


def list_loans(
    dbsession: Session, user_id: int, active_only: bool = False
) -> list[Loan]:
    statement = select(Loan).where(Loan.user_id == user_id)
    if active_only:
        statement = statement.where(Loan.status == LoanStatus.ACTIVE)
    return list(
        dbsession.exec(
            statement.order_by(col(Loan.loan_date).desc(), col(Loan.id).desc())
        ).all()
    )


def borrow(
    dbsession: Session,
    book_id: int,
    user_id: int,
    period: timedelta = LOAN_PERIOD,
    now: datetime | None = None,
) -> Loan:
    now = utcnow() if now is None else now
    if dbsession.get(Book, book_id) is None:
        raise NotFound("Book not found")
    result = dbsession.exec(
        update(Book)
        .where(col(Book.id) == book_id, col(Book.available_copies) > 0)
        .values(available_copies=col(Book.available_copies) - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        dbsession.rollback()
        raise Conflict("No copies available")
    loan = Loan(
        book_id=book_id,
        user_id=user_id,
        loan_date=now,
        due_date=now + period,
        status=LoanStatus.ACTIVE,
        renewal_count=0,
    )
    dbsession.add(loan)
    dbsession.commit()
    dbsession.refresh(loan)
    logger.info("user %s borrowed book %s (loan %s)", user_id, book_id, loan.id)
    return loan


def return_book(
    dbsession: Session,
    loan_id: int,
    owner_id: int | None = None,
    now: datetime | None = None,
) -> Loan:
    """Close a loan and release its copy. A second return is an error."""
    now = utcnow() if now is None else now
    loan = get_loan(dbsession, loan_id, owner_id)
    book_id = loan.book_id
    result = dbsession.exec(
        update(Loan)
        .where(col(Loan.id) == loan_id, col(Loan.status) == LoanStatus.ACTIVE)
        .values(status=LoanStatus.RETURNED, return_date=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        dbsession.rollback()
        raise AlreadyReturned()
    dbsession.exec(
        update(Book)
        .where(
            col(Book.id) == book_id,
            col(Book.available_copies) < col(Book.total_copies),
        )
        .values(available_copies=col(Book.available_copies) + 1)
        .execution_options(synchronize_session=False)
    )
    dbsession.commit()
    dbsession.refresh(loan)
    logger.info("loan %s returned", loan_id)
    return loan


def renew(
    dbsession: Session,
    loan_id: int,
    owner_id: int | None = None,
    period: timedelta = LOAN_PERIOD,
    max_renewals: int = MAX_RENEWALS,
) -> Loan:
    loan = get_loan(dbsession, loan_id, owner_id)
    if loan.status == LoanStatus.RETURNED:
        raise AlreadyReturned("Cannot renew a returned loan")
    if loan.renewal_count >= max_renewals:
        raise RenewalLimitExceeded(f"Renewal limit of {max_renewals} reached")
    seen_count = loan.renewal_count
    result = dbsession.exec(
        update(Loan)
        .where(
            col(Loan.id) == loan_id,
            col(Loan.status) == LoanStatus.ACTIVE,
            col(Loan.renewal_count) == seen_count,
        )
        .values(due_date=loan.due_date + period, renewal_count=seen_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        dbsession.rollback()
        raise Conflict("Loan changed while renewing, please retry")
    dbsession.commit()
    dbsession.refresh(loan)
    logger.info("loan %s renewed (%d/%d)", loan_id, loan.renewal_count, max_renewals)
    return loan


def count_active(dbsession: Session, now: datetime | None = None) -> tuple[int, int]:
    """Return (unreturned loans, overdue loans)."""
    now = utcnow() if now is None else now
    active = dbsession.exec(
        select(func.count()).select_from(Loan).where(Loan.status == LoanStatus.ACTIVE)
    ).one()
    overdue = dbsession.exec(
        select(func.count())
        .select_from(Loan)
        .where(Loan.status == LoanStatus.ACTIVE, col(Loan.due_date) < now)
    ).one()
    return active, overdue


def active_loans_by_user(dbsession: Session) -> dict[int, int]:
    rows = dbsession.exec(
        select(Loan.user_id, func.count())
        .where(Loan.status == LoanStatus.ACTIVE)
        .group_by(Loan.user_id)
    ).all()
    return {user_id: count for user_id, count in rows}
