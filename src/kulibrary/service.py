"""Request-level operations shared by the HTTP routes and the demo data source.

Each method takes already-parsed arguments and returns the wire model that
the corresponding route answers with.
"""

from sqlalchemy import func
from sqlmodel import Session, col, select

from . import auth, catalog, ledger
from .config import Settings
from .errors import Forbidden, ValidationError
from .models import (
    Book,
    User,
    Role,
    BookResp,
    LoanResp,
    LoginResp,
    VerifyResp,
    LoanResultResp,
    MemberResp,
    StatsResp,
    UserInfoResp,
)

STAFF_ROLES = (Role.STAFF, Role.ADMIN)


class LibraryService:
    def __init__(self, dbsession: Session, settings: Settings):
        self.dbsession = dbsession
        self.settings = settings

    def login(self, email: str, password: str) -> LoginResp:
        email = (email or "").strip().lower()
        if not password:
            raise ValidationError("Password is required")
        auth.check_email_policy(email, self.settings.email_pattern)
        user = auth.authenticate(self.dbsession, email, password)
        login_session = auth.open_session(
            self.dbsession, user, expires=self.settings.session_seconds
        )
        current_loans = None
        if self.settings.embed_loans_on_login:
            current_loans = self.list_loans(user, active_only=True)
        return LoginResp(
            token=login_session.token,
            user=UserInfoResp.model_validate(user),
            current_loans=current_loans,
        )

    def verify(self, token: str | None) -> User:
        return auth.verify_token(self.dbsession, token)

    def profile(self, user: User) -> VerifyResp:
        return VerifyResp(user=UserInfoResp.model_validate(user))

    def logout(self, token: str) -> bool:
        return auth.revoke(self.dbsession, token)

    def list_books(self, query: str | None = None) -> list[BookResp]:
        return [BookResp.from_book(b) for b in catalog.list_books(self.dbsession, query)]

    def get_book(self, book_id: int) -> BookResp:
        return BookResp.from_book(catalog.get_book(self.dbsession, book_id))

    def list_loans(self, user: User, active_only: bool = False) -> list[LoanResp]:
        now = ledger.utcnow()
        return [
            ledger.loan_view(loan, now)
            for loan in ledger.list_loans(self.dbsession, user.id, active_only)
        ]

    def borrow(self, user: User, book_id: int) -> LoanResultResp:
        now = ledger.utcnow()
        loan = ledger.borrow(
            self.dbsession, book_id, user.id, self.settings.loan_period, now=now
        )
        return self._loan_result(loan, now)

    def return_book(self, user: User, loan_id: int) -> LoanResultResp:
        now = ledger.utcnow()
        loan = ledger.return_book(
            self.dbsession, loan_id, self._owner_filter(user), now=now
        )
        return self._loan_result(loan, now)

    def renew(self, user: User, loan_id: int) -> LoanResultResp:
        loan = ledger.renew(
            self.dbsession,
            loan_id,
            self._owner_filter(user),
            period=self.settings.loan_period,
            max_renewals=self.settings.max_renewals,
        )
        return LoanResultResp(loan=ledger.loan_view(loan))

    def stats(self) -> StatsResp:
        active, overdue = ledger.count_active(self.dbsession)
        return StatsResp(
            total_books=self.dbsession.exec(
                select(func.count()).select_from(Book)
            ).one(),
            total_members=self.dbsession.exec(
                select(func.count()).select_from(User)
            ).one(),
            active_loans=active,
            overdue_loans=overdue,
        )

    def members(self, user: User) -> list[MemberResp]:
        if user.role not in STAFF_ROLES:
            raise Forbidden("Only staff can list members")
        counts = ledger.active_loans_by_user(self.dbsession)
        users = self.dbsession.exec(select(User).order_by(col(User.name))).all()
        return [
            MemberResp.model_validate(u).model_copy(
                update={"active_loans": counts.get(u.id, 0)}
            )
            for u in users
        ]

    def _owner_filter(self, user: User) -> int | None:
        # staff may act on anyone's loans
        return None if user.role in STAFF_ROLES else user.id

    def _loan_result(self, loan, now) -> LoanResultResp:
        book = catalog.get_book(self.dbsession, loan.book_id)
        return LoanResultResp(
            loan=ledger.loan_view(loan, now), book=BookResp.from_book(book)
        )
