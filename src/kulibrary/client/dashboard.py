from dataclasses import dataclass, field

from ..errors import Unauthorized
from ..models import BookResp, LoanResp, LoanStatus, UserInfoResp
from .datasource import LibraryDataSource
from .session import ClientSession, SessionStore


@dataclass
class DashboardState:
    user: UserInfoResp
    books: list[BookResp] = field(default_factory=list)
    loans: list[LoanResp] = field(default_factory=list)

    @property
    def active_loans(self) -> list[LoanResp]:
        return [l for l in self.loans if l.status_view != LoanStatus.RETURNED]

    @property
    def overdue_count(self) -> int:
        return sum(1 for l in self.loans if l.status_view == LoanStatus.OVERDUE)


class Dashboard:
    """Glue between the session store and a data source.

    Every mutation is followed by a re-fetch so the returned state always
    reflects the server.
    """

    def __init__(self, datasource: LibraryDataSource, store: SessionStore):
        self.datasource = datasource
        self.store = store

    def sign_in(self, email: str, password: str) -> ClientSession:
        resp = self.datasource.login(email, password)
        return self.store.save(resp.token, resp.user)

    def sign_out(self):
        if session := self.store.load():
            try:
                self.datasource.logout(session.token)
            finally:
                self.store.clear()

    def _session(self) -> ClientSession:
        if session := self.store.load():
            return session
        raise Unauthorized("Please sign in")

    def refresh(self, query: str | None = None) -> DashboardState:
        session = self._session()
        try:
            loans = self.datasource.list_loans(session.token)
        except Unauthorized:
            self.store.clear()
            raise
        return DashboardState(
            user=session.user,
            books=self.datasource.list_books(query),
            loans=loans,
        )

    def borrow(self, book_id: int) -> DashboardState:
        self.datasource.borrow(self._session().token, book_id)
        return self.refresh()

    def return_book(self, loan_id: int) -> DashboardState:
        self.datasource.return_book(self._session().token, loan_id)
        return self.refresh()

    def renew(self, loan_id: int) -> DashboardState:
        self.datasource.renew(self._session().token, loan_id)
        return self.refresh()
