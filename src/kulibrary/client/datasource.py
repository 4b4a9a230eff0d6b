"""Where the client gets its data from.

``ApiDataSource`` talks to a running server over HTTP; ``DemoDataSource``
runs the same operations against an in-memory database seeded with the
demo fixtures. Pick one with ``make_datasource`` at startup.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any

import httpx
import pydantic
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from .. import fixtures
from ..config import Settings
from ..errors import InternalError, error_from_body
from ..models import BookResp, LoanResp, LoanResultResp, LoginResp
from ..service import LibraryService

DEFAULT_API_BASE_URL = "https://kulibrary-auth.budhathokiabhishek06.workers.dev"

logger = logging.getLogger(__name__)


class LibraryDataSource(ABC):
    @abstractmethod
    def login(self, email: str, password: str) -> LoginResp: ...

    @abstractmethod
    def logout(self, token: str): ...

    @abstractmethod
    def list_books(self, query: str | None = None) -> list[BookResp]: ...

    @abstractmethod
    def list_loans(self, token: str, active_only: bool = False) -> list[LoanResp]: ...

    @abstractmethod
    def borrow(self, token: str, book_id: int) -> LoanResultResp: ...

    @abstractmethod
    def return_book(self, token: str, loan_id: int) -> LoanResultResp: ...

    @abstractmethod
    def renew(self, token: str, loan_id: int) -> LoanResultResp: ...


_BOOKS = pydantic.TypeAdapter(list[BookResp])
_LOANS = pydantic.TypeAdapter(list[LoanResp])
_LOGIN = pydantic.TypeAdapter(LoginResp)
_LOAN_RESULT = pydantic.TypeAdapter(LoanResultResp)


class ApiDataSource(LibraryDataSource):
    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        client: httpx.Client | None = None,
        timeout: float = 10,
    ):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self):
        self._client.close()

    def _request(self, method: str, path: str, token: str | None = None, **kwargs) -> Any:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise InternalError(f"Cannot connect to server: {e}") from e
        try:
            body = response.json()
        except ValueError:
            body = None
        if response.is_success:
            return body
        raise error_from_body(body, response.status_code)

    @staticmethod
    def _parse(adapter, body):
        try:
            return adapter.validate_python(body)
        except pydantic.ValidationError as e:
            raise InternalError("Invalid server response format") from e

    def login(self, email: str, password: str) -> LoginResp:
        body = self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        return self._parse(_LOGIN, body)

    def logout(self, token: str):
        self._request("POST", "/api/auth/logout", token)

    def list_books(self, query: str | None = None) -> list[BookResp]:
        params = {"q": query} if query else None
        return self._parse(_BOOKS, self._request("GET", "/api/books", params=params))

    def list_loans(self, token: str, active_only: bool = False) -> list[LoanResp]:
        params = {"active": "true"} if active_only else None
        return self._parse(
            _LOANS, self._request("GET", "/api/loans", token, params=params)
        )

    def _loan_action(self, path: str, token: str, payload: dict) -> LoanResultResp:
        body = self._request("POST", path, token, json=payload)
        return self._parse(_LOAN_RESULT, body)

    def borrow(self, token: str, book_id: int) -> LoanResultResp:
        return self._loan_action("/api/books/borrow", token, {"bookId": book_id})

    def return_book(self, token: str, loan_id: int) -> LoanResultResp:
        return self._loan_action("/api/books/return", token, {"loanId": loan_id})

    def renew(self, token: str, loan_id: int) -> LoanResultResp:
        return self._loan_action("/api/books/renew", token, {"loanId": loan_id})


class DemoDataSource(LibraryDataSource):
    """In-process backend over the demo fixtures; nothing leaves the machine."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings(seed_demo=True, session_sweep_minutes=0)
        self.db_engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        SQLModel.metadata.create_all(self.db_engine)
        fixtures.seed_demo_data(self.db_engine)

    def _call(self, token: str | None, op: str, *args):
        with Session(self.db_engine) as dbsession:
            service = LibraryService(dbsession, self.settings)
            if token is None:
                return getattr(service, op)(*args)
            user = service.verify(token)
            return getattr(service, op)(user, *args)

    def login(self, email: str, password: str) -> LoginResp:
        return self._call(None, "login", email, password)

    def logout(self, token: str):
        self._call(None, "logout", token)

    def list_books(self, query: str | None = None) -> list[BookResp]:
        return self._call(None, "list_books", query)

    def list_loans(self, token: str, active_only: bool = False) -> list[LoanResp]:
        return self._call(token, "list_loans", active_only)

    def borrow(self, token: str, book_id: int) -> LoanResultResp:
        return self._call(token, "borrow", book_id)

    def return_book(self, token: str, loan_id: int) -> LoanResultResp:
        return self._call(token, "return_book", loan_id)

    def renew(self, token: str, loan_id: int) -> LoanResultResp:
        return self._call(token, "renew", loan_id)


def make_datasource(
    kind: str | None = None, base_url: str | None = None
) -> LibraryDataSource:
    """Select the data source once, from arguments or ``KULIB_DATA_SOURCE``."""
    kind = (kind or os.getenv("KULIB_DATA_SOURCE", "api")).lower()
    if kind == "demo":
        logger.info("using demo data source")
        return DemoDataSource()
    if kind == "api":
        base_url = base_url or os.getenv("KULIB_API_BASE_URL", DEFAULT_API_BASE_URL)
        logger.info("using API data source at %s", base_url)
        return ApiDataSource(base_url)
    raise ValueError(f"Unknown data source: {kind}")
