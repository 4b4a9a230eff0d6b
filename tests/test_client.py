import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from kulibrary.client import (
    ApiDataSource,
    Dashboard,
    DemoDataSource,
    SessionStore,
    make_datasource,
)
from kulibrary.errors import (
    AlreadyReturned,
    Conflict,
    InternalError,
    InvalidCredentials,
    NotFound,
    RenewalLimitExceeded,
    Unauthorized,
    error_from_body,
)
from kulibrary.fixtures import DEMO_PASSWORD
from kulibrary.models import LoanStatus, UserInfoResp

from .conftest import PASSWORD, STUDENT_EMAIL

LOGIN_TIME = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)
DEMO_STUDENT = "student@kulibrary.edu.np"


@pytest.fixture
def profile():
    return UserInfoResp(id=1, name="Test Student", email=STUDENT_EMAIL, role="student")


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "session.json")


@pytest.fixture(scope="module")
def demo():
    return DemoDataSource()


def test_session_store_roundtrip(store, profile):
    store.save("tok", profile, now=LOGIN_TIME)
    session = store.load(now=LOGIN_TIME + timedelta(hours=23))
    assert session.token == "tok"
    assert session.user == profile
    assert session.login_time == LOGIN_TIME
    assert session.expires_at == LOGIN_TIME + timedelta(hours=24)

    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert set(raw) == {"token", "user", "loginTime"}


def test_session_store_expires_after_a_day(store, profile):
    store.save("tok", profile, now=LOGIN_TIME)
    assert store.load(now=LOGIN_TIME + timedelta(hours=24)) is None
    assert not store.path.exists()


def test_session_store_treats_naive_times_as_utc(store, profile):
    store.save("tok", profile, now=LOGIN_TIME.replace(tzinfo=None))
    session = store.load(now=LOGIN_TIME + timedelta(hours=1))
    assert session.login_time == LOGIN_TIME

    raw = json.loads(store.path.read_text(encoding="utf-8"))
    raw["loginTime"] = "2026-10-01T08:00:00"
    store.path.write_text(json.dumps(raw), encoding="utf-8")
    assert store.load(now=LOGIN_TIME + timedelta(hours=1)).login_time == LOGIN_TIME
    assert store.load(now=LOGIN_TIME + timedelta(hours=25)) is None
    assert not store.path.exists()


def test_session_store_discards_garbage(store):
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None
    assert not store.path.exists()
    store.clear()


def test_api_datasource_against_server(client, users, books):
    source = ApiDataSource(client=client)
    resp = source.login(STUDENT_EMAIL, PASSWORD)
    assert resp.user.email == STUDENT_EMAIL
    token = resp.token

    titles = [b.title for b in source.list_books("graph")]
    assert titles == ["Graph Databases"]

    result = source.borrow(token, books["Graph Databases"])
    assert result.book.available_copies == 1
    loan_id = result.loan.id
    for _ in range(3):
        source.renew(token, loan_id)
    with pytest.raises(RenewalLimitExceeded):
        source.renew(token, loan_id)

    source.return_book(token, loan_id)
    with pytest.raises(AlreadyReturned):
        source.return_book(token, loan_id)
    with pytest.raises(NotFound):
        source.return_book(token, 999)

    assert source.list_loans(token, active_only=True) == []
    source.logout(token)
    with pytest.raises(Unauthorized):
        source.list_loans(token)


def test_api_datasource_bad_login(client, users):
    source = ApiDataSource(client=client)
    with pytest.raises(InvalidCredentials) as exc:
        source.login(STUDENT_EMAIL, "wrong-password")
    assert exc.value.message == "Invalid email or password"


def mock_source(handler) -> ApiDataSource:
    return ApiDataSource(
        client=httpx.Client(
            base_url="http://library.test", transport=httpx.MockTransport(handler)
        )
    )


def test_api_datasource_non_json_error():
    source = mock_source(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))
    with pytest.raises(InternalError) as exc:
        source.list_books()
    assert "502" in exc.value.message


def test_api_datasource_unexpected_shape():
    source = mock_source(lambda request: httpx.Response(200, json={"data": []}))
    with pytest.raises(InternalError):
        source.list_books()


def test_api_datasource_connection_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(InternalError) as exc:
        mock_source(handler).list_books()
    assert "Cannot connect" in exc.value.message


def test_api_datasource_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[])

    assert mock_source(handler).list_loans("abc") == []
    assert seen["auth"] == "Bearer abc"


def test_error_from_body_is_defensive():
    assert isinstance(error_from_body(None, 409), Conflict)
    assert isinstance(error_from_body(["odd"], 500), InternalError)
    err = error_from_body({"kind": "Mystery", "message": "huh"}, 404)
    assert isinstance(err, NotFound)
    assert err.message == "huh"
    err = error_from_body({"kind": "RenewalLimitExceeded", "message": 3}, 409)
    assert isinstance(err, RenewalLimitExceeded)
    assert err.message.startswith("HTTP 409")


def test_demo_datasource_follows_loan_rules(demo):
    resp = demo.login(DEMO_STUDENT, DEMO_PASSWORD)
    assert resp.user.role == "student"
    token = resp.token

    books = {b.title: b for b in demo.list_books()}
    last_copy = books["Fundamentals of Database Systems"]
    assert last_copy.available_copies == 1

    result = demo.borrow(token, last_copy.id)
    assert result.loan.due_date - result.loan.loan_date == timedelta(days=14)
    assert result.book.available_copies == 0
    with pytest.raises(Conflict):
        demo.borrow(token, last_copy.id)

    for _ in range(3):
        demo.renew(token, result.loan.id)
    with pytest.raises(RenewalLimitExceeded):
        demo.renew(token, result.loan.id)

    returned = demo.return_book(token, result.loan.id)
    assert returned.loan.status == LoanStatus.RETURNED
    assert returned.book.available_copies == 1
    with pytest.raises(AlreadyReturned):
        demo.return_book(token, result.loan.id)

    demo.logout(token)
    demo.logout(token)
    with pytest.raises(Unauthorized):
        demo.list_loans(token)


def test_demo_datasource_hides_account_existence(demo):
    with pytest.raises(InvalidCredentials) as unknown:
        demo.login("nobody@kulibrary.edu.np", "whatever1")
    with pytest.raises(InvalidCredentials) as wrong:
        demo.login(DEMO_STUDENT, "whatever1")
    assert unknown.value.message == wrong.value.message


def test_dashboard_flow(store):
    dashboard = Dashboard(DemoDataSource(), store)
    with pytest.raises(Unauthorized):
        dashboard.refresh()

    session = dashboard.sign_in(DEMO_STUDENT, DEMO_PASSWORD)
    assert session.user.email == DEMO_STUDENT

    state = dashboard.refresh()
    assert state.user.email == DEMO_STUDENT
    assert state.loans == []
    clean_code = next(b for b in state.books if b.title == "Clean Code")

    state = dashboard.borrow(clean_code.id)
    assert [l.book_id for l in state.active_loans] == [clean_code.id]
    assert state.overdue_count == 0
    borrowed = next(b for b in state.books if b.id == clean_code.id)
    assert borrowed.available_copies == clean_code.available_copies - 1

    loan_id = state.loans[0].id
    state = dashboard.renew(loan_id)
    assert state.loans[0].renewal_count == 1
    state = dashboard.return_book(loan_id)
    assert state.active_loans == []

    assert [b.title for b in dashboard.refresh("graph").books] == ["Graph Databases"]

    dashboard.sign_out()
    assert store.load() is None
    with pytest.raises(Unauthorized):
        dashboard.refresh()


def test_dashboard_drops_rejected_session(store):
    source = DemoDataSource()
    dashboard = Dashboard(source, store)
    session = dashboard.sign_in(DEMO_STUDENT, DEMO_PASSWORD)
    source.logout(session.token)

    with pytest.raises(Unauthorized):
        dashboard.refresh()
    assert store.load() is None


def test_make_datasource(monkeypatch):
    assert isinstance(make_datasource("demo"), DemoDataSource)
    monkeypatch.setenv("KULIB_DATA_SOURCE", "api")
    monkeypatch.setenv("KULIB_API_BASE_URL", "http://127.0.0.1:9")
    assert isinstance(make_datasource(), ApiDataSource)
    with pytest.raises(ValueError):
        make_datasource("mock")
