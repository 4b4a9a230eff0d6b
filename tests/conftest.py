import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from kulibrary.config import Settings
from kulibrary.core import create_app
from kulibrary.fixtures import add_book, provision_user
from kulibrary.models import Role

PASSWORD = "Password123"
STUDENT_EMAIL = "student@kulibrary.edu.np"
OTHER_EMAIL = "other@kulibrary.edu.np"
STAFF_EMAIL = "staff@kulibrary.edu.np"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'library.db'}",
        seed_demo=False,
        session_sweep_minutes=0,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_engine(app, client):
    # tables are created by the lifespan that ``client`` runs
    return app.state.db_engine


@pytest.fixture
def dbsession(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def users(dbsession):
    """Map of role label to user id."""
    student = provision_user(
        dbsession, PASSWORD, name="Test Student", email=STUDENT_EMAIL, role=Role.STUDENT
    )
    other = provision_user(
        dbsession, PASSWORD, name="Other Student", email=OTHER_EMAIL, role=Role.STUDENT
    )
    staff = provision_user(
        dbsession, PASSWORD, name="Desk Staff", email=STAFF_EMAIL, role=Role.STAFF
    )
    return {"student": student.id, "other": other.id, "staff": staff.id}


@pytest.fixture
def books(dbsession):
    """Map of title to book id."""
    created = [
        add_book(
            dbsession,
            title="Graph Databases",
            authors=["Ian Robinson", "Jim Webber", "Emil Eifrem"],
            isbn="978-1491930892",
            publication_year=2015,
            total_copies=2,
            available_copies=2,
        ),
        add_book(
            dbsession,
            title="Clean Code",
            authors=["Robert C. Martin"],
            isbn="978-0132350884",
            publication_year=2008,
            total_copies=1,
            available_copies=1,
        ),
        add_book(
            dbsession,
            title="Database System Concepts",
            authors=["Abraham Silberschatz", "Henry F. Korth"],
            isbn="978-0078022159",
            publication_year=2019,
            total_copies=5,
            available_copies=5,
        ),
    ]
    return {b.title: b.id for b in created}


def login(client, email=STUDENT_EMAIL, password=PASSWORD) -> str:
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
