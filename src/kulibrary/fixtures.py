"""Demo accounts and catalog, provisioned into an empty database."""

import logging
from datetime import date

from sqlalchemy import Engine
from sqlmodel import Session, select

from .auth import hash_password
from .models import Book, User, Role

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "Library@2024"

DEMO_USERS = [
    {
        "name": "Abhishek Budhathoki",
        "email": "student@kulibrary.edu.np",
        "role": Role.STUDENT,
        "department": "Computer Science and Engineering",
        "phone": "+977-9800000001",
        "join_date": date(2023, 1, 15),
    },
    {
        "name": "Sita Sharma",
        "email": "faculty@kulibrary.edu.np",
        "role": Role.FACULTY,
        "department": "Mathematics",
        "join_date": date(2019, 8, 1),
    },
    {
        "name": "Ram Thapa",
        "email": "staff@kulibrary.edu.np",
        "role": Role.STAFF,
        "department": "Library Services",
        "join_date": date(2020, 3, 10),
    },
    {
        "name": "Library Admin",
        "email": "admin@kulibrary.edu.np",
        "role": Role.ADMIN,
        "join_date": date(2018, 6, 1),
    },
]

DEMO_BOOKS = [
    {
        "title": "Database System Concepts",
        "authors": ["Abraham Silberschatz", "Henry F. Korth", "S. Sudarshan"],
        "isbn": "978-0078022159",
        "publication_year": 2019,
        "total_copies": 5,
        "available_copies": 5,
    },
    {
        "title": "Graph Databases",
        "authors": ["Ian Robinson", "Jim Webber", "Emil Eifrem"],
        "isbn": "978-1491930892",
        "publication_year": 2015,
        "total_copies": 2,
        "available_copies": 2,
    },
    {
        "title": "Clean Code",
        "authors": ["Robert C. Martin"],
        "isbn": "978-0132350884",
        "publication_year": 2008,
        "total_copies": 3,
        "available_copies": 3,
    },
    {
        "title": "Introduction to Algorithms",
        "authors": [
            "Thomas H. Cormen",
            "Charles E. Leiserson",
            "Ronald L. Rivest",
            "Clifford Stein",
        ],
        "isbn": "978-0262046305",
        "publication_year": 2022,
        "total_copies": 4,
        "available_copies": 4,
    },
    {
        "title": "Fundamentals of Database Systems",
        "authors": ["Ramez Elmasri", "Shamkant B. Navathe"],
        "isbn": "978-0133970777",
        "publication_year": 2015,
        "total_copies": 1,
        "available_copies": 1,
    },
]


def provision_user(dbsession: Session, password: str, **fields) -> User:
    user = User.model_validate(fields, update={"password": hash_password(password)})
    dbsession.add(user)
    dbsession.commit()
    dbsession.refresh(user)
    return user


def add_book(dbsession: Session, **fields) -> Book:
    book = Book.model_validate(fields)
    dbsession.add(book)
    dbsession.commit()
    dbsession.refresh(book)
    return book


def seed_demo_data(db_engine: Engine, password: str = DEMO_PASSWORD):
    with Session(db_engine) as dbsession:
        if not dbsession.exec(select(User)).first():
            for fields in DEMO_USERS:
                provision_user(dbsession, password, **fields)
            logger.info("provisioned %d demo users", len(DEMO_USERS))
        if not dbsession.exec(select(Book)).first():
            for fields in DEMO_BOOKS:
                add_book(dbsession, **fields)
            logger.info("seeded %d demo books", len(DEMO_BOOKS))
