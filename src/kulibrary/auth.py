import logging
import re
import secrets
import time

from passlib.hash import argon2
from sqlalchemy import Engine, delete
from sqlmodel import Session, col, select

from .errors import InvalidCredentials, Unauthorized, ValidationError
from .models import User, LoginSession

LOGIN_SESSION_EXPIRES = 60 * 60 * 24

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return argon2.hash(password)


def check_email_policy(email: str, pattern: str):
    if not email:
        raise ValidationError("Email is required")
    if pattern and not re.fullmatch(pattern, email):
        raise ValidationError("Please use a valid institutional email address")


def authenticate(dbsession: Session, email: str, password: str) -> User:
    """Return the user owning ``email`` if ``password`` matches.

    Unknown email and wrong password raise the same ``InvalidCredentials``
    so the response does not reveal which accounts exist.
    """
    if user := dbsession.exec(
        select(User).where(User.email == email.strip().lower())
    ).one_or_none():
        if argon2.verify(password, user.password):
            return user
    logger.warning("rejected login for %s", email)
    raise InvalidCredentials()


def open_session(
    dbsession: Session,
    user: User,
    expires: int = LOGIN_SESSION_EXPIRES,
    now: float | None = None,
) -> LoginSession:
    now = time.time() if now is None else now
    login_session = LoginSession(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        issued_at=now,
        expire_at=now + expires,
    )
    dbsession.add(login_session)
    dbsession.commit()
    dbsession.refresh(login_session)
    logger.info("user %s logged in", user.id)
    return login_session


def verify_token(dbsession: Session, token: str | None, now: float | None = None) -> User:
    now = time.time() if now is None else now
    if token:
        if sess := dbsession.get(LoginSession, token):
            if sess.expire_at > now:
                if user := dbsession.get(User, sess.user_id):
                    return user
            dbsession.delete(sess)
            dbsession.commit()
    raise Unauthorized()


def revoke(dbsession: Session, token: str) -> bool:
    """Drop the session for ``token``; unknown tokens are ignored."""
    if sess := dbsession.get(LoginSession, token):
        user_id = sess.user_id
        dbsession.delete(sess)
        dbsession.commit()
        logger.info("user %s logged out", user_id)
        return True
    return False


def parse_bearer(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def clear_expired_sessions(db_engine: Engine, now: float | None = None) -> int:
    now = time.time() if now is None else now
    with Session(db_engine) as dbsession:
        result = dbsession.exec(
            delete(LoginSession).where(col(LoginSession.expire_at) <= now)
        )
        dbsession.commit()
        if result.rowcount:
            logger.info("cleared %d expired sessions", result.rowcount)
        return result.rowcount
