"""Client-side session persistence.

The session (token, user profile, login time) lives in one JSON file and is
valid for 24 hours from login. Expiry is checked whenever the session is
loaded; an expired or unreadable file is removed.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pydantic

from ..models import UserInfoResp

SESSION_LIFETIME = timedelta(hours=24)

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # a missing offset means UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class ClientSession:
    token: str
    user: UserInfoResp
    login_time: datetime
    lifetime: timedelta = SESSION_LIFETIME

    @property
    def expires_at(self) -> datetime:
        return self.login_time + self.lifetime

    def is_expired(self, now: datetime | None = None) -> bool:
        now = datetime.now(timezone.utc) if now is None else _as_utc(now)
        return now >= self.expires_at


class SessionStore:
    def __init__(self, path: str | Path, lifetime: timedelta = SESSION_LIFETIME):
        self.path = Path(path)
        self.lifetime = lifetime

    def save(
        self, token: str, user: UserInfoResp, now: datetime | None = None
    ) -> ClientSession:
        now = datetime.now(timezone.utc) if now is None else _as_utc(now)
        session = ClientSession(token, user, now, self.lifetime)
        data = {
            "token": token,
            "user": user.model_dump(mode="json", by_alias=True),
            "loginTime": now.isoformat(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
        return session

    def load(self, now: datetime | None = None) -> ClientSession | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            session = ClientSession(
                token=data["token"],
                user=UserInfoResp.model_validate(data["user"]),
                login_time=_as_utc(datetime.fromisoformat(data["loginTime"])),
                lifetime=self.lifetime,
            )
        except (OSError, ValueError, KeyError, TypeError, pydantic.ValidationError):
            logger.warning("discarding unreadable session file %s", self.path)
            self.clear()
            return None
        if session.is_expired(now):
            logger.info("stored session expired at %s", session.expires_at)
            self.clear()
            return None
        return session

    def clear(self):
        self.path.unlink(missing_ok=True)
