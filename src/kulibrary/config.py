import os
from datetime import timedelta
from typing import Mapping

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "KULIB_"

DEFAULT_EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@kulibrary\.edu\.np$"
DEFAULT_CORS_ORIGINS = ["https://budhathokiabhishek.com.np"]


class Settings(BaseModel):
    database_url: str = "sqlite:///kulibrary.db"
    session_hours: int = Field(default=24, gt=0)
    loan_period_days: int = Field(default=14, gt=0)
    max_renewals: int = Field(default=3, ge=0)
    # empty string disables the institutional email check
    email_pattern: str = DEFAULT_EMAIL_PATTERN
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    embed_loans_on_login: bool = True
    seed_demo: bool = True
    session_sweep_minutes: int = Field(default=60, ge=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            v = [o.strip() for o in v.split(",") if o.strip()]
        return v

    @property
    def session_seconds(self) -> int:
        return self.session_hours * 60 * 60

    @property
    def loan_period(self) -> timedelta:
        return timedelta(days=self.loan_period_days)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from ``KULIB_*`` environment variables."""
    if environ is None:
        environ = os.environ
    raw = {}
    for name in Settings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            raw[name] = environ[key]
    return Settings.model_validate(raw)
