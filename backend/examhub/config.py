"""Application settings and validation."""

import os
from pathlib import Path
from typing import Mapping, Optional

BASE = Path(__file__).resolve().parent.parent
DEFAULT_JWT_SECRET = "change_me_for_prod"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str
    APP_NAME: str
    APP_URL: str
    SMTP_HOST: str
    SMTP_PORT: int
    SMTP_USER: str
    SMTP_PASSWORD: str
    SMTP_STARTTLS: bool
    EMAIL_FROM: str

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ
        self.ENV = env.get("ENV", "dev").lower()
        self.DATABASE_URL = env.get("DATABASE_URL", f"sqlite:///{BASE / 'examhub.db'}")
        self.JWT_SECRET = env.get("JWT_SECRET", DEFAULT_JWT_SECRET)
        self.JWT_ALGORITHM = env.get("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = self._int(env, "JWT_EXPIRE_HOURS", 7 * 24)  # 7 days
        self.ALLOW_INSECURE_JWT = _as_bool(env.get("ALLOW_INSECURE_JWT", "false"))
        self.ALLOW_DEV_CORS = _as_bool(env.get("ALLOW_DEV_CORS", "true"))
        self.LOG_LEVEL = env.get("LOG_LEVEL", "INFO").upper()
        self.APP_NAME = env.get("APP_NAME", "ExamHub")
        self.APP_URL = env.get("APP_URL", "")
        self.SMTP_HOST = env.get("SMTP_HOST", "").strip()
        self.SMTP_PORT = self._int(env, "SMTP_PORT", 587)
        self.SMTP_USER = env.get("SMTP_USER", "")
        self.SMTP_PASSWORD = env.get("SMTP_PASSWORD", "")
        self.SMTP_STARTTLS = _as_bool(env.get("SMTP_STARTTLS", "true"))
        self.EMAIL_FROM = env.get("EMAIL_FROM", "").strip()
        self._validate()

    @staticmethod
    def _int(env: Mapping[str, str], name: str, default: int) -> int:
        raw = env.get(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise RuntimeError(f"{name} must be an integer, got {raw!r}")

    @property
    def email_enabled(self) -> bool:
        return bool(self.SMTP_HOST)

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if not self.JWT_SECRET:
            raise RuntimeError("JWT_SECRET must not be empty")
        if self.JWT_EXPIRE_HOURS <= 0:
            raise RuntimeError("JWT_EXPIRE_HOURS must be positive")
        if self.SMTP_HOST and not self.EMAIL_FROM:
            raise RuntimeError("EMAIL_FROM must be set when SMTP_HOST is configured")
