"""Environment-driven settings, validated once at import.

A bad value fails the process at startup rather than on the first exam
request that happens to read it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE = ("true", "1", "yes")
_FALSE = ("false", "0", "no")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw not in _TRUE + _FALSE:
        raise ValueError(f"{name} must be a boolean (got {raw!r})")
    return raw in _TRUE


def _getint(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    # None selects the in-memory store / queue
    database_url: str | None
    redis_url: str | None
    sql_echo: bool
    worker_poll_timeout: int
    # PEM of the token issuer. None verifies against a per-process dev key.
    jwt_public_key: str | None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env = _getenv("APP_ENV", "dev").lower()
    if app_env not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env!r})")

    log_level = _getenv("LOG_LEVEL", "info").lower()
    if log_level not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level!r})"
        )

    # Env files and k8s secrets often carry the PEM on one line with
    # literal \n separators.
    jwt_public_key = _getenv("JWT_PUBLIC_KEY", "").replace("\\n", "\n") or None
    if app_env == "prod" and jwt_public_key is None:
        raise ValueError("JWT_PUBLIC_KEY is required when APP_ENV=prod")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level=log_level,
        log_json=_getbool("LOG_JSON", False),
        port=_getint("PORT", 8000, minimum=1),
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        sql_echo=_getbool("SQL_ECHO", False),
        worker_poll_timeout=_getint("WORKER_POLL_TIMEOUT", 5, minimum=1),
        jwt_public_key=jwt_public_key,
    )


SETTINGS = load_settings()
