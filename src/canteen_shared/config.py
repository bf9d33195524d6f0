"""
Utilities to centralize configuration handling across the canteen services.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class AppConfig:
    """Simple container for application level settings."""

    app_name: str
    # PostgreSQL database
    db_host: str
    db_port: int
    db_user: str
    db_password: str
    db_name: str
    db_sslmode: str
    # App settings
    secret_key: str
    log_level: str
    debug_mode: bool
    flask_debug: bool
    cors_origins: list[str] = field(default_factory=list)
    # Order policy
    max_reopening_requests: int = 3
    max_reopening_window_hours: int = 24
    reopen_auto_declined_only: bool = True
    default_receipt_timer_minutes: int = 15
    max_receipt_timer_minutes: int = 30

    def get_bool(self, key: str, default: bool = False) -> bool:
        """
        Get boolean config value from AppConfig.

        Args:
            key: Configuration key (e.g., 'reopen_auto_declined_only')
            default: Default value if not set (defaults to False)

        Returns:
            bool: Configuration value
        """
        value = getattr(self, key, default)
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    @property
    def sqlalchemy_uri(self) -> str:
        """
        Build a SQLAlchemy PostgreSQL URI using psycopg2 as the driver.

        The format is compatible with SQLAlchemy's engine URL expectations.
        """
        ssl_arg = f"?sslmode={self.db_sslmode}" if self.db_sslmode else ""
        return (
            f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}{ssl_arg}"
        )


def _read_env(name: str, default: str | None = None) -> str:
    """
    Internal helper to fetch environment variables with support for defaults.
    """
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required environment variable '{name}'")
        value = default
    return value


def read_bool(name: str, default: str = "false") -> bool:
    value = _read_env(name, default)
    return value.strip().lower() in {"1", "true", "yes", "on"}


def read_int(name: str, default: str) -> int:
    value = _read_env(name, default)
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable '{name}' must be an integer, got: {value}") from exc


def _read_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in _read_env(name, default).split(",") if item.strip()]


def validate_required_env_vars(skip_in_debug: bool = False) -> None:
    """
    Validate that all required environment variables are set.

    Fails fast during startup rather than on the first request.

    Args:
        skip_in_debug: If True, skip validation when DEBUG_MODE=true

    Raises:
        RuntimeError: If any required variable is missing or has an invalid value
    """
    if skip_in_debug and read_bool("DEBUG_MODE", "false"):
        return

    errors = []

    secret_key = os.getenv("SECRET_KEY", "")
    if not secret_key or secret_key in {"change-me-please", "super-secret-change-me"}:
        errors.append(
            "SECRET_KEY must be configured with a secure random value. "
            'Generate with: python3 -c "import secrets; print(secrets.token_urlsafe(32))"'
        )

    if not os.getenv("DATABASE_URL"):
        for name in ("POSTGRES_HOST", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB"):
            if not os.getenv(name, ""):
                errors.append(f"{name} must be configured (or set DATABASE_URL)")

    for name, low, high in (
        ("MAX_REOPENING_REQUESTS", 0, 100),
        ("MAX_REOPENING_WINDOW_HOURS", 1, 24 * 30),
        ("DEFAULT_RECEIPT_TIMER_MINUTES", 1, 30),
        ("MAX_RECEIPT_TIMER_MINUTES", 1, 30),
    ):
        raw = os.getenv(name, "")
        if not raw:
            continue
        try:
            number = int(raw)
        except ValueError:
            errors.append(f"{name} must be a valid integer, got: {raw}")
            continue
        if number < low or number > high:
            errors.append(f"{name}={number} is outside the allowed range ({low}-{high})")

    if errors:
        error_msg = "\nConfiguration errors - missing or invalid environment variables:\n"
        for error in errors:
            error_msg += f"  - {error}\n"
        raise RuntimeError(error_msg)


def load_config(app_name: str) -> AppConfig:
    """
    Produce an AppConfig instance populated from environment variables.

    Each service passes its desired `app_name` to keep logs easy to
    differentiate while still reusing the same config loader.
    """
    return AppConfig(
        app_name=app_name,
        db_host=_read_env("POSTGRES_HOST", "localhost"),
        db_port=read_int("POSTGRES_PORT", "5432"),
        db_user=_read_env("POSTGRES_USER", "canteen"),
        db_password=_read_env("POSTGRES_PASSWORD", "canteen"),
        db_name=_read_env("POSTGRES_DB", "canteen"),
        db_sslmode=_read_env("POSTGRES_SSLMODE", "disable"),
        secret_key=_read_env("SECRET_KEY", "super-secret-change-me"),
        log_level=_read_env("LOG_LEVEL", "INFO"),
        debug_mode=read_bool("DEBUG_MODE", "false"),
        flask_debug=read_bool("FLASK_DEBUG", "false"),
        cors_origins=_read_list("CORS_ORIGINS", "http://localhost:5173,http://localhost:8081"),
        max_reopening_requests=read_int("MAX_REOPENING_REQUESTS", "3"),
        max_reopening_window_hours=read_int("MAX_REOPENING_WINDOW_HOURS", "24"),
        reopen_auto_declined_only=read_bool("REOPEN_AUTO_DECLINED_ONLY", "true"),
        default_receipt_timer_minutes=read_int("DEFAULT_RECEIPT_TIMER_MINUTES", "15"),
        max_receipt_timer_minutes=read_int("MAX_RECEIPT_TIMER_MINUTES", "30"),
    )
