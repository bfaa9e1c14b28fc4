"""Configuration via environment variables (and ``.env`` files).

Recognised variables:
  CLERK_SECRET_KEY          required, may be a secret reference
  POSTGRES_URL              required (DATABASE_URL accepted as fallback)
  DELAY_MS                  pause between logins, default 1000
  RETRY_DELAY_MS            pause before retrying a rate-limited user, default 10000
  IMPORT_TO_DEV_INSTANCE    allow a non-live Clerk key, default false
  OFFSET                    number of users to skip, default 0
  MAX_RATE_LIMIT_RETRIES    optional bound on per-user restarts, default unbounded
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from scripts.clerk_migration.errors import ConfigError
from scripts.clerk_migration.secrets import resolve_database_url, resolve_secret

DEFAULT_CLERK_API_URL = "https://api.clerk.com/v1"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    min_connections: int = 1
    max_connections: int = 2


@dataclass(frozen=True)
class ClerkConfig:
    secret_key: str
    api_base_url: str = DEFAULT_CLERK_API_URL
    timeout_s: float = 30.0

    @property
    def instance_type(self) -> str:
        """Instance type from the ``sk_<type>_...`` key format, e.g. "live"."""
        parts = self.secret_key.split("_")
        return parts[1] if len(parts) > 1 else ""


@dataclass(frozen=True)
class PacingConfig:
    inter_login_delay_ms: int = 1000
    rate_limit_retry_delay_ms: int = 10000
    max_rate_limit_retries: Optional[int] = None  # None = retry forever

    @property
    def inter_login_delay_s(self) -> float:
        return self.inter_login_delay_ms / 1000.0

    @property
    def rate_limit_retry_delay_s(self) -> float:
        return self.rate_limit_retry_delay_ms / 1000.0


@dataclass(frozen=True)
class MigrationConfig:
    clerk: ClerkConfig
    database: DatabaseConfig
    pacing: PacingConfig = field(default_factory=PacingConfig)
    allow_non_production: bool = False
    offset: int = 0
    log_dir: str = "."


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {os.environ[name]!r}")
    if value < 0:
        raise ConfigError(f"{name} must be non-negative, got {value}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def load_config() -> MigrationConfig:
    """Load and validate configuration. Raises ConfigError before any work starts."""
    load_dotenv()

    secret_key_raw = os.environ.get("CLERK_SECRET_KEY", "")
    if not secret_key_raw:
        raise ConfigError(
            "CLERK_SECRET_KEY is required. Please copy .env.example to .env "
            "and add your key."
        )

    db_url = resolve_database_url()
    if not db_url:
        raise ConfigError(
            "POSTGRES_URL is required. Please add your PostgreSQL connection "
            "URL to .env."
        )

    try:
        timeout_s = float(os.environ.get("CLERK_TIMEOUT_S", "30"))
    except ValueError:
        raise ConfigError("CLERK_TIMEOUT_S must be a number")

    clerk = ClerkConfig(
        secret_key=resolve_secret(secret_key_raw),
        api_base_url=os.environ.get("CLERK_API_URL", DEFAULT_CLERK_API_URL),
        timeout_s=timeout_s,
    )

    allow_non_production = _env_bool("IMPORT_TO_DEV_INSTANCE")
    if clerk.instance_type != "live" and not allow_non_production:
        raise ConfigError(
            "The Clerk Secret Key provided is for a development instance. "
            "Development instances are limited to 500 users and do not share "
            "their userbase with production instances. If you want to import "
            "users to your development instance, please set "
            "'IMPORT_TO_DEV_INSTANCE' in your .env to 'true'."
        )

    return MigrationConfig(
        clerk=clerk,
        database=DatabaseConfig(
            url=db_url,
            min_connections=_env_int("DB_MIN_CONNECTIONS", 1),
            max_connections=_env_int("DB_MAX_CONNECTIONS", 2),
        ),
        pacing=PacingConfig(
            inter_login_delay_ms=_env_int("DELAY_MS", 1000),
            rate_limit_retry_delay_ms=_env_int("RETRY_DELAY_MS", 10000),
            max_rate_limit_retries=_env_int("MAX_RATE_LIMIT_RETRIES", None),
        ),
        allow_non_production=allow_non_production,
        offset=_env_int("OFFSET", 0),
        log_dir=os.environ.get("MIGRATION_LOG_DIR", "."),
    )
