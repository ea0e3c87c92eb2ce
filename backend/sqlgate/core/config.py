"""Gateway configuration loaded from the environment."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.engine import URL

from ..security.input_schema import QueryLimits
from ..security.policy import StatementPolicy, load_statement_policy
from .exceptions import ConfigurationError

load_dotenv()


class AccessTier(str, Enum):
    """Who the gateway is exposed to."""
    PUBLIC = "public"      # anonymous callers: small row ceiling, shape allow-list
    TRUSTED = "trusted"    # internal callers

    @property
    def row_ceiling(self) -> int:
        return 100 if self is AccessTier.PUBLIC else 1000


@dataclass(frozen=True)
class DatabaseConnection:
    """Configuration for the readonly database connection."""
    driver: str = "mysql+pymysql"
    host: str = "localhost"
    port: int = 3306
    database: str = ""
    user: str = ""
    password: str = ""
    pool_size: int = 5
    connect_timeout: int = 10
    url_override: str = ""

    @property
    def url(self) -> str:
        """SQLAlchemy URL; DATABASE_URL wins over the individual parts."""
        if self.url_override:
            return self.url_override
        return URL.create(
            self.driver,
            username=self.user or None,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.database or None,
        ).render_as_string(hide_password=False)


@dataclass(frozen=True)
class Settings:
    """Application settings."""
    database: DatabaseConnection
    access_tier: AccessTier
    limits: QueryLimits
    policy: StatementPolicy

    # Admission gate
    rate_limit_window_seconds: float
    rate_limit_max_requests: int

    # Audit
    audit_query_chars: int

    cors_origins: tuple[str, ...]

    @property
    def row_ceiling(self) -> int:
        return self.access_tier.row_ceiling


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def get_settings() -> Settings:
    """Load settings from environment variables."""
    database = DatabaseConnection(
        driver=os.getenv("DB_DRIVER", "mysql+pymysql"),
        host=os.getenv("DB_HOST", "localhost"),
        port=_int_env("DB_PORT", 3306),
        database=os.getenv("DB_NAME", ""),
        user=os.getenv("DB_USER", ""),
        password=os.getenv("DB_PASSWORD", ""),
        pool_size=_int_env("DB_POOL_SIZE", 5),
        connect_timeout=_int_env("DB_CONNECT_TIMEOUT", 10),
        url_override=os.getenv("DATABASE_URL", ""),
    )

    tier_str = os.getenv("ACCESS_TIER", "trusted").lower()
    try:
        access_tier = AccessTier(tier_str)
    except ValueError as e:
        raise ConfigurationError(f"ACCESS_TIER must be 'public' or 'trusted', got {tier_str!r}") from e

    limits = QueryLimits(
        max_query_length=_int_env("MAX_QUERY_LENGTH", 10_000),
        default_limit=_int_env("DEFAULT_LIMIT", 100),
        min_limit=_int_env("MIN_LIMIT", 1),
        max_limit=_int_env("MAX_LIMIT", 1000),
        default_timeout_ms=_int_env("DEFAULT_TIMEOUT_MS", 30_000),
        min_timeout_ms=_int_env("MIN_TIMEOUT_MS", 1000),
        max_timeout_ms=_int_env("MAX_TIMEOUT_MS", 30_000),
        max_identifier_length=_int_env("MAX_IDENTIFIER_LENGTH", 64),
        max_search_term_length=_int_env("MAX_SEARCH_TERM_LENGTH", 255),
    )
    if not limits.min_limit <= limits.default_limit <= limits.max_limit:
        raise ConfigurationError("DEFAULT_LIMIT must lie within [MIN_LIMIT, MAX_LIMIT]")
    if not limits.min_timeout_ms <= limits.default_timeout_ms <= limits.max_timeout_ms:
        raise ConfigurationError("DEFAULT_TIMEOUT_MS must lie within [MIN_TIMEOUT_MS, MAX_TIMEOUT_MS]")

    return Settings(
        database=database,
        access_tier=access_tier,
        limits=limits,
        policy=load_statement_policy(os.getenv("POLICY_PATH") or None),
        rate_limit_window_seconds=float(_int_env("RATE_LIMIT_WINDOW_SECONDS", 60)),
        rate_limit_max_requests=_int_env("RATE_LIMIT_MAX", 10),
        audit_query_chars=_int_env("AUDIT_QUERY_CHARS", 200),
        cors_origins=tuple(
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
            if origin.strip()
        ),
    )


# Singleton for caching settings
_settings_cache: Optional[Settings] = None


def get_cached_settings() -> Settings:
    """Get cached settings (loads once)."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = get_settings()
    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    global _settings_cache
    _settings_cache = None
