from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to FastAPI components."""

    app_name: str = "exercise-service"
    version: str = "0.1.0"
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///wikitype.db")
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "20"))
    db_pool_timeout: float = float(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_auto_migrate: bool = _flag("DB_AUTO_MIGRATE", "true")
    http_host: str = os.getenv("HTTP_HOST", "0.0.0.0")
    http_port: int = int(os.getenv("HTTP_PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    # OIDC verification is disabled while the issuer is empty.
    oidc_issuer: str = os.getenv("OIDC_ISSUER", "")
    oidc_audience: str = os.getenv("OIDC_AUDIENCE", "")
    oidc_required: bool = _flag("OIDC_REQUIRED", "false")
    oidc_http_timeout: float = float(os.getenv("OIDC_HTTP_TIMEOUT", "10"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
