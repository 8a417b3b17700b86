"""
Application settings.

Settings are read from the environment once, at startup, and handed to the
services that need them. Nothing below the HTTP layer reads os.environ.
"""
import os
from functools import lru_cache
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from errors import ConfigurationError

BASELINE_ORIGINS = (
    "https://rong-chapa.onrender.com",
    "https://rong-chapa.netlify.app",
    "http://localhost:5173",
)

DEV_SECRET_KEY = "supersecretkey"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    app_env: str = "development"
    port: int = 8000
    database_url: Optional[str] = None
    database_name: str = "rong_chapa"
    secret_key: str = DEV_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 12
    client_origins: Tuple[str, ...] = BASELINE_ORIGINS
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    business_name: str = "Rong Chapa"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def parse_client_origins(value: Optional[str]) -> Tuple[str, ...]:
    """Merge configured origins with the baseline ones, keeping first-seen order."""
    configured = [entry.strip() for entry in (value or "").split(",") if entry.strip()]
    merged = []
    for origin in configured + list(BASELINE_ORIGINS):
        if origin not in merged:
            merged.append(origin)
    return tuple(merged)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    app_env = os.getenv("APP_ENV", "development")
    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        if app_env == "production":
            raise ConfigurationError("Missing SECRET_KEY. Set it in the environment.")
        secret_key = DEV_SECRET_KEY

    return Settings(
        app_env=app_env,
        port=_int_env("PORT", 8000),
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME", "rong_chapa"),
        secret_key=secret_key,
        access_token_expire_minutes=_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12),
        client_origins=parse_client_origins(os.getenv("CLIENT_URL")),
        admin_email=os.getenv("ADMIN_EMAIL") or None,
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
        business_name=os.getenv("BUSINESS_NAME", "Rong Chapa"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
