"""
Service Settings

Environment-based configuration. Values are read from the process
environment, with a local .env file loaded first when present.
"""

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()


class Settings(BaseModel):
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: str = Field("chef_origin", description="MongoDB database name")
    database_timeout_ms: int = Field(5000, gt=0, description="Bound on every store operation")

    stripe_secret_key: Optional[str] = Field(None, description="Stripe secret API key")
    stripe_timeout_seconds: float = Field(10.0, gt=0, description="HTTP timeout for Stripe calls")
    checkout_currency: str = Field("usd", min_length=3, max_length=3)

    site_domain: str = Field("http://localhost:5173", description="Frontend base URL for checkout redirects")
    allowed_origins: Optional[str] = Field(None, description="CORS origins (comma-separated)")

    chef_id_max_attempts: int = Field(20, gt=0)

    log_level: str = "INFO"
    app_env: str = "development"
    port: int = 8000

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.startswith(("sk_test_", "sk_live_")):
            raise ValueError("Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("checkout_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.lower()

    @field_validator("site_domain")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def get_allowed_origins_list(self) -> List[str]:
        if not self.allowed_origins:
            return [self.site_domain, "http://localhost:5174"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value not in (None, "") else None


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    raw = {
        "database_url": _env("DATABASE_URL"),
        "database_name": _env("DATABASE_NAME"),
        "database_timeout_ms": _env("DATABASE_TIMEOUT_MS"),
        "stripe_secret_key": _env("STRIPE_SECRET_KEY"),
        "stripe_timeout_seconds": _env("STRIPE_TIMEOUT_SECONDS"),
        "checkout_currency": _env("CHECKOUT_CURRENCY"),
        "site_domain": _env("SITE_DOMAIN"),
        "allowed_origins": _env("ALLOWED_ORIGINS"),
        "chef_id_max_attempts": _env("CHEF_ID_MAX_ATTEMPTS"),
        "log_level": _env("LOG_LEVEL"),
        "app_env": _env("APP_ENV"),
        "port": _env("PORT"),
    }
    return Settings(**{key: value for key, value in raw.items() if value is not None})
