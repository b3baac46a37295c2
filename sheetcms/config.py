from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

load_dotenv()


class Settings(BaseModel):
    GOOGLE_SHEET_ID: str = Field(..., description="The spreadsheet backing every entity")
    GOOGLE_OAUTH_CLIENT_SECRETS: Optional[str] = Field(default=None)
    GOOGLE_SERVICE_ACCOUNT_JSON: Optional[str] = Field(default=None)
    DELEGATED_SUBJECT: Optional[str] = Field(default=None)
    TOKEN_STORE: str = Field(default=".tokens/sheets.json")
    CACHE_TTL_SECONDS: float = Field(default=300.0)
    SHEETS_TIMEOUT_SECONDS: float = Field(default=30.0)
    VERIFY_WRITES: bool = Field(default=True)
    INIT_SHEETS_ON_START: bool = Field(default=False)
    JWT_SECRET: str = Field(default="dev-secret-change-me")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_EXPIRE_MINUTES: int = Field(default=60 * 24 * 30)
    JWT_ISSUER: str = Field(default="sheetcms")
    IDEMPOTENCY_DB_PATH: str = Field(default="sheetcms.db")
    IDEMPOTENCY_TTL_SECONDS: int = Field(default=86400)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    RATE_LIMIT_ENABLED: bool = Field(default=False)
    RATE_LIMIT_RPS: float = Field(default=5.0)
    RATE_LIMIT_BURST: int = Field(default=20)
    DEFAULT_PAGE_LIMIT: int = Field(default=10)
    MAX_PAGE_LIMIT: int = Field(default=100)

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if not 1 <= self.DEFAULT_PAGE_LIMIT <= self.MAX_PAGE_LIMIT:
            raise ValueError("DEFAULT_PAGE_LIMIT must be between 1 and MAX_PAGE_LIMIT")
        if self.CACHE_TTL_SECONDS < 0:
            raise ValueError("CACHE_TTL_SECONDS must not be negative")
        return self

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            if field.is_required():
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        missing = [
            str(error["loc"][0])
            for error in exc.errors()
            if error.get("type") == "missing" and error.get("loc")
        ]
        if missing:
            joined = ", ".join(sorted(set(missing)))
            raise RuntimeError(
                f"Missing required environment variables: {joined}"
            ) from exc
        raise


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
