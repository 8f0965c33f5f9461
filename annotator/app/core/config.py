import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ACCESS_POLICIES = ("strict", "edit_restricted")


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate bare host lists so a misconfigured
    # deployment still boots.
    if raw.startswith(("[", '"', "'")):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()
            if not raw or raw == "[]":
                return []
            if raw == "*":
                return ["*"]

    origins: list[str] = []
    for part in (p for p in re.split(r"[,\s]+", raw) if p):
        if part == "*":
            return ["*"]
        if "://" in part:
            origins.append(part)
            continue
        # Browsers include the scheme in the Origin header.
        origins.append(f"http://{part}")
        origins.append(f"https://{part}")

    seen: set[str] = set()
    result: list[str] = []
    for origin in origins:
        if origin in seen:
            continue
        seen.add(origin)
        result.append(origin)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # PostgreSQL settings
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "annotator"
    db_password: str = "annotator"
    db_name: str = "annotator"

    # Connection pool settings
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_pool_pre_ping: bool = True
    db_command_timeout: float = 30.0

    # SQLite pool settings (local development and tests)
    db_sqlite_pool_size: int = 5
    db_sqlite_max_overflow: int = 5

    # Explicit DATABASE_URL (takes priority over db_* settings)
    database_url_override: str = Field(default="", validation_alias="DATABASE_URL")

    @property
    def database_url(self) -> str:
        """Build database connection URL.

        Priority:
        1. database_url_override (from DATABASE_URL env var or .env file)
        2. Built from db_* settings
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # Rate limiting settings, one fixed window per category
    rate_limit_general_requests: int = 100
    rate_limit_general_window_seconds: int = 60
    rate_limit_upload_requests: int = 10
    rate_limit_upload_window_seconds: int = 300
    rate_limit_chat_requests: int = 50
    rate_limit_chat_window_seconds: int = 60
    rate_limit_cleanup_interval_seconds: float = 60.0
    rate_limit_stripes: int = 16

    # Access policies per endpoint family: strict | edit_restricted
    image_access_policy: str = "edit_restricted"
    annotation_access_policy: str = "strict"

    # Chat
    chat_message_max_length: int = 1000

    # Where share links point to
    frontend_url: str = "http://localhost:3000"

    # Object storage (MinIO / S3-compatible)
    storage_endpoint_url: str = "http://localhost:9000"
    storage_access_key: str = "minioadmin"
    storage_secret_key: str = "minioadmin"
    storage_region: str = "us-east-1"
    storage_bucket: str = "annotator-images"
    # Public object URLs; the endpoint itself when empty
    storage_public_base_url: str = ""
    storage_upload_ttl_seconds: int = 3600

    # Request body limit; base64 payloads inflate images by a third
    max_request_body_bytes: int = 20 * 1024 * 1024

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Use NoDecode so a bare host such as "10.0.0.5" doesn't crash JSON parsing.
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator(
        "rate_limit_general_requests",
        "rate_limit_general_window_seconds",
        "rate_limit_upload_requests",
        "rate_limit_upload_window_seconds",
        "rate_limit_chat_requests",
        "rate_limit_chat_window_seconds",
        "rate_limit_stripes",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("rate_limit_cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit_cleanup_interval_seconds must be positive")
        return v

    @field_validator("image_access_policy", "annotation_access_policy")
    @classmethod
    def validate_access_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ACCESS_POLICIES:
            raise ValueError(f"access policy must be one of {', '.join(ACCESS_POLICIES)}")
        return v

    @field_validator("chat_message_max_length", "storage_upload_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("frontend_url", "storage_endpoint_url", "storage_public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
