import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_path_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate comma/space separated values.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    paths: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if not part.startswith("/"):
            part = f"/{part}"
        if part not in paths:
            paths.append(part)
    return paths


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings (counting store shared by all instances)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Rate limiting settings
    rate_limit_enabled: bool = True
    rate_limit_key_prefix: str = "ratelimit:"
    rate_limit_requests: int = 100  # Requests allowed per window
    rate_limit_window_seconds: int = 60
    rate_limit_store_timeout: float = 0.5  # Seconds before failing open
    rate_limit_trust_forwarded_for: bool = False  # Only behind a trusted proxy

    # Paths that bypass rate limiting entirely.
    # NoDecode so plain comma separated values don't go through JSON parsing.
    rate_limit_exempt_paths: Annotated[list[str], NoDecode] = ["/health"]

    @field_validator("rate_limit_exempt_paths", mode="before")
    @classmethod
    def decode_exempt_paths(cls, v: Any) -> list[str]:
        return _parse_path_list(v)

    @field_validator("rate_limit_requests", "rate_limit_window_seconds")
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("rate_limit_store_timeout")
    @classmethod
    def validate_store_timeout(cls, v: float) -> float:
        """Validate store timeout is positive."""
        if v <= 0:
            raise ValueError("rate_limit_store_timeout must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
