import json
import re
from typing import Annotated, Any, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_path_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate comma separated values
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    return [p for p in re.split(r"[,\s]+", raw) if p]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Redis settings (shared rate limit state)
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 0.5  # Per-command timeout in seconds
    redis_socket_connect_timeout: float = 0.5

    # Rate limiting settings
    rate_limit_enabled: bool = True  # Master switch for middleware and route dependencies
    rate_limit_global_enabled: bool = False  # Apply the default policy to every non-exempt path
    rate_limit_default_limit: int = 100
    rate_limit_default_window_seconds: int = 60
    rate_limit_default_algorithm: Literal[
        "fixed_window", "sliding_window", "token_bucket", "leaky_bucket"
    ] = "sliding_window"
    rate_limit_failure_strategy: Literal[
        "fail_open", "fail_closed", "local_fallback"
    ] = "fail_open"
    rate_limit_fallback_max_entries: int = 10000
    rate_limit_include_headers: bool = True
    rate_limit_trust_forwarded_for: bool = False
    rate_limit_exempt_paths: Annotated[list[str], NoDecode] = ["/health", "/metrics"]

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("rate_limit_exempt_paths", "cors_origins", mode="before")
    @classmethod
    def decode_path_list(cls, v: Any) -> list[str]:
        return _parse_path_list(v)

    @field_validator(
        "rate_limit_default_limit",
        "rate_limit_default_window_seconds",
        "rate_limit_fallback_max_entries",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("redis_socket_timeout", "redis_socket_connect_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    def default_policy(self):
        """Build the policy applied by the global rate limit middleware."""
        from admission.app.services.rate_limit.models import RateLimitPolicy

        return RateLimitPolicy(
            limit=self.rate_limit_default_limit,
            window_seconds=self.rate_limit_default_window_seconds,
            algorithm=self.rate_limit_default_algorithm,
            failure_strategy=self.rate_limit_failure_strategy,
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
