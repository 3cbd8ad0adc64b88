"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Shared operator-funded key. Empty = only caller-supplied keys work.
    anthropic_api_key: str = ""

    # Upstream LLM API
    upstream_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    upstream_timeout_seconds: float = 60.0

    # Admission control (shared-key path only)
    rate_limit: int = 10  # Requests per window per client identity
    rate_limit_window_seconds: int = 3600

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def rate_limit_window_ms(self) -> int:
        return self.rate_limit_window_seconds * 1000

    @property
    def has_shared_key(self) -> bool:
        return bool(self.anthropic_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()
