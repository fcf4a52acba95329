"""
Verification Engine Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_API_TOKEN = "dev-token-change-in-production"

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Produce Verification"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # Remote verification API
    verification_api_url: str = "http://localhost:5000/api/v1"
    verification_api_token: str = DEFAULT_API_TOKEN
    verification_api_timeout_seconds: float = 10.0
    status_fetch_retries: int = 3
    status_cache_ttl_seconds: float = 30.0

    # ── Bulk operations ─────────────────────────────────────────────
    # Fixed worker count per job; never an unbounded fan-out.
    bulk_worker_count: int = 4
    bulk_item_timeout_seconds: float = 10.0
    bulk_job_retention_seconds: float = 3600.0

    # Urgency buckets for the verification queue, e.g.
    #   VERIFICATION_URGENCY_THRESHOLDS='{"critical":10,"high":5,"medium":2}'
    verification_urgency_thresholds: str = ""

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_security_guardrails(settings)
    return settings


def _enforce_security_guardrails(settings: Settings) -> None:
    if settings.bulk_worker_count < 1:
        raise ValueError("bulk_worker_count must be at least 1")

    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if settings.verification_api_token == DEFAULT_API_TOKEN:
        raise ValueError("Refusing to start with default verification API token outside local/dev/test")
