from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    # Bearer token verification. Tokens are HS256-signed by the auth backend.
    auth_enabled: bool = False
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # Logging, metrics and tracing
    service_name: str = "campus-connect"
    log_format: str = "json"
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"
    metrics_namespace: str = "CampusConnect"
    enable_xray: bool = False

    # Local dev identity used when auth is disabled and no X-Profile-Id is sent
    local_profile_email: str = "local@example.com"

    # Reject status moves outside the workflow transition tables
    enforce_status_transitions: bool = False

    # Avatar storage
    media_root: str = "media"
    media_url: str = "/media"
    max_avatar_bytes: int = 2 * 1024 * 1024

    # Application base URL (for constructing public avatar URLs etc.)
    app_base_url: str = "http://localhost:8000"  # Default for local dev

    cors_origins: list[str] = [
        "http://localhost",
        "http://localhost:5173",
        "http://localhost:8080",
        "http://127.0.0.1:8000",
    ]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
