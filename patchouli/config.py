"""Application configuration."""
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "0.1.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Identity provider (required)
    google_client_id: str
    google_client_secret: str
    redirect_url: str = "http://localhost:8080/callback"
    google_auth_url: str = "https://accounts.google.com/o/oauth2/auth"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo"
    provider_timeout_seconds: float = 10.0

    # Credentials
    credential_mode: Literal["token", "session"] = "token"
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24

    # Login state kept between /login and /callback
    login_state_ttl_seconds: int = 600
    login_state_max_records: int = 10000

    # Invites
    invite_ttl_hours: Optional[int] = None

    # Front-end and bot integration
    public_base_url: str = "http://localhost:8080"
    frontend_url: str = "http://localhost:3000"
    discord_bot_url: str = "http://localhost:3001"
    notification_timeout_seconds: float = 5.0

    # Database
    database_url: str = "sqlite:///./patchouli.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
