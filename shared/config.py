"""
Shared configuration management for the Mentorly access layer.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", alias="MENTORLY_ENV")
    log_level: str = Field(default="info", alias="MENTORLY_LOG_LEVEL")

    # Token verification
    jwt_secret: str = Field(default="CHANGE_THIS_SECRET", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    trust_unverified_token_subject: bool = Field(default=True, alias="TRUST_UNVERIFIED_TOKEN_SUBJECT")

    # CORS / headers
    allowed_origins_raw: str = Field(default="http://localhost:8080", alias="ALLOWED_ORIGINS")
    enable_hsts: bool = Field(default=False, alias="ENABLE_HSTS")

    # Rate limiting
    redis_enabled: bool = Field(default=True, alias="REDIS_ENABLED")
    redis_host: str = Field(default="127.0.0.1", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_timeout_seconds: float = Field(default=0.5, alias="REDIS_TIMEOUT_SECONDS")
    rate_limit_dir: Optional[str] = Field(default=None, alias="RATE_LIMIT_DIR")

    # External services
    postgres_dsn: str = Field(default="postgresql://localhost:5432/mentorly", alias="DATABASE_URL")

    # Sessions / security
    session_secret: str = Field(default="CHANGE_THIS_SESSION_SECRET", alias="SESSION_SECRET")
    security_log_file: Optional[str] = Field(default="logs/security.log", alias="SECURITY_LOG_FILE")
    password_scheme: str = Field(default="argon2id", alias="PASSWORD_SCHEME")

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins_raw.split(",") if origin.strip()]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
