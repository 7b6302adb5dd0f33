"""Configuration management for the Microsoft auth demo."""

import json
import logging
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid."""


def describe_validation_error(exc: ValidationError) -> str:
    """Render the offending field names of a settings validation error."""
    fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
    return ", ".join(fields) or str(exc)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Session Configuration
    session_secret: str = Field(..., min_length=1, description="Secret key for session cookie signing")
    session_cookie_name: str = Field(default="__session")
    session_max_age_seconds: int = Field(default=60 * 60 * 24 * 7)

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)
    server_env: str = Field(default="development")

    # Redirect targets
    home_path: str = Field(default="/")
    protected_path: str = Field(default="/dashboard")

    # Optional AWS Secrets Manager secret holding flow credentials
    aws_secret_name: str | None = Field(default=None)
    aws_region: str = Field(default="us-east-2")

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def is_production(self) -> bool:
        return self.server_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Missing or invalid settings: {describe_validation_error(e)}") from e


@lru_cache(maxsize=1)
def get_aws_secrets() -> dict:
    """Fetch flow credentials from AWS Secrets Manager, if configured."""
    settings = get_settings()
    if not settings.aws_secret_name:
        return {}

    try:
        session = boto3.session.Session()
        client = session.client(
            service_name="secretsmanager",
            region_name=settings.aws_region,
        )
        response = client.get_secret_value(SecretId=settings.aws_secret_name)
        secrets = json.loads(response["SecretString"])
    except (BotoCoreError, ClientError, KeyError, ValueError) as e:
        logger.warning(f"Failed to fetch AWS secrets: {e}. Falling back to environment variables.")
        return {}

    # Keys are matched case-insensitively against flow settings
    return {str(k).upper(): v for k, v in secrets.items()}
