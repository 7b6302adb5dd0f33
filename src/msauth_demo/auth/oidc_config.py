"""Per-flow identity provider configuration."""

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from pydantic import Field, ValidationError
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from msauth_demo.config import ConfigurationError, describe_validation_error, get_aws_secrets

MICROSOFT_AUTHORITY = "https://login.microsoftonline.com"
GRAPH_ME_ENDPOINT = "https://graph.microsoft.com/v1.0/me"


class AWSSecretsSource(PydanticBaseSettingsSource):
    """Reads flow settings from the optional AWS Secrets Manager secret."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        prefix = self.config.get("env_prefix", "")
        value = get_aws_secrets().get(f"{prefix}{field_name}".upper())
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                data[key] = value
        return data


class FlowConfig(BaseSettings, ABC):
    """Settings shared by every flow. Immutable once loaded.

    Abstract: each flow subclass supplies its own ``authority``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    client_id: str = Field(..., min_length=1)
    redirect_uri: str

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over AWS Secrets Manager
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            AWSSecretsSource(settings_cls),
        )

    @property
    @abstractmethod
    def authority(self) -> str:
        """Issuer base URL the OAuth2 endpoints hang off."""

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"


class OAuth2Config(FlowConfig):
    model_config = SettingsConfigDict(env_prefix="OAUTH2_")

    client_secret: str = Field(..., min_length=1)
    tenant_id: str = "common"
    redirect_uri: str = "http://localhost:8000/auth/oauth2/callback"

    @property
    def authority(self) -> str:
        return f"{MICROSOFT_AUTHORITY}/{self.tenant_id}"


class B2CConfig(FlowConfig):
    """Azure AD B2C tenant and user-flow policy."""

    model_config = SettingsConfigDict(env_prefix="B2C_")

    client_secret: str = Field(..., min_length=1)
    tenant_name: str = Field(..., min_length=1)
    policy_name: str = "B2C_1_signupsignin1"
    redirect_uri: str = "http://localhost:8000/auth/b2c/callback"

    @property
    def authority(self) -> str:
        return (
            f"https://{self.tenant_name}.b2clogin.com/"
            f"{self.tenant_name}.onmicrosoft.com/{self.policy_name}"
        )


class EntraConfig(FlowConfig):
    """Entra ID public client. PKCE replaces the client secret."""

    model_config = SettingsConfigDict(env_prefix="ENTRA_")

    tenant_id: str = "common"
    redirect_uri: str = "http://localhost:8000/auth/entra/callback"

    @property
    def authority(self) -> str:
        return f"{MICROSOFT_AUTHORITY}/{self.tenant_id}"


def _load(config_cls: type[FlowConfig]) -> FlowConfig:
    try:
        return config_cls()
    except ValidationError as e:
        prefix = config_cls.model_config.get("env_prefix", "")
        raise ConfigurationError(
            f"{config_cls.__name__} is incomplete; set {prefix}* variables: {describe_validation_error(e)}"
        ) from e


@lru_cache
def get_oauth2_config() -> OAuth2Config:
    return _load(OAuth2Config)


@lru_cache
def get_b2c_config() -> B2CConfig:
    return _load(B2CConfig)


@lru_cache
def get_entra_config() -> EntraConfig:
    return _load(EntraConfig)
