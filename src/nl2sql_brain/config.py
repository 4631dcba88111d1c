"""Application configuration loading and validation."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nl2sql_brain.models.catalog import DEFAULT_MODEL

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded safely."""


class ProviderType(str, Enum):
    """Closed set of supported AI backends."""

    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENAI_COMPATIBLE = "openai-compatible"


def _normalize_url(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().rstrip("/")
    return normalized or None


class LocalProviderConfig(BaseModel):
    """Settings for the in-process local inference backend."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["local"] = "local"
    model_id: str = DEFAULT_MODEL.id

    def validate_requirements(self) -> None:
        if not self.model_id.strip():
            raise ConfigError("A local model id is required.")


class _HostedProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: str | None = None
    model_id: str | None = None
    base_url: str | None = None

    default_base_url: ClassVar[str] = ""
    vendor_name: ClassVar[str] = ""

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str | None) -> str | None:
        return _normalize_url(value)

    @property
    def targets_default_endpoint(self) -> bool:
        return self.base_url is None or self.base_url == self.default_base_url

    def validate_requirements(self) -> None:
        """Hosted vendors need a key unless pointed at a self-hosted endpoint."""
        if self.targets_default_endpoint and not (self.api_key or "").strip():
            raise ConfigError(f"{self.vendor_name} API key is required.")


class OpenAIProviderConfig(_HostedProviderConfig):
    provider: Literal["openai"] = "openai"

    default_base_url: ClassVar[str] = DEFAULT_OPENAI_BASE_URL
    vendor_name: ClassVar[str] = "OpenAI"


class AnthropicProviderConfig(_HostedProviderConfig):
    provider: Literal["anthropic"] = "anthropic"

    default_base_url: ClassVar[str] = DEFAULT_ANTHROPIC_BASE_URL
    vendor_name: ClassVar[str] = "Anthropic"


class CompatibleProviderConfig(BaseModel):
    """Self-hosted endpoint speaking the OpenAI chat completions protocol."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["openai-compatible"] = "openai-compatible"
    base_url: str = ""
    model_id: str = ""
    api_key: str | None = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        return _normalize_url(value) or ""

    def validate_requirements(self) -> None:
        if not self.base_url or not self.model_id.strip():
            raise ConfigError(
                "Base URL and model id are required for OpenAI-compatible endpoints."
            )


ProviderConfig = Annotated[
    Union[
        LocalProviderConfig,
        OpenAIProviderConfig,
        AnthropicProviderConfig,
        CompatibleProviderConfig,
    ],
    Field(discriminator="provider"),
]


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderType = ProviderType.LOCAL
    local_model: str = DEFAULT_MODEL.id
    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_base_url: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    anthropic_base_url: str = ""
    compatible_base_url: str = ""
    compatible_model: str = ""
    compatible_api_key: str = ""
    schema_snapshot_path: Path = Path("./data/schema.json")
    log_level: str = "INFO"

    @field_validator("provider", mode="before")
    @classmethod
    def validate_provider(cls, value: str | ProviderType) -> ProviderType:
        if isinstance(value, ProviderType):
            return value
        try:
            return ProviderType(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(item.value for item in ProviderType)
            raise ValueError(f"must be one of: {choices}.") from exc

    @field_validator("openai_model", "anthropic_model", "local_model")
    @classmethod
    def validate_non_empty(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("value cannot be empty.")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"}:
            raise ValueError(f"unknown log level {value!r}.")
        return normalized

    @field_validator("schema_snapshot_path", mode="before")
    @classmethod
    def validate_schema_snapshot_path(cls, value: str | Path) -> Path:
        path = Path(value).expanduser() if isinstance(value, str) else value
        if not str(path):
            raise ValueError("SCHEMA_SNAPSHOT_PATH cannot be empty.")
        return path

    def provider_config(self, provider: ProviderType | None = None) -> ProviderConfig:
        """Build the tagged provider config for ``provider`` (default: active)."""
        target = provider or self.provider
        if target is ProviderType.LOCAL:
            return LocalProviderConfig(model_id=self.local_model)
        if target is ProviderType.OPENAI:
            return OpenAIProviderConfig(
                api_key=self.openai_api_key or None,
                model_id=self.openai_model,
                base_url=self.openai_base_url or None,
            )
        if target is ProviderType.ANTHROPIC:
            return AnthropicProviderConfig(
                api_key=self.anthropic_api_key or None,
                model_id=self.anthropic_model,
                base_url=self.anthropic_base_url or None,
            )
        return CompatibleProviderConfig(
            base_url=self.compatible_base_url,
            model_id=self.compatible_model,
            api_key=self.compatible_api_key or None,
        )


def _env_value(name: str, default: str | None = None) -> str | None:
    import os

    value = os.getenv(name, default)
    if value is None:
        return None
    return value.strip()


def load_settings() -> Settings:
    """Load settings from environment variables."""
    payload = {
        "provider": _env_value("NL2SQL_PROVIDER", ProviderType.LOCAL.value),
        "local_model": _env_value("NL2SQL_LOCAL_MODEL", DEFAULT_MODEL.id),
        "openai_api_key": _env_value("OPENAI_API_KEY", ""),
        "openai_model": _env_value("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        "openai_base_url": _env_value("OPENAI_BASE_URL", ""),
        "anthropic_api_key": _env_value("ANTHROPIC_API_KEY", ""),
        "anthropic_model": _env_value("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
        "anthropic_base_url": _env_value("ANTHROPIC_BASE_URL", ""),
        "compatible_base_url": _env_value("COMPATIBLE_BASE_URL", ""),
        "compatible_model": _env_value("COMPATIBLE_MODEL", ""),
        "compatible_api_key": _env_value("COMPATIBLE_API_KEY", ""),
        "schema_snapshot_path": _env_value(
            "SCHEMA_SNAPSHOT_PATH", "./data/schema.json"
        ),
        "log_level": _env_value("NL2SQL_LOG_LEVEL", "INFO"),
    }

    try:
        return Settings.model_validate(payload)
    except ValidationError as exc:
        messages = []
        for err in exc.errors():
            field = ".".join(str(item) for item in err["loc"])
            messages.append(f"- {field}: {err['msg']}")
        raise ConfigError(
            "Invalid configuration values:\n" + "\n".join(messages)
        ) from exc
