"""Tests for environment settings and provider configs."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from nl2sql_brain.config import (
    AnthropicProviderConfig,
    CompatibleProviderConfig,
    ConfigError,
    LocalProviderConfig,
    OpenAIProviderConfig,
    ProviderType,
    Settings,
    load_settings,
)


def test_defaults(clean_env):
    settings = load_settings()

    assert settings.provider is ProviderType.LOCAL
    assert settings.local_model == "phi-3.5-mini-instruct-q4"
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.schema_snapshot_path == Path("./data/schema.json")
    assert settings.log_level == "INFO"


def test_environment_overrides(clean_env):
    clean_env.setenv("NL2SQL_PROVIDER", " Anthropic ")
    clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    clean_env.setenv("ANTHROPIC_MODEL", "claude-3-5-haiku-20241022")
    clean_env.setenv("NL2SQL_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.provider is ProviderType.ANTHROPIC
    assert settings.anthropic_api_key == "sk-ant-test"
    assert settings.log_level == "DEBUG"


def test_invalid_values_are_listed(clean_env):
    clean_env.setenv("NL2SQL_PROVIDER", "mainframe")
    clean_env.setenv("OPENAI_MODEL", "   ")

    with pytest.raises(ConfigError) as excinfo:
        load_settings()

    message = str(excinfo.value)
    assert "- provider: " in message
    assert "local, openai, anthropic, openai-compatible" in message
    assert "- openai_model: " in message


def test_provider_enum_passes_through():
    assert Settings(provider=ProviderType.OPENAI_COMPATIBLE).provider is ProviderType.OPENAI_COMPATIBLE


class TestProviderConfig:
    def test_active_provider_config(self):
        settings = Settings(provider="openai", openai_api_key="sk-test")
        config = settings.provider_config()

        assert isinstance(config, OpenAIProviderConfig)
        assert config.api_key == "sk-test"
        assert config.base_url is None

    def test_each_variant(self):
        settings = Settings(
            compatible_base_url="http://localhost:8080/v1/",
            compatible_model="qwen2.5",
        )

        assert settings.provider_config() == LocalProviderConfig()
        assert isinstance(settings.provider_config(ProviderType.ANTHROPIC), AnthropicProviderConfig)
        compatible = settings.provider_config(ProviderType.OPENAI_COMPATIBLE)
        assert compatible == CompatibleProviderConfig(
            base_url="http://localhost:8080/v1", model_id="qwen2.5"
        )

    def test_empty_key_becomes_none(self):
        config = Settings(provider="anthropic").provider_config()
        assert config.api_key is None
        with pytest.raises(ConfigError, match="Anthropic API key is required"):
            config.validate_requirements()


class TestRequirements:
    def test_self_hosted_openai_endpoint_without_key(self):
        OpenAIProviderConfig(base_url="http://localhost:8000/v1").validate_requirements()

    def test_default_endpoint_needs_key(self):
        with pytest.raises(ConfigError):
            OpenAIProviderConfig(base_url="https://api.openai.com/v1/").validate_requirements()

    def test_blank_key_is_missing(self):
        with pytest.raises(ConfigError):
            OpenAIProviderConfig(api_key="   ").validate_requirements()

    def test_compatible_needs_url_and_model(self):
        with pytest.raises(ConfigError, match="Base URL and model id"):
            CompatibleProviderConfig(base_url="http://x", model_id=" ").validate_requirements()

    def test_local_needs_model(self):
        with pytest.raises(ConfigError):
            LocalProviderConfig(model_id="").validate_requirements()

    def test_configs_are_frozen(self):
        config = OpenAIProviderConfig(api_key="sk-test")
        with pytest.raises(ValidationError):
            config.api_key = "other"
