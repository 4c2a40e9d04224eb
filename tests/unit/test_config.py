"""Tests for domain-specific configuration."""

import pytest
from pydantic import SecretStr, ValidationError

from novabot.core.config import Settings
from novabot.core.settings import AppConfig, ChannelConfig, DatabaseConfig, SearchConfig
from tests.conftest import make_store_config


def make_settings(**overrides: object) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


class TestAppConfig:
    """AppConfig frozen immutability and property tests."""

    def test_frozen_immutability(self) -> None:
        config = AppConfig(
            name="bot", env="development", debug=True, timezone="America/Mexico_City"
        )
        with pytest.raises(ValidationError):
            config.name = "changed"  # type: ignore[misc]

    def test_environment_flags(self) -> None:
        config = AppConfig(
            name="bot", env="production", debug=False, timezone="America/Mexico_City"
        )
        assert config.is_production is True
        assert config.is_development is False


class TestDatabaseConfig:
    def test_mysql_gets_charset(self) -> None:
        config = DatabaseConfig(url=SecretStr("mysql+aiomysql://u:p@db/nova"))
        assert config.async_url == "mysql+aiomysql://u:p@db/nova?charset=utf8mb4"
        assert config.is_sqlite is False

    def test_sqlite_untouched(self) -> None:
        config = DatabaseConfig(url=SecretStr("sqlite+aiosqlite:///./x.db"))
        assert config.async_url == "sqlite+aiosqlite:///./x.db"
        assert config.is_sqlite is True


class TestChannelConfig:
    def test_token_url_defaults_to_multi_tenant(self) -> None:
        config = make_settings(microsoft_app_id="app").channel
        assert config.is_configured is True
        assert config.token_url == (
            "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
        )

    def test_without_app_id(self) -> None:
        assert make_settings(microsoft_app_id="").channel.is_configured is False


class TestSearchConfig:
    def test_needs_endpoint_and_key(self) -> None:
        config = make_settings(search_endpoint="https://s.example.net").search
        assert isinstance(config, SearchConfig)
        assert config.is_configured is False

        config = make_settings(
            search_endpoint="https://s.example.net", search_api_key="k"
        ).search
        assert config.is_configured is True


class TestStoreConfig:
    def test_rejects_unknown_strategy(self) -> None:
        with pytest.raises(ValidationError):
            make_store_config(upsert_strategy="optimistic")


class TestSettings:
    """Flat fields map onto grouped configs."""

    def test_defaults(self) -> None:
        settings = make_settings()

        assert settings.identity.valid_flag_value == 0
        assert settings.identity.default_num_ri == "7"
        assert settings.store.retention_days == 90
        assert settings.store.upsert_strategy == "auto"
        assert settings.redis.session_ttl_hours == 0
        assert settings.app.timezone == "America/Mexico_City"

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_HISTORY_LIMIT", "7")
        monkeypatch.setenv("LLM_PROVIDER", "anthropic")
        monkeypatch.setenv("IDENTITY_VALID_FLAG_VALUE", "1")

        settings = make_settings()

        assert settings.store.history_limit == 7
        assert settings.llm.provider == "anthropic"
        assert settings.identity.valid_flag_value == 1

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("llm_provider", "cohere"),
            ("store_retention_days", 0),
            ("search_top_k", 50),
            ("port", 70000),
        ],
    )
    def test_invalid_values(self, field: str, value: object) -> None:
        with pytest.raises(ValidationError):
            make_settings(**{field: value})
