"""Unit tests for SDK configuration.

Tests defaults, validation, derived endpoints and environment loading.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from box_platform_sdk.config import (
    AppAuthConfig,
    BoxConfig,
    EventsConfig,
    RetryConfig,
)


class TestBoxConfig:
    """Tests for BoxConfig."""

    def test_defaults(self) -> None:
        config = BoxConfig(client_id="id", client_secret="secret")

        assert config.api_root_url == "https://api.box.com"
        assert config.expired_buffer_ms == 180_000
        assert config.stale_buffer_ms == 0
        assert config.retry.num_max_retries == 5
        assert config.retry.retry_interval_ms == 2000
        assert config.events.max_dedup_size == 5000
        assert config.app_auth is None

    def test_derived_urls(self) -> None:
        config = BoxConfig(
            client_id="id",
            client_secret="secret",
            api_root_url="https://api.example.com/",
        )

        assert config.api_base_url == "https://api.example.com/2.0"
        assert config.upload_base_url == "https://upload.box.com/api/2.0"
        assert config.token_url == "https://api.example.com/oauth2/token"
        assert config.revoke_url == "https://api.example.com/oauth2/revoke"
        assert config.authorize_url == "https://account.box.com/api/oauth2/authorize"

    def test_token_expiration_buffer_is_larger_buffer(self) -> None:
        config = BoxConfig(
            client_id="id",
            client_secret="secret",
            expired_buffer_ms=1000,
            stale_buffer_ms=5000,
        )

        assert config.token_expiration_buffer_ms == 5000

    def test_empty_client_secret_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BoxConfig(client_id="id", client_secret="")

    def test_empty_client_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BoxConfig(client_id="", client_secret="secret")

    def test_config_is_frozen(self) -> None:
        config = BoxConfig(client_id="id", client_secret="secret")

        with pytest.raises(ValidationError):
            config.client_id = "other"  # type: ignore[misc]

    def test_with_overrides_returns_new_validated_config(self) -> None:
        config = BoxConfig(client_id="id", client_secret="secret")

        updated = config.with_overrides(enterprise_id="42")

        assert updated.enterprise_id == "42"
        assert config.enterprise_id is None
        with pytest.raises(ValidationError):
            config.with_overrides(timeout=-1)

    def test_secret_not_in_repr(self) -> None:
        config = BoxConfig(client_id="id", client_secret="super-secret")

        assert "super-secret" not in repr(config)


class TestFromEnv:
    def test_loads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOX_CLIENT_ID", "env-id")
        monkeypatch.setenv("BOX_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("BOX_ENTERPRISE_ID", "123")
        monkeypatch.setenv("BOX_NUM_MAX_RETRIES", "2")

        config = BoxConfig.from_env()

        assert config.client_id == "env-id"
        assert config.client_secret.get_secret_value() == "env-secret"
        assert config.enterprise_id == "123"
        assert config.retry.num_max_retries == 2

    def test_missing_client_id(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BOX_CLIENT_ID", raising=False)

        with pytest.raises(ValueError, match="BOX_CLIENT_ID"):
            BoxConfig.from_env()


class TestRetryConfig:
    def test_first_retry_delay_within_jitter(self) -> None:
        config = RetryConfig(retry_interval_ms=1000)

        for _ in range(50):
            assert 500 <= config.get_delay_ms(1) <= 1500

    def test_delay_doubles_per_attempt(self) -> None:
        config = RetryConfig(retry_interval_ms=1000)

        for _ in range(50):
            assert 1000 <= config.get_delay_ms(2) <= 3000

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(num_max_retries=-1)


class TestAppAuthConfig:
    def test_unsupported_algorithm(self) -> None:
        with pytest.raises(ValidationError, match="Unsupported app auth algorithm"):
            AppAuthConfig(key_id="k", private_key="pem", algorithm="HS256")

    def test_expiration_time_bounds(self) -> None:
        with pytest.raises(ValidationError):
            AppAuthConfig(key_id="k", private_key="pem", expiration_time=61)


class TestEventsConfig:
    def test_dedup_size_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            EventsConfig(max_dedup_size=0)
