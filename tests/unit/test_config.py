"""Tests for configuration validation."""

import pytest

from tasksync.core.config import Settings, constants


def test_require_credential_with_valid_value() -> None:
    """Test require_credential returns value when credential is set."""
    settings = Settings(resend_api_key="re_123")

    assert settings.require_credential("resend_api_key", "Resend") == "re_123"


def test_require_credential_with_none_raises_error() -> None:
    """Test require_credential raises ValueError when credential is None."""
    settings = Settings(supabase_service_role_key=None)

    with pytest.raises(ValueError, match="Supabase service role credential not configured"):
        settings.require_credential("supabase_service_role_key", "Supabase service role")


def test_require_credential_with_empty_string_raises_error() -> None:
    """Test require_credential raises ValueError when credential is empty."""
    settings = Settings(resend_api_key="")

    with pytest.raises(ValueError, match="RESEND_API_KEY"):
        settings.require_credential("resend_api_key", "Resend")


def test_remote_store_follows_supabase_url() -> None:
    """Test the local cache is the system of record unless Supabase is configured."""
    assert Settings(supabase_url=None).has_remote_store is False
    assert Settings(supabase_url="https://example.supabase.co").has_remote_store is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test settings are read from environment variables."""
    monkeypatch.setenv("SYNC_COALESCE_SECONDS", "0.5")
    monkeypatch.setenv("LOCAL_CACHE_PATH", "/tmp/cache.db")

    settings = Settings()

    assert settings.sync_coalesce_seconds == 0.5
    assert settings.local_cache_path == "/tmp/cache.db"


def test_storage_keys() -> None:
    """Test the persisted keys keep their established names."""
    assert (
        constants.STORAGE_KEY_TASKS,
        constants.STORAGE_KEY_REWARD_TIERS,
        constants.STORAGE_KEY_MONTHLY_TARGET,
        constants.STORAGE_KEY_USER_POINTS,
    ) == ("tasks", "rewardTiers", "monthlyTarget", "userPoints")
