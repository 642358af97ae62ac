"""Tests for runtime settings."""

import pytest
from pydantic import ValidationError

from native_vault.config import VaultSettings, load_settings


def test_defaults():
    settings = VaultSettings()
    assert settings.command_timeout == 3.0
    assert settings.list_timeout == 6.0
    assert settings.probe_timeout == 1.0
    assert settings.max_concurrent_lookups == 4
    assert settings.strict_reads is True
    assert settings.log_level == "WARNING"


def test_environment_overrides():
    settings = load_settings(
        {
            "NATIVE_VAULT_COMMAND_TIMEOUT": "5",
            "NATIVE_VAULT_STRICT_READS": "false",
            "NATIVE_VAULT_LOG_LEVEL": "debug",
            "NATIVE_VAULT_UNKNOWN": "ignored",
            "PATH": "/usr/bin",
        }
    )
    assert settings.command_timeout == 5.0
    assert settings.strict_reads is False
    assert settings.log_level == "DEBUG"


def test_keyword_overrides_win_over_environment():
    settings = load_settings(
        {"NATIVE_VAULT_MAX_CONCURRENT_LOOKUPS": "8"}, max_concurrent_lookups=2
    )
    assert settings.max_concurrent_lookups == 2


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("NATIVE_VAULT_LIST_TIMEOUT", "12.5")
    assert load_settings().list_timeout == 12.5


@pytest.mark.parametrize(
    "overrides",
    [
        {"command_timeout": 0},
        {"probe_timeout": -1},
        {"max_concurrent_lookups": 0},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        load_settings({}, **overrides)


def test_invalid_environment_value_rejected():
    with pytest.raises(ValidationError):
        load_settings({"NATIVE_VAULT_COMMAND_TIMEOUT": "soon"})
