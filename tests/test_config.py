"""
Tests for configuration validation
"""

import pytest

from toxintel import config


def test_summary_hides_api_key(monkeypatch):
    """Test the summary reports only whether a key is set."""
    monkeypatch.setattr(config, "ANALYSIS_API_KEY", "secret-key")

    summary = config.get_config_summary()
    assert summary["analysis"]["api_key_set"] is True
    assert "secret-key" not in str(summary)


def test_missing_key_invalid_when_analysis_enabled(monkeypatch):
    monkeypatch.setattr(config, "ANALYSIS_API_KEY", "")
    monkeypatch.setattr(config, "USE_ANALYSIS", True)

    valid, msg = config.validate_config()
    assert not valid
    assert "ANALYSIS_API_KEY" in msg


def test_missing_key_valid_when_analysis_disabled(monkeypatch):
    monkeypatch.setattr(config, "ANALYSIS_API_KEY", "")
    monkeypatch.setattr(config, "USE_ANALYSIS", False)

    assert config.validate_config() == (True, "Configuration valid")


@pytest.mark.parametrize("name", ["BATCH_SIZE", "MAX_RETRIES"])
def test_non_positive_limits_invalid(monkeypatch, name):
    monkeypatch.setattr(config, "USE_ANALYSIS", False)
    monkeypatch.setattr(config, name, 0)

    valid, _ = config.validate_config()
    assert not valid


def test_empty_self_tokens_invalid(monkeypatch):
    monkeypatch.setattr(config, "USE_ANALYSIS", False)
    monkeypatch.setattr(config, "SELF_TOKENS", frozenset())

    valid, msg = config.validate_config()
    assert not valid
    assert "SELF_TOKENS" in msg
