"""
Tests for CoreConfig validation and environment loading.
"""
import pytest
from pydantic import ValidationError

from volkpass.conf import CoreConfig


class TestCoreConfig:
    """Tests for defaults and validation."""

    def test_defaults(self):
        config = CoreConfig()
        assert config.totp_digits == 6
        assert config.backup_code_min_length == 8
        assert config.backup_code_max_length == 10
        assert config.max_second_factor_attempts is None
        assert config.generator_default_length == 16

    @pytest.mark.parametrize("field,value", [
        ("totp_digits", 5),
        ("totp_digits", 9),
        ("generator_default_length", 7),
        ("generator_default_length", 33),
        ("collaborator_timeout", 0),
        ("max_second_factor_attempts", 0),
    ])
    def test_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            CoreConfig(**{field: value})

    def test_inverted_backup_code_bounds(self):
        with pytest.raises(ValidationError):
            CoreConfig(backup_code_min_length=12, backup_code_max_length=10)

    def test_frozen(self):
        config = CoreConfig()
        with pytest.raises(ValidationError):
            config.totp_digits = 8


class TestFromEnv:
    """Tests for VOLKPASS_* environment loading."""

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("VOLKPASS_TOTP_DIGITS", "8")
        monkeypatch.setenv("VOLKPASS_MAX_SECOND_FACTOR_ATTEMPTS", "5")
        monkeypatch.setenv("VOLKPASS_COLLABORATOR_TIMEOUT", "2.5")
        config = CoreConfig.from_env()
        assert config.totp_digits == 8
        assert config.max_second_factor_attempts == 5
        assert config.collaborator_timeout == 2.5
        assert config.recovery_token_ttl == 86400

    def test_empty_attempts_means_unlimited(self, monkeypatch):
        monkeypatch.setenv("VOLKPASS_MAX_SECOND_FACTOR_ATTEMPTS", "")
        assert CoreConfig.from_env().max_second_factor_attempts is None

    def test_invalid_value(self, monkeypatch):
        monkeypatch.setenv("VOLKPASS_TOTP_DIGITS", "six")
        with pytest.raises(ValidationError):
            CoreConfig.from_env()
