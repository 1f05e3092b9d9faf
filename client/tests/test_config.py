"""Tests for environment-driven settings."""

import pytest

from client.config import Settings, _env_bool, _env_int, settings


class TestEnvHelpers:
    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", " yes ", "on"])
    def test_bool_truthy(self, monkeypatch, raw):
        monkeypatch.setenv("SOME_FLAG", raw)
        assert _env_bool("SOME_FLAG", False) is True

    @pytest.mark.parametrize("raw", ["0", "false", "no", ""])
    def test_bool_falsy(self, monkeypatch, raw):
        monkeypatch.setenv("SOME_FLAG", raw)
        assert _env_bool("SOME_FLAG", True) is False

    def test_bool_default(self, monkeypatch):
        monkeypatch.delenv("SOME_FLAG", raising=False)
        assert _env_bool("SOME_FLAG", True) is True

    def test_int(self, monkeypatch):
        monkeypatch.setenv("SOME_SIZE", "42")
        assert _env_int("SOME_SIZE", 1) == 42

    def test_int_blank_uses_default(self, monkeypatch):
        monkeypatch.setenv("SOME_SIZE", "  ")
        assert _env_int("SOME_SIZE", 7) == 7

    def test_int_invalid_raises(self, monkeypatch):
        monkeypatch.setenv("SOME_SIZE", "lots")
        with pytest.raises(ValueError):
            _env_int("SOME_SIZE", 7)


class TestSettings:
    def test_singleton_is_settings(self):
        assert isinstance(settings, Settings)
        assert settings.OUTBOX_MAX_SIZE >= 1

    def test_known_settings(self):
        names = {name for name in vars(Settings) if name.isupper()}
        assert names == {"LOG_LEVEL", "SWEEP_UNSEEN_WIDGETS", "OUTBOX_MAX_SIZE"}
