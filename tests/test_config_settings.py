"""
Tests for validated settings in config.py
"""

import pytest

import config


class TestPositiveIntSetting:

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("DEADLINE_EXTENSION_HOURS", raising=False)
        assert config.positive_int_setting("DEADLINE_EXTENSION_HOURS", "2") == 2

    def test_environment_value(self, monkeypatch):
        monkeypatch.setenv("DEADLINE_EXTENSION_HOURS", "3")
        assert config.positive_int_setting("DEADLINE_EXTENSION_HOURS", "2") == 3

    @pytest.mark.parametrize("raw", ["0", "-2", "two"])
    def test_invalid_value_stops_startup(self, monkeypatch, capsys, raw):
        monkeypatch.setenv("DEADLINE_EXTENSION_HOURS", raw)

        with pytest.raises(SystemExit) as exc_info:
            config.positive_int_setting("DEADLINE_EXTENSION_HOURS", "2")

        assert exc_info.value.code == 1
        assert "Invalid DEADLINE_EXTENSION_HOURS" in capsys.readouterr().err

    def test_loaded_lifecycle_settings_are_positive(self):
        assert config.DEADLINE_EXTENSION_HOURS > 0
        assert config.CHATROOM_WINDOW_HOURS > 0
        assert config.EXTENSIONS_PER_PHASE > 0
