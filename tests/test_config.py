"""
Tests for config.py
"""

from config import _id_list_env, _int_env


class TestEnvParsing:

    def test_id_list(self, monkeypatch):
        monkeypatch.setenv("RELAY_ADMIN_IDS", "11, 22,,-33")
        assert _id_list_env("RELAY_ADMIN_IDS") == [11, 22, -33]

    def test_id_list_unset(self, monkeypatch):
        monkeypatch.delenv("RELAY_ADMIN_IDS", raising=False)
        assert _id_list_env("RELAY_ADMIN_IDS") == []

    def test_int_default_on_blank(self, monkeypatch):
        monkeypatch.setenv("WARNING_LIMIT", "  ")
        assert _int_env("WARNING_LIMIT", 3) == 3
