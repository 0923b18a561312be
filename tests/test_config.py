"""Tests for settings loading."""

import os

import pytest
from pydantic import ValidationError

from omi_sync_mcp.config import DEFAULT_BASE_URL, Config


class TestConfig:
    def test_defaults(self, monkeypatch):
        for key in list(os.environ):
            if key.startswith("OMI_"):
                monkeypatch.delenv(key)

        config = Config()

        assert config.base_url == DEFAULT_BASE_URL
        assert config.page_size == 100
        assert config.max_retries == 5
        assert config.page_delay == 0.5
        assert config.folder_path == "Omi Conversations"
        assert not config.vault_dir.startswith("~")

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OMI_API_KEY", "secret")
        monkeypatch.setenv("OMI_INCLUDE_TRANSCRIPT", "false")
        monkeypatch.setenv("OMI_FOLDER_PATH", "/Omi/")

        config = Config()

        assert config.api_key == "secret"
        assert config.include_transcript is False
        assert config.folder_path == "Omi"

    def test_invalid_start_date(self):
        with pytest.raises(ValidationError):
            Config(start_date="2025/01/01")
