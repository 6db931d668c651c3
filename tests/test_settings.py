"""
Tests for configuration loading and environment settings.
"""

import pytest

from powindex.core.settings import PowIndexSettings, load_config


class TestLoadConfig:

    def test_packaged_defaults(self):
        config = load_config()
        assert config.github.per_page == 100
        assert list(config.classifier.provider_priority) == ["openai", "anthropic", "gemini", "openrouter"]
        assert config.progress.ttl_seconds == 300

    def test_user_file_merged(self, tmp_path):
        override = tmp_path / "override.yaml"
        override.write_text("github:\n  max_pages: 3\nprogress:\n  ttl_seconds: 60\n")

        config = load_config(str(override))

        assert config.github.max_pages == 3
        assert config.github.per_page == 100
        assert config.progress.ttl_seconds == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))


class TestSettings:

    def test_environment_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
        monkeypatch.setenv("POWINDEX_MONTHS_BACK", "6")
        monkeypatch.setenv("POWINDEX_STORE_DIR", str(tmp_path))

        settings = PowIndexSettings(_env_file=None)

        assert settings.github_token == "gh-token"
        assert settings.months_back == 6
        assert settings.get_storage_dir() == str(tmp_path)

    def test_months_back_bounds(self, monkeypatch):
        monkeypatch.setenv("POWINDEX_MONTHS_BACK", "0")
        with pytest.raises(ValueError):
            PowIndexSettings(_env_file=None)

    def test_validate_environment_reports_missing(self):
        result = PowIndexSettings(_env_file=None).validate_environment()
        assert result['valid'] is False
        assert 'GITHUB_TOKEN' in result['missing']
        assert any('OPENAI_API_KEY' in item for item in result['missing'])

    def test_validate_environment_ok(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "gh")
        monkeypatch.setenv("GEMINI_API_KEY", "gm")
        assert PowIndexSettings(_env_file=None).validate_environment()['valid'] is True
