"""
Shared fixtures for the powindex test suite.
"""

import pytest

from powindex.core.settings import load_config
from factories import NOW


@pytest.fixture(scope="session")
def config():
    """Packaged default configuration."""
    return load_config()


@pytest.fixture
def classifier_config(config):
    return config.classifier


@pytest.fixture
def github_config(config):
    return config.github


@pytest.fixture
def clock():
    """Fixed 'now' for scoring and ingestion windows."""
    return lambda: NOW


@pytest.fixture(autouse=True)
def no_provider_credentials(monkeypatch):
    """Tests never pick up real classifier or GitHub credentials from the environment."""
    for env in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY",
                "OPENROUTER_API_KEY", "GITHUB_TOKEN", "POWINDEX_CONFIG_PATH",
                "POWINDEX_MONTHS_BACK", "POWINDEX_STORE_DIR"):
        monkeypatch.delenv(env, raising=False)
