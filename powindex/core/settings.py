# powindex/core/settings.py
"""
Configuration settings for the profile pipeline.
Loads the packaged YAML defaults, merges an optional user file, and exposes
environment-driven settings such as credentials and the ingestion window.
"""

import os
import logging
from pathlib import Path
from typing import Optional

from omegaconf import OmegaConf, DictConfig
from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "default.yaml"


def load_config(config_path: Optional[str] = None) -> DictConfig:
    """
    Load pipeline configuration.

    Args:
        config_path: Optional YAML file merged on top of the packaged defaults

    Returns:
        Merged OmegaConf configuration
    """
    config = OmegaConf.load(DEFAULT_CONFIG_PATH)

    if config_path:
        user_path = Path(config_path)
        if not user_path.exists():
            raise FileNotFoundError(f"Config file not found: {user_path}")
        try:
            config = OmegaConf.merge(config, OmegaConf.load(user_path))
            logger.info(f"Loaded configuration overrides from {user_path}")
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ValueError(f"Invalid configuration file: {e}")

    return config


class PowIndexSettings(BaseSettings):
    """Environment settings for the pipeline and its HTTP service."""

    github_token: Optional[str] = Field(default=None, validation_alias="GITHUB_TOKEN")
    config_path: Optional[str] = Field(default=None, validation_alias="POWINDEX_CONFIG_PATH")
    months_back: int = Field(default=12, ge=1, le=60, validation_alias="POWINDEX_MONTHS_BACK")
    store_dir: Optional[str] = Field(default=None, validation_alias="POWINDEX_STORE_DIR")
    log_level: str = Field(default="INFO", validation_alias="POWINDEX_LOG_LEVEL")

    _config: Optional[DictConfig] = PrivateAttr(default=None)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "populate_by_name": True,
    }

    def __init__(self, **kwargs):
        """Initialize settings and load the YAML configuration."""
        super().__init__(**kwargs)
        self._config = load_config(self.config_path)
        if self.store_dir:
            self._config.storage.directory = self.store_dir

    @property
    def config(self) -> DictConfig:
        """Get the merged pipeline configuration."""
        return self._config

    def get_storage_dir(self) -> str:
        return self._config.storage.directory

    def validate_environment(self) -> dict:
        """Report missing credentials without raising."""
        validation_results = {
            'valid': True,
            'missing': [],
            'warnings': []
        }

        if not self.github_token:
            validation_results['missing'].append('GITHUB_TOKEN')
            validation_results['valid'] = False

        providers = self._config.classifier.providers
        key_envs = [providers[name].api_key_env for name in self._config.classifier.provider_priority
                    if name in providers]
        if not any(os.getenv(env) for env in key_envs):
            validation_results['missing'].append(' or '.join(key_envs))
            validation_results['valid'] = False

        return validation_results
