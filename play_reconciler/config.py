"""Configuration management - loads reconciler.yaml and environment overrides.

Secrets and per-deployment values can be supplied through the environment
instead of the YAML file; see ENV_OVERRIDES.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from play_reconciler.models.settings import (
    AuditConfig,
    ProviderConfig,
    PubSubConfig,
    PushConfig,
    ReconcilerConfig,
    SecurityConfig,
    SweepConfig,
    WebhookConfig,
)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "PLAY_SERVICE_ACCOUNT_FILE": ("provider", "service_account_file"),
    "PUBSUB_PROJECT_ID": ("pubsub", "project_id"),
    "PUBSUB_SUBSCRIPTION": ("pubsub", "subscription"),
    "RTDN_VERIFICATION_TOKEN": ("webhook", "verification_token"),
    "FIREBASE_CREDENTIALS_FILE": ("security", "firebase_credentials_file"),
    "STRICT_IDENTITY_CHECK": ("security", "strict_identity_check"),
}


def apply_env_overrides(raw_config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay set, non-empty ENV_OVERRIDES variables onto the raw YAML mapping."""
    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if not value:
            continue
        if not isinstance(raw_config.get(section), dict):
            raw_config[section] = {}
        raw_config[section][field] = value
    return raw_config


class Config:
    """Application configuration loader and manager.

    Loads reconciler.yaml and provides validated access to:
    - Provider (Play Developer API) settings
    - Pub/Sub and webhook settings
    - Sweep, push and security policy
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to reconciler.yaml. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/reconciler.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[ReconcilerConfig] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/reconciler.yaml")

    def _load_config(self) -> None:
        """Load and validate reconciler.yaml."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/reconciler.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self._config_path}")

        try:
            self._settings = ReconcilerConfig(**apply_env_overrides(raw_config))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}")

    @property
    def settings(self) -> ReconcilerConfig:
        """Get validated configuration."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def default_package_name(self) -> str:
        """Get default Android package name."""
        return self.settings.provider.default_package_name

    @property
    def provider(self) -> ProviderConfig:
        return self.settings.provider

    @property
    def pubsub(self) -> PubSubConfig:
        return self.settings.pubsub

    @property
    def webhook(self) -> WebhookConfig:
        return self.settings.webhook

    @property
    def sweep(self) -> SweepConfig:
        return self.settings.sweep

    @property
    def push(self) -> PushConfig:
        return self.settings.push

    @property
    def security(self) -> SecurityConfig:
        return self.settings.security

    @property
    def audit(self) -> AuditConfig:
        return self.settings.audit

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()


def reset_config() -> None:
    """Drop the global configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
