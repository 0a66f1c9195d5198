#!/usr/bin/env python3
"""
Configuration manager for kopia-wrapper
Handles loading the YAML config, merging dotenv secrets and validating the result
"""
import os
import logging
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from models.settings import WrapperSettings
from services.command_template import TemplateSyntaxError, split_command_template

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/etc/kopia-wrapper/kopia-wrapper.yaml"
CONFIG_ENV_VAR = "KOPIA_WRAPPER_CONFIG"


class ConfigError(Exception):
    """Configuration could not be loaded or is invalid"""


def resolve_config_path(config_file: Optional[str] = None) -> Path:
    """Explicit path wins, then KOPIA_WRAPPER_CONFIG, then the system default"""
    raw = config_file or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE
    return Path(os.path.expanduser(raw))


class WrapperConfig:
    """Loads and validates the wrapper configuration in YAML format"""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = resolve_config_path(config_file)
        self.settings = self.load_config()

    def load_config(self) -> WrapperSettings:
        """Load YAML config, merge secrets and validate; any problem is a ConfigError"""
        raw = self._load_yaml()

        secrets_file = raw.get('secrets_file')
        if secrets_file:
            secrets = self._load_dotenv(self._relative_to_config(secrets_file), "secrets file")
            raw = self._merge_secrets(raw, secrets)

        try:
            settings = WrapperSettings.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.config_file}: {e}") from e

        if settings.kopia.environment_file:
            settings.kopia.environment_file = str(self._relative_to_config(settings.kopia.environment_file))

        # Catch template mistakes now rather than after the backup has run
        try:
            split_command_template(settings.notify.command)
        except TemplateSyntaxError as e:
            raise ConfigError(f"Invalid notify command in {self.config_file}: {e}") from e

        logger.debug("Loaded configuration from %s", self.config_file)
        return settings

    def kopia_environment(self) -> Dict[str, str]:
        """Environment variables kopia needs (repository password, config path, ...)"""
        env_file = self.settings.kopia.environment_file
        if not env_file:
            return {}
        return self._load_dotenv(Path(env_file), "kopia environment file")

    @property
    def lock_path(self) -> Path:
        """Lock target; defaults to the config file so each configuration runs alone"""
        if self.settings.lock_file:
            return self._relative_to_config(self.settings.lock_file)
        return self.config_file

    def _load_yaml(self) -> dict:
        if not self.config_file.is_file():
            raise ConfigError(f"Config file not found: {self.config_file}")

        try:
            content = self.config_file.read_text().strip()
        except OSError as e:
            raise ConfigError(f"Could not read config file {self.config_file}: {e}") from e

        if not content:
            return {}

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed YAML in {self.config_file}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_file} must contain a mapping at top level")
        return data

    def _load_dotenv(self, path: Path, what: str) -> Dict[str, str]:
        if not path.is_file():
            raise ConfigError(f"Missing {what}: {path}")
        try:
            values = dotenv_values(path)
        except OSError as e:
            raise ConfigError(f"Could not read {what} {path}: {e}") from e
        return {key: value for key, value in values.items() if value is not None}

    def _relative_to_config(self, value: str) -> Path:
        path = Path(os.path.expanduser(value))
        if not path.is_absolute():
            path = self.config_file.parent / path
        return path

    def _merge_secrets(self, config, secrets):
        """Merge secrets into config by replacing ${VAR} placeholders"""
        def replace_vars(obj):
            if isinstance(obj, str):
                for key, value in secrets.items():
                    obj = obj.replace(f"${{{key}}}", value)
                return obj
            elif isinstance(obj, dict):
                return {k: replace_vars(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [replace_vars(item) for item in obj]
            else:
                return obj

        return replace_vars(config)
