import logging
import os
import re
from typing import Any

import yaml
from pydantic import ValidationError

from core.schema.siaz_config_schema import SiazConfig
from exception import ConfigError

logger = logging.getLogger(__name__)

ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)(?::-([^\}]*))?\}")  # ${VAR_NAME:-default} or ${VAR_NAME}


class ConfigManager:

    @staticmethod
    def load_yaml_file(path: str) -> dict:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def parse_env_var_with_default(value: str) -> bool | int | float | str | None:
        match = ENV_VAR_PATTERN.fullmatch(value.strip())
        if not match:
            return value

        var_name = match.group(1)
        default_value = match.group(2)

        resolved_value = os.getenv(var_name) or default_value
        if resolved_value is not None:
            return ConfigManager._parse_value_by_type(resolved_value)
        return None

    @staticmethod
    def expand_env_vars(node: Any) -> Any:
        """Resolve `${VAR:-default}` in every string leaf of a loaded YAML tree."""
        if isinstance(node, dict):
            return {key: ConfigManager.expand_env_vars(value) for key, value in node.items()}
        if isinstance(node, list):
            return [ConfigManager.expand_env_vars(item) for item in node]
        if isinstance(node, str):
            return ConfigManager.parse_env_var_with_default(node)
        return node

    @staticmethod
    def load_siaz_config(config_path: str) -> SiazConfig:
        """Load, expand and validate the settings file"""
        try:
            raw_config = ConfigManager.expand_env_vars(ConfigManager.load_yaml_file(config_path))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {config_path}: {e}") from e

        try:
            config = SiazConfig(**raw_config)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {config_path}: {e}") from e

        logger.info(
            f"[Config] Loaded {config_path}: dry_run={config.dry_run}, "
            f"templates={sorted(config.templates)}"
        )
        return config

    @staticmethod
    def _parse_value_by_type(value: str) -> bool | int | float | str:
        if value.lower() in ["true", "false"]:
            return value.lower() == "true"
        if ConfigManager._is_int(value):
            return int(value)
        if ConfigManager._is_float(value):
            return float(value)
        return value

    @staticmethod
    def _is_int(value: str) -> bool:
        try:
            int(value)
            return True
        except ValueError:
            return False

    @staticmethod
    def _is_float(value: str) -> bool:
        try:
            float(value)
            return True
        except ValueError:
            return False
