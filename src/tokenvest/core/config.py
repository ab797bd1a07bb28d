"""
Vesting Ledger Configuration Manager

Configuration sources, lowest to highest precedence:
- Built-in defaults
- Default config file (default.yaml / default.json)
- Environment-specific config file (development.yaml, production.yaml, ...)
- Environment variables (TOKENVEST_SECTION_KEY)
- Command-line overrides ("section.key" -> value)

The ``policy`` section pins the ledger behaviors that vesting deployments
disagree on: whether the owner may release on a beneficiary's behalf and
whether schedules may start in the past.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
ENV_PREFIX = "TOKENVEST_"


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass
class LedgerPolicy:
    """Behavioral switches of a vesting ledger"""
    owner_can_release: bool = False
    allow_past_start: bool = True
    require_funding: bool = True
    default_slice_interval: int = 1

    def validate(self):
        """Validate ledger policy"""
        if self.default_slice_interval < 1:
            raise ConfigurationError(
                f"Invalid default_slice_interval: {self.default_slice_interval}. Must be >= 1"
            )


@dataclass
class StorageConfig:
    """Storage configuration settings"""
    data_dir: str = "~/.tokenvest"
    database_file: str = "ledger.db"

    def validate(self):
        if not self.data_dir:
            raise ConfigurationError("data_dir cannot be empty")
        if not self.database_file:
            raise ConfigurationError("database_file cannot be empty")

    @property
    def database_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.database_file


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    log_file: str = ""
    enable_console: bool = True
    json_format: bool = True

    def validate(self):
        """Validate logging configuration"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")


SECTIONS = {
    "policy": LedgerPolicy,
    "storage": StorageConfig,
    "logging": LoggingConfig,
}


class ConfigManager:
    """
    Loads, merges and validates ledger configuration.

    Usage:
        config = ConfigManager(environment="production")
        ledger = VestingLedger(token, owner, policy=config.policy)
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize Configuration Manager

        Args:
            environment: Environment name (development/production/test)
            config_dir: Directory containing config files
            cli_overrides: Command-line argument overrides
        """
        load_dotenv()

        self.environment = self._determine_environment(environment)
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = cli_overrides or {}

        self.policy: LedgerPolicy = LedgerPolicy()
        self.storage: StorageConfig = StorageConfig()
        self.logging: LoggingConfig = LoggingConfig()

        self._raw_config: Dict[str, Any] = {}

        self._load_configuration()

    def _determine_environment(self, environment: Optional[str]) -> Environment:
        if environment:
            env_str = environment.lower()
        else:
            env_str = os.getenv(f"{ENV_PREFIX}ENVIRONMENT", "development").lower()

        env_mapping = {
            "dev": Environment.DEVELOPMENT,
            "development": Environment.DEVELOPMENT,
            "prod": Environment.PRODUCTION,
            "production": Environment.PRODUCTION,
            "test": Environment.TEST,
            "testing": Environment.TEST,
        }

        return env_mapping.get(env_str, Environment.DEVELOPMENT)

    def _load_configuration(self):
        """Load configuration from all sources with proper precedence"""
        default_config = self._load_config_file("default")
        env_config = self._load_config_file(self.environment.value)

        merged_config = self._merge_configs(default_config, env_config)
        merged_config = self._apply_env_variables(merged_config)
        merged_config = self._apply_cli_overrides(merged_config)

        self._raw_config = merged_config

        self._parse_configuration(merged_config)
        self._validate_configuration()

        logger.debug(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "environment": self.environment.value,
                "config_dir": str(self.config_dir),
            }
        )

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        """
        Load configuration from YAML or JSON file

        Args:
            filename: Config filename (without extension)

        Returns:
            Configuration dictionary
        """
        yaml_path = self.config_dir / f"{filename}.yaml"
        if yaml_path.exists():
            with open(yaml_path, 'r') as f:
                return yaml.safe_load(f) or {}

        json_path = self.config_dir / f"{filename}.json"
        if json_path.exists():
            with open(json_path, 'r') as f:
                return json.load(f)

        return {}

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides (TOKENVEST_*)

        Example:
        TOKENVEST_POLICY_OWNER_CAN_RELEASE=true
        TOKENVEST_STORAGE_DATA_DIR=/var/lib/tokenvest
        """
        result = {key: dict(value) if isinstance(value, dict) else value
                  for key, value in config.items()}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            if key == f"{ENV_PREFIX}ENVIRONMENT":
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_")
            if len(parts) < 2:
                continue

            section = parts[0]
            config_key = "_".join(parts[1:])
            if section not in SECTIONS:
                continue

            if not isinstance(result.get(section), dict):
                result[section] = {}
            result[section][config_key] = self._parse_env_value(value)

        return result

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool]:
        """Parse environment variable value to appropriate type"""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _apply_cli_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply command-line overrides given as "section.key" paths"""
        result = config.copy()

        for key, value in self.cli_overrides.items():
            parts = key.split(".")

            if len(parts) == 1:
                result[key] = value
            elif len(parts) == 2:
                section, config_key = parts
                if not isinstance(result.get(section), dict):
                    result[section] = {}
                else:
                    result[section] = dict(result[section])
                result[section][config_key] = value

        return result

    def _parse_configuration(self, config: Dict[str, Any]):
        """Parse configuration into typed objects"""
        for section, section_cls in SECTIONS.items():
            raw = config.get(section) or {}
            known = {f.name for f in fields(section_cls)}
            unknown = sorted(set(raw) - known)
            if unknown:
                raise ConfigurationError(
                    f"Unknown {section} setting(s): {', '.join(unknown)}"
                )
            setattr(self, section, section_cls(**raw))

        # int/bool coercion for values that arrived as strings
        policy = self.policy
        policy.default_slice_interval = int(policy.default_slice_interval)
        for flag in ("owner_can_release", "allow_past_start", "require_funding"):
            value = getattr(policy, flag)
            if isinstance(value, str):
                setattr(policy, flag, self._parse_env_value(value) is True)

    def _validate_configuration(self):
        """Validate all configuration sections"""
        self.policy.validate()
        self.storage.validate()
        self.logging.validate()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Configuration key (e.g., "policy.owner_can_release")
            default: Default value if key not found
        """
        section, _, name = key.partition(".")
        section_obj = self.to_dict().get(section)
        if not name:
            return section_obj if section_obj is not None else default
        if isinstance(section_obj, dict) and name in section_obj:
            return section_obj[name]
        return default

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration to dictionary"""
        return {
            "environment": self.environment.value,
            "policy": asdict(self.policy),
            "storage": asdict(self.storage),
            "logging": asdict(self.logging),
        }


def load_policy(environment: Optional[str] = None, config_dir: Optional[str] = None) -> LedgerPolicy:
    """Shortcut returning only the ledger policy section."""
    return ConfigManager(environment=environment, config_dir=config_dir).policy
