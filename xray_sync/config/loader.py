"""
Configuration Loader Module.

Loads xray-sync configuration files:
- YAML and JSON files.
- Schema validation using JSON Schema.
- Migration of older configuration formats.
- Credentials from environment variables.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from loguru import logger

from xray_sync.config.schema_registry import SchemaRegistry
from xray_sync.config.settings import SyncConfig
from xray_sync.config.version_compat import VersionCompatManager

CONFIG_SCHEMA = "xray_sync_config_schema"

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "XRAY_SYNC_JIRA_URL": ("jira", "url"),
    "XRAY_SYNC_JIRA_TOKEN": ("jira", "api_token"),
    "XRAY_SYNC_JIRA_USERNAME": ("jira", "username"),
    "XRAY_SYNC_JIRA_PASSWORD": ("jira", "password"),
    "XRAY_SYNC_XRAY_CLIENT_ID": ("xray", "client_id"),
    "XRAY_SYNC_XRAY_CLIENT_SECRET": ("xray", "client_secret"),
}


class ConfigurationError(Exception):
    """Raised when a configuration file is invalid or cannot be loaded."""


class ConfigLoader:
    """
    Configuration loader with schema validation and backward compatibility.

    Attributes:
        config_dir: Base directory for configuration files.
        schema_registry: Registry of JSON schemas for validation.
        version_manager: Handles version-aware migrations.
    """

    SUPPORTED_EXTENSIONS = {".yaml", ".yml", ".json"}

    def __init__(
        self,
        config_dir: str | Path = ".",
        schema_dir: str | Path | None = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory searched for relative configuration paths.
            schema_dir: Directory containing JSON schema files.
                        Defaults to the schemas bundled with xray-sync.
            environ: Environment used for credential overrides (default: os.environ).
        """
        self.config_dir = Path(config_dir)
        self.schema_registry = SchemaRegistry(schema_dir)
        self.version_manager = VersionCompatManager()
        self.environ = os.environ if environ is None else environ
        self._cache: Dict[str, Dict[str, Any]] = {}

        logger.debug(f"ConfigLoader initialized, config_dir={self.config_dir}")

    def load(
        self,
        filename: str | Path,
        schema_name: Optional[str] = CONFIG_SCHEMA,
        *,
        validate: bool = True,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Load a configuration file.

        Args:
            filename: Name or path of the configuration file.
            schema_name: JSON schema to validate against (without extension).
            validate: Whether to validate against the schema.
            use_cache: Whether to use a cached result if available.

        Returns:
            Parsed configuration, with environment overrides applied.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        file_path = self._resolve_path(filename)
        cache_key = str(file_path.resolve())

        if use_cache and cache_key in self._cache:
            logger.debug(f"Returning cached config for: {filename}")
            return self._cache[cache_key]

        logger.info(f"Loading configuration: {file_path}")
        data = self._read_file(file_path)
        data = self.version_manager.migrate(data)
        self._apply_env_overrides(data)

        if validate and schema_name:
            self._validate(data, schema_name)

        if use_cache:
            self._cache[cache_key] = data

        logger.debug(f"Configuration loaded successfully: {filename}")
        return data

    def load_sync_config(self, filename: str | Path = "xray_sync.yaml") -> SyncConfig:
        """
        Load the typed configuration of a synchronization run.

        Raises:
            ConfigurationError: If the file cannot be loaded or fails validation.
        """
        data = self.load(filename)
        try:
            return SyncConfig.from_dict(data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration {filename}: {e}") from e

    def clear_cache(self) -> None:
        """Clear all cached configurations."""
        self._cache.clear()

    def _resolve_path(self, filename: str | Path) -> Path:
        """Resolve a filename, checking config_dir before the current directory."""
        path = Path(filename)
        if path.is_absolute():
            if path.exists():
                return path
        else:
            config_path = self.config_dir / path
            if config_path.exists():
                return config_path
            if path.exists():
                return path

        raise ConfigurationError(
            f"Configuration file not found: {filename} "
            f"(searched in {self.config_dir} and current directory)"
        )

    def _read_file(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse a YAML or JSON file."""
        suffix = file_path.suffix.lower()
        if suffix not in self.SUPPORTED_EXTENSIONS:
            raise ConfigurationError(
                f"Unsupported file format '{suffix}'. "
                f"Supported: {sorted(self.SUPPORTED_EXTENSIONS)}"
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read file {file_path}: {e}") from e

        try:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping (dict), "
                f"got {type(data).__name__}: {file_path}"
            )

        return data

    def _apply_env_overrides(self, data: Dict[str, Any]) -> None:
        for variable, (section, key) in ENV_OVERRIDES.items():
            value = self.environ.get(variable)
            if value:
                target = data.setdefault(section, {})
                if isinstance(target, dict):
                    target[key] = value
                    logger.debug(f"Using {variable} for {section}.{key}")

    def _validate(self, data: Dict[str, Any], schema_name: str) -> None:
        """Validate configuration data against a JSON schema."""
        try:
            self.schema_registry.validate(data, schema_name)
        except Exception as e:
            raise ConfigurationError(
                f"Configuration validation failed against schema '{schema_name}': {e}"
            ) from e
