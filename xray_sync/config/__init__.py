"""
Configuration Module.

Loading, validation and migration of xray-sync configuration files.
"""

from xray_sync.config.loader import ConfigLoader, ConfigurationError
from xray_sync.config.schema_registry import SchemaRegistry, SchemaValidationError
from xray_sync.config.settings import (
    CucumberSettings,
    FieldIds,
    FieldNames,
    JiraSettings,
    SyncConfig,
    XraySettings,
)
from xray_sync.config.version_compat import VersionCompatManager

__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "SchemaRegistry",
    "SchemaValidationError",
    "CucumberSettings",
    "FieldIds",
    "FieldNames",
    "JiraSettings",
    "SyncConfig",
    "XraySettings",
    "VersionCompatManager",
]
