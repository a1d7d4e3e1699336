"""
Version Compatibility Manager.

Migrates configuration files written for older xray-sync releases to the
current format, so that existing files keep working after an upgrade.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple

from loguru import logger

# (config_data) -> config_data
MigrationFunc = Callable[[Dict[str, Any]], Dict[str, Any]]


class VersionCompatManager:
    """
    Applies registered migrations to bring a configuration to the current version.

    Example:
        manager = VersionCompatManager()

        @manager.register_migration("1.0.0", "1.1.0")
        def migrate(config):
            config.setdefault("xray", {})
            return config
    """

    CURRENT_VERSION = "1.0.0"

    def __init__(self) -> None:
        self._migrations: List[Tuple[str, str, MigrationFunc]] = []
        self._register_builtin_migrations()

    def register_migration(
        self, from_version: str, to_version: str
    ) -> Callable[[MigrationFunc], MigrationFunc]:
        """
        Decorator registering a migration function.

        Args:
            from_version: Source schema version (semver string).
            to_version: Target schema version (semver string).
        """

        def decorator(func: MigrationFunc) -> MigrationFunc:
            self._migrations.append((from_version, to_version, func))
            self._migrations.sort(key=lambda m: self._version_tuple(m[0]))
            logger.debug(f"Registered migration: {from_version} -> {to_version}")
            return func

        return decorator

    def migrate(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply all migrations needed to reach the current version.

        A configuration without schema_version is assumed to be current.
        """
        current_version = config.get("schema_version")

        if current_version is None:
            logger.debug("No schema_version found, assuming current version.")
            config["schema_version"] = self.CURRENT_VERSION
            return config

        current_version = str(current_version)
        if current_version == self.CURRENT_VERSION:
            return config

        logger.info(f"Migrating config from v{current_version} to v{self.CURRENT_VERSION}")

        for from_ver, to_ver, migration_func in self._migrations:
            if self._applies(from_ver, to_ver, current_version):
                logger.debug(f"Applying migration: {from_ver} -> {to_ver}")
                try:
                    config = migration_func(config)
                    config["schema_version"] = to_ver
                except Exception as e:
                    logger.error(f"Migration {from_ver} -> {to_ver} failed: {e}")
                    raise

        return config

    def get_migration_path(self, from_version: str) -> List[Tuple[str, str]]:
        """Return the (from, to) pairs applied when migrating from a version."""
        return [
            (from_ver, to_ver)
            for from_ver, to_ver, _ in self._migrations
            if self._applies(from_ver, to_ver, from_version)
        ]

    def _applies(self, from_ver: str, to_ver: str, version: str) -> bool:
        return (
            self._version_tuple(from_ver) >= self._version_tuple(version)
            and self._version_tuple(to_ver) <= self._version_tuple(self.CURRENT_VERSION)
        )

    def _register_builtin_migrations(self) -> None:
        """Register the migrations of known format changes."""

        @self.register_migration("0.1.0", "1.0.0")
        def _migrate_0_1_to_1_0(config: Dict[str, Any]) -> Dict[str, Any]:
            """
            Changes:
            - Field overrides were objects ``{id: ..., name: ...}``. IDs are now
              plain values of jira.fields, names moved to jira.field_names.
            - Renamed jira.fields.testType to jira.fields.test_type.
            """
            jira = config.get("jira") or {}
            fields = jira.get("fields")
            if not isinstance(fields, dict):
                return config

            if "testType" in fields and "test_type" not in fields:
                fields["test_type"] = fields.pop("testType")
                logger.debug("Migrated jira.fields.testType -> test_type")

            for name, value in list(fields.items()):
                if not isinstance(value, dict):
                    continue
                if value.get("name"):
                    jira.setdefault("field_names", {})[name] = value["name"]
                    logger.debug(f"Moved jira.fields.{name}.name to jira.field_names.{name}")
                if value.get("id"):
                    fields[name] = value["id"]
                    logger.debug(f"Flattened jira.fields.{name}")
                else:
                    del fields[name]

            return config

    @staticmethod
    def _version_tuple(version_str: str) -> Tuple[int, ...]:
        """Convert a semver string to a comparable tuple of ints."""
        try:
            return tuple(int(part) for part in version_str.split("."))
        except (ValueError, AttributeError):
            logger.warning(f"Invalid version string: {version_str}, treating as (0, 0, 0)")
            return (0, 0, 0)
