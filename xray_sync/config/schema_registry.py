"""
Schema Registry Module.

Manages the JSON schemas configuration files are validated against.
Schemas are loaded lazily from a directory on disk and checked with jsonschema.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import jsonschema
from loguru import logger

BUNDLED_SCHEMA_DIR = Path(__file__).parent / "schemas"


class SchemaValidationError(Exception):
    """Raised when a configuration fails schema validation."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class SchemaRegistry:
    """
    Registry of JSON schemas used to validate configuration files.

    Attributes:
        schema_dir: Directory containing JSON schema files.
    """

    def __init__(self, schema_dir: str | Path | None = None) -> None:
        self.schema_dir = Path(schema_dir) if schema_dir else BUNDLED_SCHEMA_DIR
        self._schemas: Dict[str, Dict[str, Any]] = {}
        logger.debug(f"SchemaRegistry initialized, schema_dir={self.schema_dir}")

    def get_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Retrieve a JSON schema by name, loading it from disk if not cached.

        Args:
            schema_name: Schema identifier (filename without .json extension).

        Raises:
            FileNotFoundError: If the schema file does not exist.
            SchemaValidationError: If the schema file is not valid JSON.
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self.schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(
                f"Schema not found: {schema_name} (expected at {schema_path})"
            )

        try:
            schema = json.loads(schema_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SchemaValidationError(f"Failed to load schema {schema_name}: {e}") from e

        self._schemas[schema_name] = schema
        logger.debug(f"Schema loaded: {schema_name}")
        return schema

    def validate(self, data: Dict[str, Any], schema_name: str) -> None:
        """
        Validate a configuration mapping against a named schema.

        Raises:
            SchemaValidationError: If validation fails, listing every error.
        """
        validator = jsonschema.Draft7Validator(self.get_schema(schema_name))
        errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))

        if errors:
            error_messages = []
            for error in errors:
                path = " -> ".join(str(p) for p in error.absolute_path) or "(root)"
                error_messages.append(f"  [{path}] {error.message}")
            raise SchemaValidationError(
                f"Schema validation failed for '{schema_name}' "
                f"({len(errors)} error(s)):\n" + "\n".join(error_messages),
                errors=error_messages,
            )

        logger.debug(f"Validation passed: {schema_name}")

    def list_schemas(self) -> list[str]:
        """List all schema names available in the schema directory."""
        if not self.schema_dir.exists():
            return []
        return sorted(f.stem for f in self.schema_dir.glob("*.json") if f.is_file())
