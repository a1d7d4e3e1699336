"""
Field Resolver Module.

Maps human readable Jira field names (e.g., "Test Type") to the opaque field
IDs Jira uses internally (e.g., "customfield_12100").

Jira does not consistently capitalize field names, so resolution is
case-insensitive. The full field list is fetched from Jira at most once per
resolver and reused for every later lookup.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from xray_sync.jira_client.jira_client import FieldDescriptor


class FieldListSource(Protocol):
    """Anything that can list the fields of a Jira instance."""

    def get_fields(self) -> Optional[List[FieldDescriptor]]:
        ...


class JiraFieldError(Exception):
    """Base class for field resolution failures."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field_name = field_name


class FieldFetchError(JiraFieldError):
    """Raised when the field list of the Jira instance could not be retrieved."""

    def __init__(self, field_name: str) -> None:
        super().__init__(
            field_name,
            f"Failed to fetch Jira field ID for field with name: {field_name}\n"
            f"Could not fetch field list",
        )


class UnknownFieldError(JiraFieldError):
    """
    Raised when no field with the requested name exists.

    Attributes:
        available_fields: (name, id) pairs of every known field.
    """

    def __init__(
        self,
        field_name: str,
        available_fields: Sequence[Tuple[str, str]],
        option_name: Optional[str] = None,
    ) -> None:
        self.available_fields = list(available_fields)
        lines = [
            f"Failed to fetch Jira field ID for field with name: {field_name}",
            "Make sure the field actually exists and that your Jira language "
            "settings did not modify the field's name",
        ]
        if self.available_fields:
            lines.append("")
            lines.append("Available fields:")
            lines.extend(f"  name: {name}, id: {id_}" for name, id_ in self.available_fields)
        lines.append("")
        lines.append("You can provide field IDs directly without relying on language settings:")
        lines.append("")
        lines.append(_override_hint(option_name or field_name, "<id>"))
        super().__init__(field_name, "\n".join(lines))


class AmbiguousFieldError(JiraFieldError):
    """
    Raised when several fields share the requested name.

    Attributes:
        duplicates: Descriptors of all fields with the requested name.
    """

    def __init__(
        self,
        field_name: str,
        duplicates: Sequence[FieldDescriptor],
        option_name: Optional[str] = None,
    ) -> None:
        self.duplicates = list(duplicates)
        suggestions = " or ".join(f'"{d.id}"' for d in self.duplicates)
        lines = [
            f"Failed to fetch Jira field ID for field with name: {field_name}",
            "There are multiple fields with this name",
            "",
            "Duplicates:",
        ]
        lines.extend(f"  {d.describe()}" for d in self.duplicates)
        lines.append("")
        lines.append("You can provide field IDs in the options:")
        lines.append("")
        lines.append(_override_hint(option_name or field_name, f"<id>  # {suggestions}"))
        super().__init__(field_name, "\n".join(lines))


def _override_hint(option_name: str, value: str) -> str:
    """Render the configuration snippet that pins a field ID."""
    return "\n".join([
        "  jira:",
        "    fields:",
        f"      {option_name}: {value}",
    ])


class FieldResolver:
    """
    Resolves field names to field IDs with a process-lifetime cache.

    Usage::

        resolver = FieldResolver(jira_client)
        resolver.resolve("Summary")    # "summary"
        resolver.resolve("test type")  # "customfield_12100"

    Thread Safety:
        The field list fetch is guarded by a lock, so concurrent first calls
        trigger exactly one request.
    """

    def __init__(self, source: FieldListSource) -> None:
        """
        Initialize the resolver.

        Args:
            source: Client providing the Jira field list.
        """
        self._source = source
        self._fields: Optional[List[FieldDescriptor]] = None
        self._ids: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def fields(self) -> Optional[List[FieldDescriptor]]:
        """The fetched field list, or None if it was not fetched yet."""
        return self._fields

    def resolve(self, name: str, option_name: Optional[str] = None) -> str:
        """
        Resolve a field name to its ID.

        Args:
            name: Field display name, compared case-insensitively.
            option_name: Configuration option used in remediation hints.

        Returns:
            The field ID.

        Raises:
            FieldFetchError: If Jira returned no field list.
            UnknownFieldError: If no field has this name.
            AmbiguousFieldError: If several fields have this name.
        """
        lowered = name.lower()
        if lowered in self._ids:
            return self._ids[lowered]

        fields = self._load_fields(name)
        matches = [f for f in fields if f.name.lower() == lowered]
        if not matches:
            raise UnknownFieldError(
                name,
                [(f.name, f.id) for f in fields],
                option_name=option_name,
            )
        if len(matches) > 1:
            raise AmbiguousFieldError(name, matches, option_name=option_name)

        self._cache_unique_names(fields)
        logger.debug(f"Resolved Jira field '{name}' -> {matches[0].id}")
        return matches[0].id

    def _load_fields(self, name: str) -> List[FieldDescriptor]:
        """Return the field list, fetching it on first use."""
        with self._lock:
            if self._fields is None:
                logger.debug("Fetching Jira field list")
                fields = self._source.get_fields()
                if fields is None:
                    raise FieldFetchError(name)
                self._fields = list(fields)
                logger.info(f"Fetched {len(self._fields)} Jira fields")
            return self._fields

    def _cache_unique_names(self, fields: List[FieldDescriptor]) -> None:
        """Cache the IDs of every field whose name is unique."""
        counts: Dict[str, int] = {}
        for f in fields:
            counts[f.name.lower()] = counts.get(f.name.lower(), 0) + 1
        for f in fields:
            if counts[f.name.lower()] == 1:
                self._ids[f.name.lower()] = f.id
