"""
Issue Field Fetcher Module.

Retrieves the value of a single Jira field for a batch of issues and checks
each value against the expected shape.

Field values arrive as untyped JSON. Extractors turn them into typed values
and report unparseable ones as a ParseFailure instead of raising, so that
every problematic issue can be collected before the fetch fails as a whole.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, TypeVar, Union

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """A successfully extracted field value."""

    value: T


@dataclass(frozen=True)
class ParseFailure:
    """A field value that does not have the expected shape."""

    reason: str


ExtractResult = Union[Parsed[T], ParseFailure]


@dataclass(frozen=True)
class FieldExtractor(Generic[T]):
    """
    Converts a raw JSON field value into a typed value.

    Attributes:
        expected_type: Human readable description used in error messages.
        function: Pure function mapping the raw value to Parsed or ParseFailure.
    """

    expected_type: str
    function: Callable[[Any], "ExtractResult[T]"]

    def __call__(self, value: Any) -> "ExtractResult[T]":
        return self.function(value)


def _extract_string(value: Any) -> "ExtractResult[str]":
    if isinstance(value, str):
        return Parsed(value)
    return ParseFailure("expected a string")


def _extract_string_list(value: Any) -> "ExtractResult[List[str]]":
    if isinstance(value, list) and all(isinstance(element, str) for element in value):
        return Parsed(list(value))
    return ParseFailure("expected an array of strings")


def _extract_object_value(value: Any) -> "ExtractResult[str]":
    # customfield_12100: {"value": "Cucumber", "id": "12702", "disabled": false}
    if isinstance(value, dict) and isinstance(value.get("value"), str):
        return Parsed(value["value"])
    return ParseFailure("expected an object with a string value property")


STRING_EXTRACTOR: FieldExtractor[str] = FieldExtractor("a string", _extract_string)
STRING_LIST_EXTRACTOR: FieldExtractor[List[str]] = FieldExtractor(
    "an array of strings", _extract_string_list
)
OBJECT_VALUE_EXTRACTOR: FieldExtractor[str] = FieldExtractor(
    "an object with a value property", _extract_object_value
)


class FieldParseError(Exception):
    """
    Raised when issues carry field values the extractor cannot interpret.

    Attributes:
        field_id: ID of the field that was fetched.
        failures: Mapping of issue key to raw JSON value, for every offending issue.
    """

    def __init__(self, field_id: str, expected_type: str, failures: Dict[str, str]) -> None:
        self.field_id = field_id
        self.failures = dict(sorted(failures.items()))
        lines = [f"{key}: {raw}" for key, raw in self.failures.items()]
        super().__init__(
            f"Failed to parse Jira field with ID: {field_id}\n"
            f"Expected the field to be: {expected_type}\n"
            f"Make sure the correct field is present on the following issues:\n\n"
            + "\n".join(f"  {line}" for line in lines)
        )


class IssueSearcher(Protocol):
    """Anything that can search Jira issues via JQL."""

    def search(self, jql: str, fields: List[str]) -> Optional[List[Dict[str, Any]]]:
        ...


def build_issue_jql(issue_keys: List[str], project_key: Optional[str] = None) -> str:
    """
    Build the JQL selecting the given issues.

    Args:
        issue_keys: Issue keys to select.
        project_key: Optionally restrict the query to a project.

    Returns:
        JQL string, e.g. "project = CYP AND issue in (CYP-1,CYP-2)".
    """
    jql = f"issue in ({','.join(issue_keys)})"
    if project_key:
        jql = f"project = {project_key} AND {jql}"
    return jql


def _raw(value: Any) -> str:
    """Compact JSON representation of a raw value for error messages."""
    try:
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    except (TypeError, ValueError):
        return repr(value)


class IssueFieldFetcher:
    """
    Fetches one field of many issues with a single batched search.

    Usage::

        fetcher = IssueFieldFetcher(jira_client)
        summaries = fetcher.fetch("summary", STRING_EXTRACTOR, ["CYP-1", "CYP-2"])
        # {"CYP-1": "Login works", "CYP-2": "Logout works"}
    """

    def __init__(self, searcher: IssueSearcher, project_key: Optional[str] = None) -> None:
        """
        Initialize the fetcher.

        Args:
            searcher: Client used to run JQL searches.
            project_key: Optional project restriction for all searches.
        """
        self._searcher = searcher
        self._project_key = project_key

    def fetch(
        self,
        field_id: str,
        extractor: FieldExtractor[T],
        issue_keys: List[str],
    ) -> Dict[str, T]:
        """
        Fetch and type-check a field for the given issues.

        Args:
            field_id: ID of the field to fetch.
            extractor: Extractor validating each raw value.
            issue_keys: Keys of the issues to fetch the field for.

        Returns:
            Mapping of issue key to extracted value. Issues Jira did not return
            are absent. Empty if the search returned no data.

        Raises:
            FieldParseError: If any returned issue has no key or an unparseable value.
        """
        if not issue_keys:
            return {}

        issues = self._searcher.search(
            build_issue_jql(issue_keys, self._project_key),
            fields=[field_id],
        )
        if issues is None:
            logger.debug(f"Search for field {field_id} returned no data")
            return {}

        results: Dict[str, T] = {}
        failures: Dict[str, str] = {}
        for issue in issues:
            key = issue.get("key") if isinstance(issue, dict) else None
            if not key:
                failures[f"Unknown issue #{len(failures) + 1}"] = _raw(issue)
                continue
            raw_value = (issue.get("fields") or {}).get(field_id)
            extracted = extractor(raw_value)
            if isinstance(extracted, ParseFailure):
                failures[key] = _raw(raw_value)
            else:
                results[key] = extracted.value

        if failures:
            raise FieldParseError(field_id, extractor.expected_type, failures)

        logger.debug(f"Fetched field {field_id} for {len(results)}/{len(issue_keys)} issues")
        return results
