"""
Issue Metadata Repository Module.

Caches per-issue values of the semantic fields the synchronization needs
(summary, description, labels, test type). Each field family has its own
cache and its own failure isolation: a misconfigured test type field never
prevents summaries from being retrieved.

The repository is the error boundary of the metadata layer. Field resolution
and fetching raise, the public getters log the failure and return whatever
subset of values is known.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Generic, Iterable, List, Mapping, Optional, TypeVar

from loguru import logger

from xray_sync.repository.fetching import (
    OBJECT_VALUE_EXTRACTOR,
    STRING_EXTRACTOR,
    STRING_LIST_EXTRACTOR,
    FieldExtractor,
    IssueFieldFetcher,
)
from xray_sync.repository.fields import FieldResolver

T = TypeVar("T")


class IssueFieldCache(Generic[T]):
    """
    Values of one field keyed by issue key.

    A key is present only if its value was fetched and parsed successfully.
    Entries are never evicted.
    """

    def __init__(self) -> None:
        self._values: Dict[str, T] = {}

    def missing(self, issue_keys: Iterable[str]) -> List[str]:
        """Return the keys without a cached value, in request order."""
        seen = set()
        missing = []
        for key in issue_keys:
            if key not in self._values and key not in seen:
                missing.append(key)
                seen.add(key)
        return missing

    def merge(self, values: Mapping[str, T]) -> None:
        """Add fetched values to the cache."""
        self._values.update(values)

    def select(self, issue_keys: Iterable[str]) -> Dict[str, T]:
        """Return the cached values of the given keys, skipping unknown keys."""
        return {key: self._values[key] for key in issue_keys if key in self._values}

    def __contains__(self, issue_key: object) -> bool:
        return issue_key in self._values

    def __len__(self) -> int:
        return len(self._values)


@dataclass(frozen=True)
class FieldSpec(Generic[T]):
    """
    Describes how one semantic field is resolved and parsed.

    Attributes:
        label: Plural name used in log messages (e.g., "summaries").
        field_name: Jira display name used for ID resolution.
        option_name: Configuration key of the field ID override.
        extractor: Extractor validating the raw values.
        missing_hint: Advice shown for issues that could not be resolved.
    """

    label: str
    field_name: str
    option_name: str
    extractor: FieldExtractor[T]
    missing_hint: str = "Make sure these issues exist"


SUMMARY = FieldSpec("summaries", "summary", "summary", STRING_EXTRACTOR)
DESCRIPTION = FieldSpec("descriptions", "description", "description", STRING_EXTRACTOR)
LABELS = FieldSpec("labels", "labels", "labels", STRING_LIST_EXTRACTOR)
TEST_TYPE = FieldSpec(
    "test types",
    "test type",
    "test_type",
    OBJECT_VALUE_EXTRACTOR,
    missing_hint="Make sure these issues exist and are test issues",
)


@dataclass
class FetchOutcome(Generic[T]):
    """
    Internal result of one getter call.

    Attributes:
        values: Values known for the requested keys after the call.
        error: The resolution or fetch failure, if any.
        unresolved: Requested keys that still have no value.
    """

    values: Dict[str, T] = field(default_factory=dict)
    error: Optional[Exception] = None
    unresolved: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.unresolved


class IssueMetadataRepository:
    """
    Serves issue summaries, descriptions, labels and test types from caches,
    fetching only the values not cached yet.

    Usage::

        repository = IssueMetadataRepository(
            resolver=FieldResolver(jira_client),
            fetcher=IssueFieldFetcher(jira_client),
            field_ids={"test_type": "customfield_12100"},
        )
        summaries = repository.get_summaries("CYP-1", "CYP-2")
    """

    def __init__(
        self,
        resolver: FieldResolver,
        fetcher: IssueFieldFetcher,
        field_ids: Optional[Mapping[str, str]] = None,
        field_names: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Initialize the repository.

        Args:
            resolver: Resolver for field names without an explicit ID.
            fetcher: Fetcher used to retrieve missing values.
            field_ids: Field ID overrides keyed by option name
                ("summary", "description", "labels", "test_type").
            field_names: Display names to resolve instead of the default
                ones, keyed by option name.
        """
        self._resolver = resolver
        self._fetcher = fetcher
        self._field_ids = {k: v for k, v in (field_ids or {}).items() if v}
        self._field_names = {k: v for k, v in (field_names or {}).items() if v}
        self._summaries: IssueFieldCache[str] = IssueFieldCache()
        self._descriptions: IssueFieldCache[str] = IssueFieldCache()
        self._labels: IssueFieldCache[List[str]] = IssueFieldCache()
        self._test_types: IssueFieldCache[str] = IssueFieldCache()

    # ------------------------------------------------------------------
    # Public getters
    # ------------------------------------------------------------------

    def get_summaries(self, *issue_keys: str) -> Dict[str, str]:
        """Return the summaries of the given issues that could be retrieved."""
        return self._report(SUMMARY, self.merge_remaining_fields(SUMMARY, self._summaries, issue_keys))

    def get_descriptions(self, *issue_keys: str) -> Dict[str, str]:
        """Return the descriptions of the given issues that could be retrieved."""
        return self._report(
            DESCRIPTION,
            self.merge_remaining_fields(DESCRIPTION, self._descriptions, issue_keys),
        )

    def get_labels(self, *issue_keys: str) -> Dict[str, List[str]]:
        """Return the labels of the given issues that could be retrieved."""
        labels = self._report(LABELS, self.merge_remaining_fields(LABELS, self._labels, issue_keys))
        return {key: list(value) for key, value in labels.items()}

    def get_test_types(self, *issue_keys: str) -> Dict[str, str]:
        """Return the test types (e.g., "Cucumber") of the given issues."""
        return self._report(
            TEST_TYPE,
            self.merge_remaining_fields(TEST_TYPE, self._test_types, issue_keys),
        )

    def field_id(self, spec: FieldSpec) -> str:
        """
        Return the ID of a semantic field, preferring configured overrides.

        Without an ID override, the configured display name (or the default
        one) is resolved.

        Raises:
            JiraFieldError: If the ID must be resolved and resolution fails.
        """
        override = self._field_ids.get(spec.option_name)
        if override:
            return override
        name = self._field_names.get(spec.option_name, spec.field_name)
        return self._resolver.resolve(name, option_name=spec.option_name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def merge_remaining_fields(
        self,
        spec: FieldSpec[T],
        cache: IssueFieldCache[T],
        issue_keys: Iterable[str],
    ) -> FetchOutcome[T]:
        """
        Fetch the values missing from a cache and merge them in.

        Never raises: resolution and fetch failures are returned in the outcome.
        """
        requested = list(issue_keys)
        outcome: FetchOutcome[T] = FetchOutcome()
        missing = cache.missing(requested)
        if missing:
            logger.debug(f"Fetching issue {spec.label} for: {', '.join(missing)}")
            try:
                fetched = self._fetcher.fetch(self.field_id(spec), spec.extractor, missing)
                cache.merge({key: value for key, value in fetched.items() if key in missing})
            except Exception as e:
                outcome.error = e
        outcome.values = cache.select(requested)
        outcome.unresolved = [key for key in dict.fromkeys(requested) if key not in cache]
        return outcome

    @staticmethod
    def _report(spec: FieldSpec[T], outcome: FetchOutcome[T]) -> Dict[str, T]:
        """Log a failed outcome and return its partial values."""
        if outcome.ok:
            return outcome.values

        sections = [f"Failed to fetch issue {spec.label}"]
        if outcome.error is not None:
            sections.append(str(outcome.error))
        if outcome.unresolved:
            sections.append(
                f"{spec.missing_hint}:\n\n"
                + "\n".join(f"  {key}" for key in outcome.unresolved)
            )
        logger.error("\n\n".join(sections))
        return outcome.values
