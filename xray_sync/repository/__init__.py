"""
Jira Metadata Repository Module.

Provides cached access to Jira metadata:
- Field name to field ID resolution.
- Batched, type-checked retrieval of field values.
- Per-field issue value caches with isolated failure handling.
"""

from xray_sync.repository.fetching import (
    OBJECT_VALUE_EXTRACTOR,
    STRING_EXTRACTOR,
    STRING_LIST_EXTRACTOR,
    FieldExtractor,
    FieldParseError,
    IssueFieldFetcher,
    ParseFailure,
    Parsed,
)
from xray_sync.repository.fields import (
    AmbiguousFieldError,
    FieldFetchError,
    FieldResolver,
    JiraFieldError,
    UnknownFieldError,
)
from xray_sync.repository.issues import (
    LABELS,
    SUMMARY,
    IssueFieldCache,
    IssueMetadataRepository,
)

__all__ = [
    "OBJECT_VALUE_EXTRACTOR",
    "STRING_EXTRACTOR",
    "STRING_LIST_EXTRACTOR",
    "FieldExtractor",
    "FieldParseError",
    "IssueFieldFetcher",
    "ParseFailure",
    "Parsed",
    "AmbiguousFieldError",
    "FieldFetchError",
    "FieldResolver",
    "JiraFieldError",
    "UnknownFieldError",
    "LABELS",
    "SUMMARY",
    "IssueFieldCache",
    "IssueMetadataRepository",
]
