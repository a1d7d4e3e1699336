"""
Unit Tests for the Issue Metadata Repository.

Covers:
- Per-field caches and partial fetches.
- Field ID overrides.
- Failure isolation between field families.
- Logged diagnostics for unresolvable fields and values.
"""

from __future__ import annotations

from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest

from xray_sync.repository.fetching import IssueFieldFetcher
from xray_sync.repository.fields import FieldResolver
from xray_sync.repository.issues import (
    LABELS,
    SUMMARY,
    IssueFieldCache,
    IssueMetadataRepository,
)
from tests.conftest import make_field


def search_results(field_id: str, values: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{"key": key, "fields": {field_id: value}} for key, value in values.items()]


def make_repository(jira_client: MagicMock, field_ids=None) -> IssueMetadataRepository:
    return IssueMetadataRepository(
        resolver=FieldResolver(jira_client),
        fetcher=IssueFieldFetcher(jira_client),
        field_ids=field_ids,
    )


# ---------------------------------------------------------------------------
# IssueFieldCache Tests
# ---------------------------------------------------------------------------


class TestIssueFieldCache:
    """Tests for the IssueFieldCache class."""

    def test_missing_keys_in_request_order(self) -> None:
        cache: IssueFieldCache[str] = IssueFieldCache()
        cache.merge({"CYP-2": "b"})
        assert cache.missing(["CYP-3", "CYP-2", "CYP-1", "CYP-3"]) == ["CYP-3", "CYP-1"]

    def test_select_skips_unknown_keys(self) -> None:
        cache: IssueFieldCache[str] = IssueFieldCache()
        cache.merge({"CYP-1": "a"})
        assert cache.select(["CYP-1", "CYP-2"]) == {"CYP-1": "a"}
        assert "CYP-1" in cache
        assert len(cache) == 1


# ---------------------------------------------------------------------------
# Repository Tests
# ---------------------------------------------------------------------------


class TestIssueMetadataRepository:
    """Tests for the IssueMetadataRepository getters."""

    def test_get_summaries(self, jira_client: MagicMock) -> None:
        jira_client.search.return_value = search_results(
            "summary", {"CYP-1": "Login", "CYP-2": "Logout"}
        )
        repository = make_repository(jira_client)
        assert repository.get_summaries("CYP-1", "CYP-2") == {"CYP-1": "Login", "CYP-2": "Logout"}

    def test_get_descriptions(self, jira_client: MagicMock) -> None:
        jira_client.search.return_value = search_results("description", {"CYP-1": "Some text"})
        repository = make_repository(jira_client)
        assert repository.get_descriptions("CYP-1") == {"CYP-1": "Some text"}

    def test_get_labels(self, jira_client: MagicMock) -> None:
        jira_client.search.return_value = search_results("labels", {"CYP-1": ["smoke", "ui"]})
        repository = make_repository(jira_client)
        assert repository.get_labels("CYP-1") == {"CYP-1": ["smoke", "ui"]}

    def test_get_test_types(self, jira_client: MagicMock) -> None:
        jira_client.search.return_value = search_results(
            "customfield_12100", {"CYP-1": {"value": "Cucumber", "id": "12702"}}
        )
        repository = make_repository(jira_client)
        assert repository.get_test_types("CYP-1") == {"CYP-1": "Cucumber"}
        jira_client.search.assert_called_once_with(
            "issue in (CYP-1)", fields=["customfield_12100"]
        )

    def test_field_list_fetched_once_across_getters(self, jira_client: MagicMock) -> None:
        """Test that a field name queried twice fetches the field list once."""
        jira_client.search.return_value = search_results(
            "customfield_12100", {"CYP-1": {"value": "Cucumber"}, "CYP-2": {"value": "Manual"}}
        )
        repository = make_repository(jira_client)
        repository.get_test_types("CYP-1")
        repository.get_test_types("CYP-2")
        assert jira_client.get_fields.call_count == 1

    def test_only_missing_keys_fetched(self, jira_client: MagicMock) -> None:
        """Test that cached keys are not part of later queries."""
        repository = make_repository(jira_client)
        jira_client.search.return_value = search_results("summary", {"A-1": "a", "B-1": "b"})
        repository.get_summaries("A-1", "B-1")

        jira_client.search.return_value = search_results("summary", {"C-1": "c"})
        result = repository.get_summaries("A-1", "B-1", "C-1")

        assert result == {"A-1": "a", "B-1": "b", "C-1": "c"}
        assert jira_client.search.call_args.args[0] == "issue in (C-1)"

    def test_fully_cached_request_skips_search(self, jira_client: MagicMock) -> None:
        jira_client.search.return_value = search_results("summary", {"CYP-1": "a"})
        repository = make_repository(jira_client)
        repository.get_summaries("CYP-1")
        repository.get_summaries("CYP-1")
        assert jira_client.search.call_count == 1

    def test_field_id_override(self, jira_client: MagicMock) -> None:
        """Test that configured field IDs bypass the field list."""
        jira_client.search.return_value = search_results(
            "customfield_99", {"CYP-1": {"value": "Generic"}}
        )
        repository = make_repository(jira_client, field_ids={"test_type": "customfield_99"})
        assert repository.get_test_types("CYP-1") == {"CYP-1": "Generic"}
        jira_client.get_fields.assert_not_called()
        assert repository.field_id(LABELS) == "labels"
        assert repository.field_id(SUMMARY) == "summary"

    def test_field_name_override(self) -> None:
        """Test that a configured display name is resolved instead of the default."""
        client = MagicMock()
        client.get_fields.return_value = [
            make_field("summary", "Zusammenfassung"),
            make_field("customfield_300", "Summary", custom=True),
        ]
        client.search.return_value = search_results("summary", {"CYP-1": "Anmelden"})
        repository = IssueMetadataRepository(
            resolver=FieldResolver(client),
            fetcher=IssueFieldFetcher(client),
            field_names={"summary": "Zusammenfassung"},
        )

        assert repository.get_summaries("CYP-1") == {"CYP-1": "Anmelden"}
        client.search.assert_called_once_with("issue in (CYP-1)", fields=["summary"])

    def test_field_id_override_wins_over_name(self, jira_client: MagicMock) -> None:
        repository = IssueMetadataRepository(
            resolver=FieldResolver(jira_client),
            fetcher=IssueFieldFetcher(jira_client),
            field_ids={"summary": "customfield_1"},
            field_names={"summary": "Zusammenfassung"},
        )
        assert repository.field_id(SUMMARY) == "customfield_1"
        jira_client.get_fields.assert_not_called()


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestRepositoryFailures:
    """Tests for the repository as error boundary."""

    def test_failure_isolated_between_fields(self, log_messages) -> None:
        """Test that a failing test type lookup does not affect summaries."""
        client = MagicMock()
        client.get_fields.return_value = [
            make_field("summary", "Summary"),
            make_field("customfield_1", "Test Type"),
            make_field("customfield_2", "Test Type"),
        ]
        client.search.return_value = search_results("summary", {"CYP-1": "Login"})
        repository = make_repository(client)

        assert repository.get_test_types("CYP-1") == {}
        assert repository.get_summaries("CYP-1") == {"CYP-1": "Login"}

        errors = log_messages.messages("ERROR")
        assert len(errors) == 1
        assert errors[0].startswith("Failed to fetch issue test types")
        assert "There are multiple fields with this name" in errors[0]
        assert "Make sure these issues exist and are test issues" in errors[0]

    def test_unparseable_summary_logged(self, jira_client: MagicMock, log_messages) -> None:
        """Test that an unparseable value yields no entry and a logged parse error."""
        jira_client.search.return_value = [{"key": "CYP-9", "fields": {"summary": {"nested": 1}}}]
        repository = make_repository(jira_client)

        assert repository.get_summaries("CYP-9") == {}

        errors = log_messages.messages("ERROR")
        assert len(errors) == 1
        assert "Failed to fetch issue summaries" in errors[0]
        assert 'CYP-9: {"nested":1}' in errors[0]

    def test_missing_issues_logged(self, jira_client: MagicMock, log_messages) -> None:
        """Test that issues Jira did not return are listed as unresolved."""
        jira_client.search.return_value = search_results("summary", {"CYP-1": "a"})
        repository = make_repository(jira_client)

        assert repository.get_summaries("CYP-1", "CYP-404") == {"CYP-1": "a"}

        errors = log_messages.messages("ERROR")
        assert len(errors) == 1
        assert "Make sure these issues exist" in errors[0]
        assert "  CYP-404" in errors[0]
        assert "CYP-1\n" not in errors[0]

    def test_transport_error_returns_cached_subset(self, jira_client: MagicMock, log_messages) -> None:
        """Test that a failing search still returns previously cached values."""
        repository = make_repository(jira_client)
        jira_client.search.return_value = search_results("labels", {"CYP-1": ["smoke"]})
        repository.get_labels("CYP-1")

        jira_client.search.side_effect = RuntimeError("connection reset")
        result = repository.get_labels("CYP-1", "CYP-2")

        assert result == {"CYP-1": ["smoke"]}
        assert any("connection reset" in message for message in log_messages.messages("ERROR"))

    def test_unknown_field_hint(self, log_messages) -> None:
        """Test that an unknown field suggests the configuration override."""
        client = MagicMock()
        client.get_fields.return_value = [make_field("summary", "Summary")]
        repository = make_repository(client)

        assert repository.get_test_types("CYP-1") == {}

        error = log_messages.messages("ERROR")[0]
        assert "Failed to fetch Jira field ID for field with name: test type" in error
        assert "test_type: <id>" in error

    @pytest.mark.parametrize("getter", ["get_summaries", "get_descriptions", "get_labels", "get_test_types"])
    def test_getters_never_raise(self, getter: str) -> None:
        client = MagicMock()
        client.get_fields.side_effect = RuntimeError("boom")
        repository = make_repository(client)
        assert getattr(repository, getter)("CYP-1") == {}
