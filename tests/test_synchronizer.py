"""
Unit Tests for the Feature File Synchronizer.

Covers:
- Overlap computation.
- Restoring summaries and labels after an import.
- Mismatch warnings.
- Failure isolation per issue and per file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List
from unittest.mock import MagicMock

import pytest

from xray_sync.cucumber.references import CucumberIssueReference, FeatureFileIssueData
from xray_sync.cucumber.synchronizer import (
    FeatureFileSynchronizer,
    OverlapResult,
    SyncSnapshot,
    compute_overlap,
)
from xray_sync.jira_client.jira_client import JiraClientError
from xray_sync.jira_client.xray_client import ImportFeatureResponse, XrayClientError
from xray_sync.repository.fetching import IssueFieldFetcher
from xray_sync.repository.fields import FieldResolver
from xray_sync.repository.issues import IssueMetadataRepository

WriteFeature = Callable[..., Path]

FEATURE = """\
Feature: Login

  @CYP-1 @smoke
  Scenario: New
    Given a user

  @CYP-2
  Scenario: New2
    Given another user
"""


def jira_search(values: Dict[str, Dict[str, Any]]) -> Callable[..., List[Dict[str, Any]]]:
    """Build a search side effect serving field values per issue key."""

    def _search(jql: str, fields: List[str]) -> List[Dict[str, Any]]:
        issues = []
        for key, issue_fields in values.items():
            if key in jql:
                issues.append({"key": key, "fields": {f: issue_fields.get(f) for f in fields}})
        return issues

    return _search


@pytest.fixture
def synchronizer(jira_client: MagicMock, xray_client: MagicMock) -> FeatureFileSynchronizer:
    repository = IssueMetadataRepository(
        resolver=FieldResolver(jira_client),
        fetcher=IssueFieldFetcher(jira_client),
    )
    return FeatureFileSynchronizer(
        jira_client=jira_client,
        xray_client=xray_client,
        repository=repository,
        project_key="CYP",
    )


# ---------------------------------------------------------------------------
# Overlap
# ---------------------------------------------------------------------------


class TestComputeOverlap:
    """Tests for compute_overlap."""

    def test_overlap(self) -> None:
        assert compute_overlap(["X", "Y", "Z"], ["Y", "Z", "W"]) == OverlapResult(
            intersection=["Y", "Z"], left_only=["X"], right_only=["W"]
        )

    def test_identical(self) -> None:
        result = compute_overlap(["A", "B"], ["B", "A"])
        assert result.intersection == ["A", "B"]
        assert not result.mismatch

    def test_duplicates_collapsed(self) -> None:
        result = compute_overlap(["A", "A"], ["A", "B", "B"])
        assert result == OverlapResult(intersection=["A"], left_only=[], right_only=["B"])

    def test_empty(self) -> None:
        assert compute_overlap([], []) == OverlapResult()


# ---------------------------------------------------------------------------
# Synchronization
# ---------------------------------------------------------------------------


class TestSynchronize:
    """Tests for FeatureFileSynchronizer.synchronize."""

    def test_restores_updated_issue_only(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        """Test that only issues updated by the import are restored."""
        jira_client.search.side_effect = jira_search({
            "CYP-1": {"summary": "Old", "labels": ["smoke"]},
            "CYP-2": {"summary": "Old2", "labels": []},
        })
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1"]
        )
        path = feature_file(FEATURE)

        assert synchronizer.synchronize(path, path.parent) == path

        jira_client.edit_issue.assert_called_once_with("CYP-1", {"fields": {"summary": "Old"}})
        warnings = log_messages.messages("WARNING")
        assert len(warnings) == 1
        assert "Mismatch between feature file issue tags and updated Jira issues detected" in warnings[0]
        assert "not updated by Jira and might not exist:\n  CYP-2" in warnings[0]

    def test_import_uses_relative_path(
        self,
        synchronizer: FeatureFileSynchronizer,
        xray_client: MagicMock,
        feature_file: WriteFeature,
    ) -> None:
        xray_client.import_feature.return_value = ImportFeatureResponse()
        path = feature_file(FEATURE, name="login.feature")
        synchronizer.synchronize(path, path.parent.parent)
        xray_client.import_feature.assert_called_once_with(
            path, "CYP", file_name=str(Path(path.parent.name) / "login.feature")
        )

    def test_identical_summary_not_restored(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
    ) -> None:
        """Test that matching summaries and labels cause no edit."""
        jira_client.search.side_effect = jira_search({
            "CYP-1": {"summary": "New", "labels": ["smoke", "ui"]},
            "CYP-2": {"summary": "New2", "labels": []},
        })
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1", "CYP-2"]
        )
        path = feature_file(FEATURE)

        synchronizer.synchronize(path, path.parent)

        jira_client.edit_issue.assert_not_called()

    def test_labels_restored(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
    ) -> None:
        """Test that labels not contained in the previous labels are reset."""
        jira_client.search.side_effect = jira_search({
            "CYP-1": {"summary": "New", "labels": ["ui"]},
            "CYP-2": {"summary": "New2", "labels": []},
        })
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1", "CYP-2"]
        )
        path = feature_file(FEATURE)

        synchronizer.synchronize(path, path.parent)

        jira_client.edit_issue.assert_called_once_with("CYP-1", {"fields": {"labels": ["ui"]}})

    def test_right_only_issues_untouched(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        jira_client.search.side_effect = jira_search({
            "CYP-1": {"summary": "New", "labels": ["smoke"]},
            "CYP-2": {"summary": "New2", "labels": []},
        })
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1", "CYP-2", "CYP-3"]
        )
        path = feature_file(FEATURE)

        synchronizer.synchronize(path, path.parent)

        jira_client.edit_issue.assert_not_called()
        warning = log_messages.messages("WARNING")[0]
        assert "might have been created:\n  CYP-3" in warning

    def test_edit_failure_does_not_stop_restore(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        """Test that a failing edit is logged and later issues are still restored."""
        jira_client.search.side_effect = jira_search({
            "CYP-1": {"summary": "Old", "labels": ["smoke"]},
            "CYP-2": {"summary": "Old2", "labels": []},
        })
        jira_client.edit_issue.side_effect = [JiraClientError("forbidden", 403), "CYP-2"]
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1", "CYP-2"]
        )
        path = feature_file(FEATURE)

        synchronizer.synchronize(path, path.parent)

        assert jira_client.edit_issue.call_count == 2
        assert jira_client.edit_issue.call_args.args == ("CYP-2", {"fields": {"summary": "Old2"}})
        error = log_messages.messages("ERROR")[0]
        assert "Failed to restore summary of issue: CYP-1" in error
        assert "Previous summary: Old" in error
        assert "Current summary:  New" in error

    def test_missing_snapshot_skips_restore(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        jira_client.search.side_effect = jira_search({
            "CYP-2": {"summary": "New2", "labels": []},
        })
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1", "CYP-2"]
        )
        path = feature_file(FEATURE)

        synchronizer.synchronize(path, path.parent)

        jira_client.edit_issue.assert_not_called()
        errors = log_messages.messages("ERROR")
        assert any("Cannot restore summary of issue: CYP-1" in e for e in errors)
        assert any("Cannot restore labels of issue: CYP-1" in e for e in errors)

    def test_import_errors_logged(
        self,
        synchronizer: FeatureFileSynchronizer,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        xray_client.import_feature.return_value = ImportFeatureResponse(
            updated_or_created_issues=["CYP-1", "CYP-2"],
            errors=["Error in file login.feature: unexpected token"],
        )
        path = feature_file(FEATURE)
        synchronizer.synchronize(path, path.parent)
        assert any("unexpected token" in w for w in log_messages.messages("WARNING"))

    def test_failed_import_aborts_file(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        xray_client.import_feature.side_effect = XrayClientError("bad request", 400)
        path = feature_file(FEATURE)

        assert synchronizer.synchronize(path, path.parent) == path

        jira_client.edit_issue.assert_not_called()
        assert any("Failed to import feature file" in e for e in log_messages.messages("ERROR"))

    def test_invalid_feature_file_skipped(
        self,
        synchronizer: FeatureFileSynchronizer,
        xray_client: MagicMock,
        feature_file: WriteFeature,
        log_messages,
    ) -> None:
        path = feature_file("Feature: A\n  Scenario: untagged\n    Given x\n")

        assert synchronizer.synchronize(path, path.parent) == path

        xray_client.import_feature.assert_not_called()
        assert any("No test issue keys found" in e for e in log_messages.messages("ERROR"))

    def test_undecodable_feature_file_skipped(
        self,
        synchronizer: FeatureFileSynchronizer,
        xray_client: MagicMock,
        tmp_path: Path,
        log_messages,
    ) -> None:
        path = tmp_path / "latin1.feature"
        path.write_bytes("Feature: Prüfung\n  @CYP-1\n  Scenario: Größe\n".encode("latin-1"))

        assert synchronizer.synchronize(path, tmp_path) == path

        xray_client.import_feature.assert_not_called()
        assert any("Failed to read feature file" in e for e in log_messages.messages("ERROR"))


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


class TestRestore:
    """Tests for restoring snapshot values directly."""

    def test_restore_is_idempotent(
        self,
        synchronizer: FeatureFileSynchronizer,
        jira_client: MagicMock,
    ) -> None:
        """Test that a snapshot equal to the synced values issues no edits."""
        data = FeatureFileIssueData(
            tests=[CucumberIssueReference("CYP-1", "Summary", ["CYP-1", "smoke"])]
        )
        snapshot = SyncSnapshot(summaries={"CYP-1": "Summary"}, labels={"CYP-1": ["smoke"]})

        synchronizer.restore(data, ["CYP-1"], snapshot)
        synchronizer.restore(data, ["CYP-1"], snapshot)

        jira_client.edit_issue.assert_not_called()

    def test_prefixed_issue_tag_is_not_a_label(self, jira_client: MagicMock, xray_client: MagicMock) -> None:
        synchronizer = FeatureFileSynchronizer(
            jira_client=jira_client,
            xray_client=xray_client,
            repository=MagicMock(),
            project_key="CYP",
            test_prefix="TestName:",
        )
        reference = CucumberIssueReference("CYP-1", "Summary", ["TestName:CYP-1", "smoke"])
        assert synchronizer._synced_labels(reference) == ["smoke"]

    def test_unresolvable_field_logged(self, jira_client: MagicMock, xray_client: MagicMock, log_messages) -> None:
        repository = MagicMock()
        repository.field_id.side_effect = RuntimeError("no field list")
        synchronizer = FeatureFileSynchronizer(
            jira_client=jira_client,
            xray_client=xray_client,
            repository=repository,
            project_key="CYP",
        )
        data = FeatureFileIssueData(tests=[CucumberIssueReference("CYP-1", "New", ["CYP-1"])])
        snapshot = SyncSnapshot(summaries={"CYP-1": "Old"}, labels={"CYP-1": []})

        synchronizer.restore(data, ["CYP-1"], snapshot)

        jira_client.edit_issue.assert_not_called()
        errors = log_messages.messages("ERROR")
        assert any("no field list" in e for e in errors)
        assert any("Failed to restore summary of issue: CYP-1" in e for e in errors)
