"""
Feature File Synchronizer Module.

Xray overwrites summaries and labels of existing issues when feature files are
imported. The synchronizer backs up these values before the import and
restores them afterwards, for every issue Xray reports as updated.

Flow per feature file:
    extract references -> snapshot -> import -> reconcile -> restore

A failure while processing one file is logged and never propagates, so the
remaining files of a run are still synchronized.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from xray_sync.cucumber.references import (
    CucumberIssueReference,
    FeatureFileError,
    FeatureFileIssueData,
    extract_issue_references,
    issue_tag_pattern,
)
from xray_sync.jira_client.jira_client import JiraClient
from xray_sync.jira_client.xray_client import XrayClient
from xray_sync.repository.issues import LABELS, SUMMARY, FieldSpec, IssueMetadataRepository

HELP_TARGETING_EXISTING_ISSUES = (
    "https://qytera-gmbh.github.io/projects/cypress-xray-plugin/section/guides/targetingExistingIssues/"
)
HELP_CUCUMBER_PREFIXES = (
    "https://qytera-gmbh.github.io/projects/cypress-xray-plugin/section/configuration/cucumber/#prefixes"
)


@dataclass
class OverlapResult:
    """
    Comparison of the expected and the actually updated issue keys.

    Attributes:
        intersection: Keys present in both, in expected order.
        left_only: Expected keys Xray did not update.
        right_only: Updated keys no scenario or background references.
    """

    intersection: List[str] = field(default_factory=list)
    left_only: List[str] = field(default_factory=list)
    right_only: List[str] = field(default_factory=list)

    @property
    def mismatch(self) -> bool:
        return bool(self.left_only or self.right_only)


def compute_overlap(left: Iterable[str], right: Iterable[str]) -> OverlapResult:
    """
    Split two key collections into their intersection and differences.

    Example:
        compute_overlap(["X", "Y", "Z"], ["Y", "Z", "W"])
        # OverlapResult(intersection=["Y", "Z"], left_only=["X"], right_only=["W"])
    """
    left_keys = list(dict.fromkeys(left))
    right_keys = list(dict.fromkeys(right))
    right_set = set(right_keys)
    left_set = set(left_keys)
    return OverlapResult(
        intersection=[key for key in left_keys if key in right_set],
        left_only=[key for key in left_keys if key not in right_set],
        right_only=[key for key in right_keys if key not in left_set],
    )


@dataclass
class SyncSnapshot:
    """Summaries and labels of the referenced issues before the import."""

    summaries: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, List[str]] = field(default_factory=dict)


class FeatureFileSynchronizer:
    """
    Imports feature files into Xray while preserving issue summaries and labels.

    Usage::

        synchronizer = FeatureFileSynchronizer(
            jira_client=jira_client,
            xray_client=xray_client,
            repository=repository,
            project_key="CYP",
        )
        synchronizer.synchronize("cypress/e2e/login.feature", project_root=".")
    """

    def __init__(
        self,
        jira_client: JiraClient,
        xray_client: XrayClient,
        repository: IssueMetadataRepository,
        project_key: str,
        cloud_mode: bool = False,
        test_prefix: Optional[str] = None,
        precondition_prefix: Optional[str] = None,
    ) -> None:
        self.jira_client = jira_client
        self.xray_client = xray_client
        self.repository = repository
        self.project_key = project_key
        self.cloud_mode = cloud_mode
        self.test_prefix = test_prefix
        self.precondition_prefix = precondition_prefix

    def synchronize(self, file_path: str | Path, project_root: str | Path) -> str | Path:
        """
        Synchronize one feature file with Jira.

        Args:
            file_path: Path to the feature file.
            project_root: Directory the import path is made relative to.

        Returns:
            The unchanged file path.
        """
        logger.info(f"Synchronizing feature file: {file_path}")
        try:
            issue_data = extract_issue_references(
                file_path,
                self.project_key,
                cloud_mode=self.cloud_mode,
                test_prefix=self.test_prefix,
                precondition_prefix=self.precondition_prefix,
            )
        except FeatureFileError as e:
            logger.error(f"Feature file invalid, skipping synchronization: {file_path}\n\n{e}")
            return file_path

        expected_keys = issue_data.issue_keys
        snapshot = self.take_snapshot(expected_keys)

        relative_path = os.path.relpath(file_path, project_root)
        try:
            response = self.xray_client.import_feature(
                file_path, self.project_key, file_name=relative_path
            )
        except Exception as e:
            logger.error(f"Failed to import feature file: {file_path}\n\n{e}")
            return file_path

        for error in response.errors:
            logger.warning(f"Encountered an error during feature file import: {error}")

        overlap = self.reconcile(expected_keys, response.updated_or_created_issues)
        self.restore(issue_data, overlap.intersection, snapshot)
        logger.info(f"Synchronized feature file: {file_path}")
        return file_path

    def take_snapshot(self, issue_keys: List[str]) -> SyncSnapshot:
        """Back up the current summaries and labels of the given issues."""
        if not issue_keys:
            return SyncSnapshot()
        return SyncSnapshot(
            summaries=self.repository.get_summaries(*issue_keys),
            labels=self.repository.get_labels(*issue_keys),
        )

    def reconcile(self, expected: List[str], updated: List[str]) -> OverlapResult:
        """Compare expected and updated issues and warn about differences."""
        overlap = compute_overlap(expected, updated)
        if overlap.mismatch:
            logger.warning(_mismatch_message(overlap))
        return overlap

    def restore(
        self,
        issue_data: FeatureFileIssueData,
        issue_keys: List[str],
        snapshot: SyncSnapshot,
    ) -> None:
        """Restore summaries and labels of the given issues from the snapshot."""
        references: Dict[str, CucumberIssueReference] = {}
        for reference in issue_data.references():
            references.setdefault(reference.key, reference)

        for issue_key in issue_keys:
            reference = references.get(issue_key)
            if reference is None:
                continue
            self._restore_summary(reference, snapshot)
            self._restore_labels(reference, snapshot)

    # ------------------------------------------------------------------
    # Restore helpers
    # ------------------------------------------------------------------

    def _restore_summary(self, reference: CucumberIssueReference, snapshot: SyncSnapshot) -> None:
        issue_key = reference.key
        if issue_key not in snapshot.summaries:
            logger.error(
                f"Cannot restore summary of issue: {issue_key}\n"
                f"The previous summary could not be fetched, make sure to manually restore it if needed"
            )
            return
        old_summary = snapshot.summaries[issue_key]
        if old_summary == reference.summary:
            logger.debug(
                f"Skipping restoring summary of issue: {issue_key}\n"
                f"The current summary is identical to the previous one:\n\n"
                f"Previous summary: {old_summary}\n"
                f"Current summary:  {reference.summary}"
            )
            return
        self._edit(issue_key, SUMMARY.field_name, self._field_id(SUMMARY), old_summary, reference.summary)

    def _restore_labels(self, reference: CucumberIssueReference, snapshot: SyncSnapshot) -> None:
        issue_key = reference.key
        if issue_key not in snapshot.labels:
            logger.error(
                f"Cannot restore labels of issue: {issue_key}\n"
                f"The previous labels could not be fetched, make sure to manually restore them if needed"
            )
            return
        old_labels = snapshot.labels[issue_key]
        new_labels = self._synced_labels(reference)
        if set(new_labels).issubset(old_labels):
            logger.debug(
                f"Skipping restoring labels of issue: {issue_key}\n"
                f"The current labels are contained in the previous ones:\n\n"
                f"Previous labels: {old_labels}\n"
                f"Current labels:  {new_labels}"
            )
            return
        self._edit(issue_key, LABELS.field_name, self._field_id(LABELS), old_labels, new_labels)

    def _synced_labels(self, reference: CucumberIssueReference) -> List[str]:
        """Labels Xray derives from scenario tags: every tag except issue tags."""
        patterns = [issue_tag_pattern(self.project_key, self.test_prefix)]
        if self.test_prefix:
            patterns.append(issue_tag_pattern(self.project_key))
        return [
            tag for tag in reference.tags
            if not any(pattern.fullmatch(f"@{tag}") for pattern in patterns)
        ]

    def _field_id(self, spec: FieldSpec) -> Optional[str]:
        """Return the ID of a field to restore, or None if it cannot be resolved."""
        try:
            return self.repository.field_id(spec)
        except Exception as e:
            logger.error(f"Failed to resolve Jira field ID of field: {spec.field_name}\n\n{e}")
            return None

    def _edit(
        self,
        issue_key: str,
        field_name: str,
        field_id: Optional[str],
        previous: Any,
        current: Any,
    ) -> None:
        """Write a previous value back, logging failures without raising."""
        if field_id is None:
            logger.error(_restore_failure_message(issue_key, field_name, previous, current, None))
            return
        try:
            self.jira_client.edit_issue(issue_key, {"fields": {field_id: previous}})
            logger.info(f"Restored {field_name} of issue {issue_key}")
        except Exception as e:
            logger.error(_restore_failure_message(issue_key, field_name, previous, current, e))


def _restore_failure_message(
    issue_key: str,
    field_name: str,
    previous: Any,
    current: Any,
    error: Optional[Exception],
) -> str:
    lines = [
        f"Failed to restore {field_name} of issue: {issue_key}",
        "Make sure to manually restore it if needed",
        "",
        f"Previous {field_name}: {previous}",
        f"Current {field_name}:  {current}",
    ]
    if error is not None:
        lines.extend(["", str(error)])
    return "\n".join(lines)


def _mismatch_message(overlap: OverlapResult) -> str:
    sections = ["Mismatch between feature file issue tags and updated Jira issues detected"]
    if overlap.left_only:
        sections.append(
            "Issues contained in feature file tags which were not updated by Jira and might not exist:\n"
            + "\n".join(f"  {key}" for key in overlap.left_only)
        )
    if overlap.right_only:
        sections.append(
            "Issues updated by Jira which are not present in feature file tags and might have been created:\n"
            + "\n".join(f"  {key}" for key in overlap.right_only)
        )
    sections.append(
        "Make sure that:\n"
        "- All issues present in feature file tags belong to existing issues\n"
        "- Your tag prefix settings are consistent with the ones defined in Xray"
    )
    sections.append(
        "More information:\n"
        f"- {HELP_TARGETING_EXISTING_ISSUES}\n"
        f"- {HELP_CUCUMBER_PREFIXES}"
    )
    return "\n\n".join(sections)
