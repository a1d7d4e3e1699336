"""
Result Uploader Module.

Uploads the results of a test run to Xray as a test execution.

Results files are JSON lists of records::

    [
        {
            "title": "CYP-101 logs in with valid credentials",
            "status": "passed",
            "start": "2024-05-01T10:00:00+00:00",
            "finish": "2024-05-01T10:00:03+00:00",
            "error": null,
            "duration_sec": 3.1
        }
    ]

Each record's title must contain exactly one issue key of the project.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from xray_sync.jira_client.jira_client import JiraClient, JiraClientError
from xray_sync.jira_client.xray_client import XrayClient, XrayClientError
from xray_sync.reporting.result_reporter import ResultReporter, TestResult, xray_status
from xray_sync.repository.issues import IssueMetadataRepository


class ResultFileError(Exception):
    """Raised when a results file cannot be read or has an invalid layout."""


@dataclass
class RunRecord:
    """One test run read from a results file."""

    issue_key: str
    title: str
    status: str
    start: Optional[datetime] = None
    finish: Optional[datetime] = None
    error: str = ""
    duration_sec: float = 0.0


def _parse_time(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp. Timestamps without offset are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring invalid timestamp: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_duration(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid duration: {value!r}")
        return 0.0


def read_results(results_path: str | Path, project_key: str) -> List[RunRecord]:
    """
    Read the test runs of a results file.

    Records whose title does not contain exactly one issue key are skipped
    with a warning.

    Raises:
        ResultFileError: If the file is unreadable or not a list of records.
    """
    path = Path(results_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ResultFileError(f"Failed to read results file {path}: {e}") from e
    if not isinstance(data, list):
        raise ResultFileError(f"Results file must contain a list of records: {path}")

    pattern = re.compile(rf"\b({re.escape(project_key)}-\d+)\b")
    records = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict) or not isinstance(entry.get("title"), str):
            logger.warning(f"Skipping invalid result record #{index + 1}: {entry!r}")
            continue
        title = entry["title"]
        keys = list(dict.fromkeys(pattern.findall(title)))
        if len(keys) != 1:
            logger.warning(
                f"Skipping result upload for test: {title}\n"
                + (
                    f"No test issue keys found in title, expected a key like {project_key}-123"
                    if not keys
                    else f"Multiple test issue keys found in title: {', '.join(keys)}"
                )
            )
            continue
        records.append(RunRecord(
            issue_key=keys[0],
            title=title,
            status=str(entry.get("status", "")),
            start=_parse_time(entry.get("start")),
            finish=_parse_time(entry.get("finish")),
            error=str(entry.get("error") or ""),
            duration_sec=_parse_duration(entry.get("duration_sec")),
        ))
    return records


def combine_statuses(statuses: List[str]) -> str:
    """
    Combine the outcomes of several runs of the same test.

    Flaky tests (passed and failed) count as passed.
    """
    lowered = {status.strip().lower() for status in statuses}
    has_passed = "passed" in lowered
    has_failed = "failed" in lowered
    has_pending = "pending" in lowered
    has_skipped = "skipped" in lowered
    if lowered == {"passed"}:
        return "passed"
    if has_pending and not has_failed and not has_skipped:
        return "pending"
    if has_failed and has_passed:
        return "passed"
    if has_skipped and not has_failed:
        return "skipped"
    if len(lowered) == 1:
        return statuses[0]
    return "failed"


class ResultUploader:
    """
    Uploads results files to Xray.

    Usage::

        uploader = ResultUploader(jira_client, xray_client, repository, "CYP")
        execution_key = uploader.upload("results.json", summary="Nightly run")
    """

    def __init__(
        self,
        jira_client: JiraClient,
        xray_client: XrayClient,
        repository: IssueMetadataRepository,
        project_key: str,
        test_exec_key: Optional[str] = None,
        status_passed: Optional[str] = None,
        status_failed: Optional[str] = None,
    ) -> None:
        self.jira_client = jira_client
        self.xray_client = xray_client
        self.repository = repository
        self.project_key = project_key
        self.test_exec_key = test_exec_key
        self.status_passed = status_passed
        self.status_failed = status_failed

    def build_reporter(
        self,
        records: List[RunRecord],
        summary: Optional[str] = None,
    ) -> ResultReporter:
        """Group records per test issue and collect them in a reporter."""
        grouped: Dict[str, List[RunRecord]] = {}
        for record in records:
            grouped.setdefault(record.issue_key, []).append(record)

        keys = list(grouped)
        summaries = self.repository.get_summaries(*keys) if keys else {}
        test_types = self.repository.get_test_types(*keys) if keys else {}

        cloud = self.xray_client.is_cloud
        reporter = ResultReporter(
            project_key=self.project_key,
            cloud=cloud,
            test_exec_key=self.test_exec_key or "",
        )
        reporter.set_summary(summary or f"Execution Results [{datetime.now():%Y-%m-%d %H:%M:%S}]")

        starts = [r.start for r in records if r.start]
        finishes = [r.finish for r in records if r.finish]
        reporter.set_times(min(starts) if starts else None, max(finishes) if finishes else None)

        for key, runs in grouped.items():
            status = combine_statuses([run.status for run in runs])
            errors = [run.error for run in runs if run.error]
            run_starts = [run.start for run in runs if run.start]
            run_finishes = [run.finish for run in runs if run.finish]
            reporter.add_result(TestResult(
                test_key=key,
                status=xray_status(status, cloud, self.status_passed, self.status_failed),
                duration_sec=sum(run.duration_sec for run in runs),
                start_time=min(run_starts) if run_starts else None,
                end_time=max(run_finishes) if run_finishes else None,
                error_message="\n\n".join(errors),
                summary=summaries.get(key),
                test_type=test_types.get(key),
            ))
        return reporter

    def upload(
        self,
        results_path: str | Path,
        summary: Optional[str] = None,
        attach: bool = False,
    ) -> Optional[str]:
        """
        Upload a results file as a test execution.

        Args:
            results_path: Path to the JSON results file.
            summary: Summary of a newly created test execution.
            attach: Whether to attach the results file to the execution issue.

        Returns:
            The test execution issue key, or None if nothing was uploaded.

        Raises:
            ResultFileError: If the results file cannot be read.
        """
        records = read_results(results_path, self.project_key)
        if not records:
            logger.warning(f"No test results to upload in: {results_path}")
            return None

        reporter = self.build_reporter(records, summary)
        reporter.finalize()
        payload = reporter.to_xray_json()

        try:
            execution_key = self.xray_client.import_execution(payload)
        except XrayClientError as e:
            logger.error(f"Failed to upload test results\n\n{e}")
            return None
        logger.info(f"Uploaded test results to test execution: {execution_key}")

        if attach and execution_key:
            try:
                self.jira_client.add_attachment(execution_key, str(results_path))
            except JiraClientError as e:
                logger.error(f"Failed to attach results to test execution {execution_key}\n\n{e}")

        return execution_key
