"""
Result Reporter Module.

Builds the Xray JSON payload of a test execution. Xray server and Xray cloud
use different status names and test info layouts; the reporter emits the
flavour matching the configured Xray instance.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

# Runner outcomes -> (server status, cloud status)
STATUS_MAP = {
    "passed": ("PASS", "PASSED"),
    "failed": ("FAIL", "FAILED"),
    "pending": ("TODO", "TODO"),
    "skipped": ("FAIL", "FAILED"),
    "executing": ("EXECUTING", "EXECUTING"),
    "aborted": ("ABORTED", "ABORTED"),
}
# Xray statuses accepted verbatim
SERVER_STATUSES = {"PASS", "FAIL", "TODO", "EXECUTING", "ABORTED"}
CLOUD_STATUSES = {"PASSED", "FAILED", "TODO", "EXECUTING", "ABORTED"}


def xray_status(
    status: str,
    cloud: bool = False,
    passed: Optional[str] = None,
    failed: Optional[str] = None,
) -> str:
    """
    Translate a runner outcome into an Xray status.

    Args:
        status: Outcome such as "passed", "failed", "pending" or an Xray status.
        cloud: Whether to produce Xray cloud statuses.
        passed: Custom status used for passed tests.
        failed: Custom status used for failed and skipped tests.

    Returns:
        The Xray status. Unknown outcomes map to TODO.
    """
    lowered = status.strip().lower()
    if lowered in ("passed", "pass") and passed:
        return passed
    if lowered in ("failed", "fail", "skipped") and failed:
        return failed

    if lowered in STATUS_MAP:
        server, cloud_status = STATUS_MAP[lowered]
        return cloud_status if cloud else server

    upper = status.strip().upper()
    if upper in (CLOUD_STATUSES if cloud else SERVER_STATUSES):
        return upper
    if upper in ("PASS", "PASSED", "FAIL", "FAILED"):
        return xray_status("passed" if upper.startswith("PASS") else "failed", cloud)

    logger.warning(f"Unknown test status '{status}', reporting it as TODO")
    return "TODO"


@dataclass
class TestResult:
    """
    Result of a single test for Xray reporting.

    Attributes:
        test_key: Jira test issue key (e.g., "CYP-101").
        status: Xray status of the run.
        comment: Optional comment.
        duration_sec: Duration in seconds.
        defects: Defect issue keys linked to the run.
        start_time: When the test started.
        end_time: When the test finished.
        error_message: Error message if the test failed.
        summary: Test issue summary, used for testInfo.
        test_type: Test issue type (e.g., "Cucumber"), used for testInfo.
    """

    __test__ = False

    test_key: str
    status: str = "TODO"
    comment: str = ""
    duration_sec: float = 0.0
    defects: List[str] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_message: str = ""
    summary: Optional[str] = None
    test_type: Optional[str] = None

    def to_xray_dict(self, project_key: str = "", cloud: bool = False) -> Dict[str, Any]:
        """Convert to the Xray JSON format of a single test run."""
        result: Dict[str, Any] = {
            "testKey": self.test_key,
            "status": self.status,
        }
        if self.start_time:
            result["start"] = self.start_time.isoformat()
        if self.end_time:
            result["finish"] = self.end_time.isoformat()
        if self.comment:
            result["comment"] = self.comment
        if self.error_message:
            result["comment"] = (
                f"{self.comment}\n\nError: {self.error_message}" if self.comment
                else f"Error: {self.error_message}"
            )
        if self.defects:
            result["defects"] = self.defects
        if self.summary is not None and self.test_type is not None:
            result["testInfo"] = {
                "projectKey": project_key,
                "summary": self.summary,
                ("type" if cloud else "testType"): self.test_type,
            }
        return result


@dataclass
class ExecutionReport:
    """
    A test execution and its results.

    Attributes:
        test_exec_key: Existing test execution issue to update (optional).
        summary: Summary of a newly created test execution issue.
        description: Description of a newly created test execution issue.
        project_key: Jira project key.
        results: Individual test results.
        start_time: When the execution started.
        end_time: When the execution finished.
    """

    test_exec_key: str = ""
    summary: str = ""
    description: str = ""
    project_key: str = ""
    results: List[TestResult] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def add_result(self, result: TestResult) -> None:
        self.results.append(result)

    @property
    def total_tests(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status in ("PASS", "PASSED"))

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status in ("FAIL", "FAILED"))

    @property
    def other(self) -> int:
        return self.total_tests - self.passed - self.failed

    @property
    def pass_rate(self) -> float:
        """Pass rate as a percentage."""
        if self.total_tests == 0:
            return 0.0
        return (self.passed / self.total_tests) * 100


class ResultReporter:
    """
    Collects test results and formats them for the Xray import endpoint.

    Usage::

        reporter = ResultReporter(project_key="CYP", cloud=False)
        reporter.add_result(TestResult(test_key="CYP-101", status="PASS"))
        reporter.add_result(TestResult(test_key="CYP-102", status="FAIL",
                                       error_message="Timeout exceeded"))
        payload = reporter.to_xray_json()
    """

    def __init__(
        self,
        project_key: str = "",
        cloud: bool = False,
        test_exec_key: str = "",
    ) -> None:
        """
        Initialize the result reporter.

        Args:
            project_key: Jira project key.
            cloud: Whether the payload targets Xray cloud.
            test_exec_key: Existing test execution issue to report to.
        """
        self.project_key = project_key
        self.cloud = cloud
        self._report = ExecutionReport(
            test_exec_key=test_exec_key,
            project_key=project_key,
            start_time=datetime.now(),
        )
        logger.debug(f"ResultReporter initialized, project={project_key}, cloud={cloud}")

    @property
    def report(self) -> ExecutionReport:
        return self._report

    def add_result(self, result: TestResult) -> None:
        """Add a test result to the report."""
        self._report.add_result(result)
        logger.debug(f"Result added: {result.test_key} -> {result.status}")

    def set_summary(self, summary: str) -> None:
        self._report.summary = summary

    def set_description(self, description: str) -> None:
        self._report.description = description

    def set_times(self, start_time: Optional[datetime], end_time: Optional[datetime]) -> None:
        """Override the execution start and end times."""
        if start_time:
            self._report.start_time = start_time
        if end_time:
            self._report.end_time = end_time

    def finalize(self) -> ExecutionReport:
        """Set the end time if missing and return the completed report."""
        if self._report.end_time is None:
            self._report.end_time = datetime.now()
        logger.info(
            f"Report finalized: {self._report.total_tests} tests, "
            f"{self._report.passed} passed, {self._report.failed} failed, "
            f"pass rate: {self._report.pass_rate:.1f}%"
        )
        return self._report

    def to_xray_json(self) -> Dict[str, Any]:
        """Convert the report to the Xray JSON import format."""
        report = self._report
        payload: Dict[str, Any] = {
            "tests": [r.to_xray_dict(self.project_key, self.cloud) for r in report.results],
        }

        if report.test_exec_key:
            payload["testExecutionKey"] = report.test_exec_key
        else:
            info: Dict[str, Any] = {}
            if report.project_key:
                info["project"] = report.project_key
            if report.summary:
                info["summary"] = report.summary
            if report.description:
                info["description"] = report.description
            if report.start_time:
                info["startDate"] = report.start_time.isoformat()
            if report.end_time:
                info["finishDate"] = report.end_time.isoformat()
            if info:
                payload["info"] = info

        return payload

    def export_xray_json(self, output_path: str | Path) -> Path:
        """Write the Xray JSON payload to a file."""
        path = Path(output_path)
        path.write_text(json.dumps(self.to_xray_json(), indent=2, default=str), encoding="utf-8")
        logger.info(f"Xray JSON report exported to: {path}")
        return path

    def get_summary(self) -> Dict[str, Any]:
        """Return execution statistics."""
        report = self._report
        return {
            "project_key": self.project_key,
            "total_tests": report.total_tests,
            "passed": report.passed,
            "failed": report.failed,
            "other": report.other,
            "pass_rate": f"{report.pass_rate:.1f}%",
        }
