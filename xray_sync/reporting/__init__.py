"""
Reporting Module.

Conversion of test results into Xray test executions and their upload.
"""

from xray_sync.reporting.result_reporter import (
    ExecutionReport,
    ResultReporter,
    TestResult,
    xray_status,
)
from xray_sync.reporting.uploader import (
    ResultFileError,
    ResultUploader,
    RunRecord,
    combine_statuses,
    read_results,
)

__all__ = [
    "ExecutionReport",
    "ResultReporter",
    "TestResult",
    "xray_status",
    "ResultFileError",
    "ResultUploader",
    "RunRecord",
    "combine_statuses",
    "read_results",
]
