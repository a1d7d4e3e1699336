"""
Cucumber Module.

Feature file parsing and synchronization of feature files with Xray.
"""

from xray_sync.cucumber.references import (
    CucumberIssueReference,
    FeatureFileError,
    FeatureFileIssueData,
    FeatureFileParseError,
    MissingIssueKeyError,
    MultipleIssueKeysError,
    extract_issue_references,
)
from xray_sync.cucumber.synchronizer import (
    FeatureFileSynchronizer,
    OverlapResult,
    SyncSnapshot,
    compute_overlap,
)

__all__ = [
    "CucumberIssueReference",
    "FeatureFileError",
    "FeatureFileIssueData",
    "FeatureFileParseError",
    "MissingIssueKeyError",
    "MultipleIssueKeysError",
    "extract_issue_references",
    "FeatureFileSynchronizer",
    "OverlapResult",
    "SyncSnapshot",
    "compute_overlap",
]
