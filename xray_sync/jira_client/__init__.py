"""
Jira and Xray Client Module.

Provides integration with the Jira and Xray REST APIs for:
- Listing issue fields and searching issues.
- Editing issue fields and attaching files.
- Importing Cucumber feature files and execution results to Xray.
"""

from xray_sync.jira_client.jira_client import (
    FieldDescriptor,
    JiraClient,
    JiraClientError,
    JiraConfig,
)
from xray_sync.jira_client.xray_client import (
    ImportFeatureResponse,
    XrayClient,
    XrayClientError,
    XrayConfig,
)

__all__ = [
    "FieldDescriptor",
    "JiraClient",
    "JiraClientError",
    "JiraConfig",
    "ImportFeatureResponse",
    "XrayClient",
    "XrayClientError",
    "XrayConfig",
]
