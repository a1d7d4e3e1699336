"""
Typed configuration of a synchronization run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class FieldIds:
    """Explicit Jira field IDs, bypassing name based resolution."""

    summary: Optional[str] = None
    description: Optional[str] = None
    labels: Optional[str] = None
    test_type: Optional[str] = None

    def as_mapping(self) -> Dict[str, str]:
        """Return the configured overrides keyed by option name."""
        return {
            name: value
            for name, value in (
                ("summary", self.summary),
                ("description", self.description),
                ("labels", self.labels),
                ("test_type", self.test_type),
            )
            if value
        }


@dataclass
class FieldNames:
    """
    Jira display names used when a field ID has to be resolved.

    Needed on localized Jira instances, where "Summary" or "Labels" carry
    translated names.
    """

    summary: Optional[str] = None
    description: Optional[str] = None
    labels: Optional[str] = None
    test_type: Optional[str] = None

    def as_mapping(self) -> Dict[str, str]:
        """Return the configured names keyed by option name."""
        return {
            name: value
            for name, value in (
                ("summary", self.summary),
                ("description", self.description),
                ("labels", self.labels),
                ("test_type", self.test_type),
            )
            if value
        }


@dataclass
class JiraSettings:
    url: str
    project_key: str
    auth_method: str = "token"
    api_token: str = ""
    username: str = ""
    password: str = ""
    timeout_sec: int = 30
    verify_ssl: bool = True
    test_execution_issue_key: Optional[str] = None
    fields: FieldIds = field(default_factory=FieldIds)
    field_names: FieldNames = field(default_factory=FieldNames)


@dataclass
class XraySettings:
    cloud: bool = False
    url: Optional[str] = None
    client_id: str = ""
    client_secret: str = ""
    status_passed: Optional[str] = None
    status_failed: Optional[str] = None


@dataclass
class CucumberSettings:
    """
    Attributes:
        test_prefix: Prefix of test issue tags (e.g., "TestName:").
        precondition_prefix: Prefix of precondition issue comments (e.g., "Precondition:").
    """

    test_prefix: Optional[str] = None
    precondition_prefix: Optional[str] = None


@dataclass
class SyncConfig:
    """Complete configuration of xray-sync."""

    jira: JiraSettings
    xray: XraySettings = field(default_factory=XraySettings)
    cucumber: CucumberSettings = field(default_factory=CucumberSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncConfig":
        """Build the typed configuration from a validated mapping."""
        jira = dict(data.get("jira", {}))
        fields = FieldIds(**(jira.pop("fields", None) or {}))
        field_names = FieldNames(**(jira.pop("field_names", None) or {}))
        xray = data.get("xray", {}) or {}
        status = xray.get("status", {}) or {}
        prefixes = (data.get("cucumber", {}) or {}).get("prefixes", {}) or {}
        return cls(
            jira=JiraSettings(fields=fields, field_names=field_names, **jira),
            xray=XraySettings(
                cloud=xray.get("cloud", False),
                url=xray.get("url"),
                client_id=xray.get("client_id", ""),
                client_secret=xray.get("client_secret", ""),
                status_passed=status.get("passed"),
                status_failed=status.get("failed"),
            ),
            cucumber=CucumberSettings(
                test_prefix=prefixes.get("test"),
                precondition_prefix=prefixes.get("precondition"),
            ),
        )
