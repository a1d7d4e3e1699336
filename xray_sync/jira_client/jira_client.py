"""
Jira REST API Client.

Provides the Jira operations needed around Xray synchronization:
- Listing all issue fields (for field name to ID resolution).
- Searching issues via JQL with field projection.
- Editing issue fields.
- Attaching files to issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from loguru import logger


class JiraClientError(Exception):
    """Raised when a Jira API operation fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class FieldDescriptor:
    """
    A Jira issue field as returned by the field listing endpoint.

    Attributes:
        id: Field ID, unique per Jira instance (e.g., "customfield_12100").
        name: Display name (e.g., "Test Type").
        custom: Whether the field is a custom field.
        clause_names: JQL clause names of the field.
        schema: Raw schema description of the field.
    """

    id: str
    name: str
    custom: bool = False
    clause_names: tuple = ()
    schema: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        """Build a descriptor from a field JSON object."""
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            custom=bool(data.get("custom", False)),
            clause_names=tuple(data.get("clauseNames", ())),
            schema=dict(data.get("schema") or {}),
        )

    def describe(self) -> str:
        """Return a one-line human readable representation."""
        return (
            f"id: {self.id}, name: {self.name}, custom: {self.custom}, "
            f"clauseNames: {list(self.clause_names)}"
        )


@dataclass
class JiraConfig:
    """Configuration for the Jira API client."""

    base_url: str
    auth_method: str = "token"  # "token" or "basic"
    api_token: str = ""
    username: str = ""
    password: str = ""
    timeout_sec: int = 30
    verify_ssl: bool = True
    page_size: int = 50


class JiraClient:
    """
    Client for the Jira REST API.

    Server/DC instances authenticate with a personal access token ("token"),
    cloud instances with e-mail address and API token ("basic").

    Usage::

        client = JiraClient(
            base_url="https://jira.example.com",
            auth_method="token",
            api_token="your-token-here",
        )
        issues = client.search("issue in (CYP-1,CYP-2)", fields=["summary"])
    """

    API_PREFIX = "/rest/api/2"

    def __init__(
        self,
        base_url: str = "",
        auth_method: str = "token",
        api_token: str = "",
        username: str = "",
        password: str = "",
        timeout_sec: int = 30,
        verify_ssl: bool = True,
        config: Optional[JiraConfig] = None,
    ) -> None:
        """
        Initialize the Jira client.

        Args:
            base_url: Jira instance base URL.
            auth_method: Authentication method ("token" or "basic").
            api_token: Personal access token for token-based auth.
            username: Username (or e-mail address) for basic auth.
            password: Password (or API token) for basic auth.
            timeout_sec: Request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            config: Optional JiraConfig dataclass (overrides individual params).
        """
        if config:
            self._config = config
            self._config.base_url = config.base_url.rstrip("/")
        else:
            self._config = JiraConfig(
                base_url=base_url.rstrip("/"),
                auth_method=auth_method,
                api_token=api_token,
                username=username,
                password=password,
                timeout_sec=timeout_sec,
                verify_ssl=verify_ssl,
            )
        self._session: Optional[requests.Session] = None
        logger.info(f"JiraClient initialized, url={self._config.base_url}")

    @property
    def is_configured(self) -> bool:
        """Check if the client has minimum configuration to operate."""
        return bool(self._config.base_url)

    def _get_session(self) -> requests.Session:
        """Get or create an HTTP session with authentication headers."""
        if self._session is None:
            self._session = requests.Session()
            self._session.verify = self._config.verify_ssl
            self._session.headers.update({"Accept": "application/json"})

            if self._config.auth_method == "token":
                self._session.headers["Authorization"] = (
                    f"Bearer {self._config.api_token}"
                )
            elif self._config.auth_method == "basic":
                self._session.auth = (
                    self._config.username,
                    self._config.password,
                )

        return self._session

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method (GET, POST, PUT).
            endpoint: API endpoint path.
            **kwargs: Additional arguments for requests (json, params, files, headers).

        Returns:
            Parsed JSON response, or None for empty responses.

        Raises:
            JiraClientError: If the request fails.
        """
        session = self._get_session()
        url = f"{self._config.base_url}{endpoint}"
        logger.debug(f"Jira API {method} {url}")

        try:
            response = session.request(
                method=method,
                url=url,
                timeout=self._config.timeout_sec,
                **kwargs,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logger.error(f"Jira API HTTP error: {e} (status={status_code})")
            raise JiraClientError(
                f"Jira API request failed: {e}", status_code=status_code
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Jira API connection error: {e}")
            raise JiraClientError(f"Cannot connect to Jira: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Jira API timeout: {e}")
            raise JiraClientError(
                f"Jira API request timed out after {self._config.timeout_sec}s"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Jira API request error: {e}")
            raise JiraClientError(f"Jira API request failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Jira API returned invalid JSON: {e}")
            raise JiraClientError(
                f"Invalid JSON response from Jira: {e}", status_code=response.status_code
            ) from e

    # ------------------------------------------------------------------
    # Field Operations
    # ------------------------------------------------------------------

    def get_fields(self) -> Optional[List[FieldDescriptor]]:
        """
        Fetch all issue fields of the Jira instance.

        Returns:
            List of field descriptors, or None if Jira returned no list.
        """
        logger.debug("Getting fields...")
        response = self._request("GET", f"{self.API_PREFIX}/field")
        if not isinstance(response, list):
            logger.warning(f"Unexpected field list response: {response!r}")
            return None

        fields = [
            FieldDescriptor.from_json(entry)
            for entry in response
            if isinstance(entry, dict) and "id" in entry
        ]
        logger.debug(f"Successfully retrieved data for {len(fields)} fields")
        return fields

    # ------------------------------------------------------------------
    # Issue Operations
    # ------------------------------------------------------------------

    def search(self, jql: str, fields: List[str]) -> Optional[List[Dict[str, Any]]]:
        """
        Search issues using JQL, following pagination until all are fetched.

        Args:
            jql: JQL filter (e.g., "issue in (CYP-1,CYP-2)").
            fields: Field IDs to include in the returned issues.

        Returns:
            List of issue JSON objects (deduplicated by key), or None if
            Jira returned no search result at all.
        """
        logger.debug(f"Searching issues: {jql}")
        results: Dict[str, Dict[str, Any]] = {}
        unkeyed: List[Dict[str, Any]] = []
        start_at = 0
        total = 0
        received_any = False

        while True:
            payload = {
                "jql": jql,
                "fields": fields,
                "startAt": start_at,
                "maxResults": self._config.page_size,
            }
            response = self._request("POST", f"{self.API_PREFIX}/search", json=payload)
            if not isinstance(response, dict):
                break
            received_any = True
            issues = response.get("issues") or []
            total = response.get("total", total) or 0
            for issue in issues:
                if isinstance(issue, dict) and issue.get("key"):
                    results[issue["key"]] = issue
                elif isinstance(issue, dict):
                    unkeyed.append(issue)
            if not issues or not isinstance(response.get("startAt"), int):
                break
            start_at = response["startAt"] + len(issues)
            if start_at >= total:
                break

        if not received_any:
            return None
        logger.debug(f"Found {total} issues")
        return list(results.values()) + unkeyed

    def edit_issue(self, issue_key: str, update: Dict[str, Any]) -> str:
        """
        Edit an issue.

        Args:
            issue_key: Key of the issue to edit (e.g., "CYP-123").
            update: Issue update payload, e.g. {"fields": {"summary": "Hello"}}.

        Returns:
            The key of the edited issue.
        """
        logger.debug(f"Editing issue {issue_key}: {list(update.get('fields', {}))}")
        self._request(
            "PUT",
            f"{self.API_PREFIX}/issue/{issue_key}",
            json=update,
        )
        logger.debug(f"Successfully edited issue: {issue_key}")
        return issue_key

    def add_attachment(self, issue_key: str, *files: str) -> List[Dict[str, Any]]:
        """
        Attach files to an issue. Missing files are skipped.

        Args:
            issue_key: Key of the issue to attach files to.
            *files: Paths of the files to upload.

        Returns:
            Attachment JSON objects returned by Jira.
        """
        existing = [Path(f) for f in files if Path(f).is_file()]
        for missing in set(files) - {str(p) for p in existing}:
            logger.warning(f"File does not exist: {missing}")
        if not existing:
            logger.warning(f"No files to attach to issue {issue_key}, skipping")
            return []

        handles = [path.open("rb") for path in existing]
        try:
            response = self._request(
                "POST",
                f"{self.API_PREFIX}/issue/{issue_key}/attachments",
                files=[("file", (p.name, h)) for p, h in zip(existing, handles)],
                headers={"X-Atlassian-Token": "no-check"},
            )
        finally:
            for handle in handles:
                handle.close()

        attachments = response if isinstance(response, list) else []
        logger.info(
            f"Attached {len(attachments)} file(s) to {issue_key}: "
            f"{[a.get('filename') for a in attachments]}"
        )
        return attachments

    def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None
            logger.debug("Jira client session closed")
