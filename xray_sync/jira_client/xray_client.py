"""
Xray REST API Client.

Provides a dedicated client for interacting with the Xray REST API:
- Authentication (token-based or basic auth on server, client credentials on cloud).
- Importing test execution results (Xray JSON format).
- Importing Cucumber feature files, which creates or updates test and
  precondition issues.

Xray server/DC and Xray cloud return differently shaped feature import
responses. Both are normalized into an ImportFeatureResponse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from loguru import logger


class XrayClientError(Exception):
    """Raised when an Xray API operation fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class XrayConfig:
    """Configuration for the Xray API client."""

    base_url: str
    project_key: str
    cloud: bool = False
    auth_method: str = "token"  # "token" or "basic" (server only)
    api_token: str = ""
    username: str = ""
    password: str = ""
    client_id: str = ""
    client_secret: str = ""
    timeout_sec: int = 30
    verify_ssl: bool = True


@dataclass
class ImportFeatureResponse:
    """
    Summarized response of a Cucumber feature file import.

    Attributes:
        updated_or_created_issues: Keys of all issues Xray created or updated.
        errors: Errors Xray reported, e.g. for typos in Gherkin keywords.
    """

    updated_or_created_issues: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class XrayClient:
    """
    Client for the Xray REST API.

    Usage::

        client = XrayClient(
            base_url="https://jira.example.com",
            project_key="CYP",
            auth_method="token",
            api_token="your-token-here",
        )
        response = client.import_feature("features/login.feature", "CYP")
        # response.updated_or_created_issues == ["CYP-101", "CYP-102"]
    """

    CLOUD_URL = "https://xray.cloud.getxray.app"

    ENDPOINTS = {
        # Xray Server/DC endpoints
        "import_execution": "/rest/raven/latest/import/execution",
        "import_feature": "/rest/raven/latest/import/feature",
        # Xray Cloud endpoints
        "cloud_authenticate": "/api/v2/authenticate",
        "cloud_import_execution": "/api/v2/import/execution",
        "cloud_import_feature": "/api/v2/import/feature",
    }

    def __init__(
        self,
        base_url: str = "",
        project_key: str = "",
        cloud: bool = False,
        auth_method: str = "token",
        api_token: str = "",
        username: str = "",
        password: str = "",
        client_id: str = "",
        client_secret: str = "",
        timeout_sec: int = 30,
        verify_ssl: bool = True,
        config: Optional[XrayConfig] = None,
    ) -> None:
        """
        Initialize the Xray client.

        Args:
            base_url: Jira instance base URL (server) or Xray cloud URL.
            project_key: Jira project key (e.g., "CYP").
            cloud: Whether to talk to Xray cloud instead of Xray server.
            auth_method: Authentication method on server ("token" or "basic").
            api_token: API token for token-based auth.
            username: Username for basic auth.
            password: Password for basic auth.
            client_id: Xray cloud API key client ID.
            client_secret: Xray cloud API key client secret.
            timeout_sec: Request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            config: Optional XrayConfig dataclass (overrides individual params).
        """
        if config:
            self._config = config
        else:
            self._config = XrayConfig(
                base_url=(base_url or (self.CLOUD_URL if cloud else "")).rstrip("/"),
                project_key=project_key,
                cloud=cloud,
                auth_method=auth_method,
                api_token=api_token,
                username=username,
                password=password,
                client_id=client_id,
                client_secret=client_secret,
                timeout_sec=timeout_sec,
                verify_ssl=verify_ssl,
            )

        self._session: Optional[requests.Session] = None
        logger.info(
            f"XrayClient initialized, project={self._config.project_key}, "
            f"url={self._config.base_url}, cloud={self._config.cloud}"
        )

    @property
    def is_cloud(self) -> bool:
        """Whether this client talks to Xray cloud."""
        return self._config.cloud

    @property
    def is_configured(self) -> bool:
        """Check if the client has minimum configuration to operate."""
        return bool(self._config.base_url and self._config.project_key)

    def _get_session(self) -> requests.Session:
        """
        Get or create an HTTP session with proper authentication headers.

        Returns:
            requests.Session configured with auth.
        """
        if self._session is None:
            self._session = requests.Session()
            self._session.verify = self._config.verify_ssl
            self._session.headers.update({"Accept": "application/json"})

            if self._config.cloud:
                token = self._authenticate_cloud(self._session)
                self._session.headers["Authorization"] = f"Bearer {token}"
            elif self._config.auth_method == "token":
                self._session.headers["Authorization"] = (
                    f"Bearer {self._config.api_token}"
                )
            elif self._config.auth_method == "basic":
                self._session.auth = (
                    self._config.username,
                    self._config.password,
                )

        return self._session

    def _authenticate_cloud(self, session: requests.Session) -> str:
        """Exchange the cloud API key for a bearer token."""
        url = f"{self._config.base_url}{self.ENDPOINTS['cloud_authenticate']}"
        logger.debug(f"Authenticating to Xray cloud: {url}")
        try:
            response = session.post(
                url,
                json={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                },
                timeout=self._config.timeout_sec,
            )
            response.raise_for_status()
            # The endpoint answers with a JSON string literal.
            return str(response.json()).strip('"')
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Xray cloud authentication failed: {e}")
            raise XrayClientError(f"Failed to authenticate to Xray cloud: {e}") from e

    def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> Any:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method (GET, POST, PUT).
            endpoint: API endpoint path.
            **kwargs: Additional arguments for requests (json, data, params, files).

        Returns:
            Parsed JSON response.

        Raises:
            XrayClientError: If the request fails.
        """
        session = self._get_session()
        url = f"{self._config.base_url}{endpoint}"
        logger.debug(f"Xray API {method} {url}")

        try:
            response = session.request(
                method=method,
                url=url,
                timeout=self._config.timeout_sec,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logger.error(f"Xray API HTTP error: {e} (status={status_code})")
            raise XrayClientError(
                f"Xray API request failed: {e}", status_code=status_code
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Xray API connection error: {e}")
            raise XrayClientError(f"Cannot connect to Xray: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Xray API timeout: {e}")
            raise XrayClientError(
                f"Xray API request timed out after {self._config.timeout_sec}s"
            ) from e
        except ValueError as e:
            logger.error(f"Xray API returned invalid JSON: {e}")
            raise XrayClientError(f"Invalid JSON response from Xray: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Xray API request error: {e}")
            raise XrayClientError(f"Xray API request failed: {e}") from e

    # ------------------------------------------------------------------
    # Test Execution Operations
    # ------------------------------------------------------------------

    def import_execution(self, results_json: Dict[str, Any]) -> str:
        """
        Import test execution results to Xray via JSON format.

        Args:
            results_json: Xray-formatted results dictionary.

        Returns:
            Key of the created or updated Test Execution issue.

        Raises:
            XrayClientError: If import fails.
        """
        logger.info(f"Importing execution results to Xray ({len(results_json.get('tests', []))} tests)")
        key = "cloud_import_execution" if self._config.cloud else "import_execution"
        response = self._request("POST", self.ENDPOINTS[key], json=results_json)

        if not isinstance(response, dict):
            raise XrayClientError(f"Unexpected import execution response: {response!r}")
        if self._config.cloud:
            exec_key = response.get("key", "")
        else:
            exec_key = (response.get("testExecIssue") or {}).get("key", "")
        logger.info(f"Results imported: {exec_key or 'N/A'}")
        return exec_key

    # ------------------------------------------------------------------
    # Feature File Operations
    # ------------------------------------------------------------------

    def import_feature(
        self,
        file_path: str | Path,
        project_key: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> ImportFeatureResponse:
        """
        Import a Cucumber feature file to Xray.

        Xray creates or updates the test and precondition issues referenced
        by the file and overwrites their summaries and labels in the process.

        Args:
            file_path: Path to the feature file.
            project_key: Override project key (defaults to configured).
            file_name: Name sent with the upload (defaults to the file name).

        Returns:
            Normalized import response.

        Raises:
            XrayClientError: If the import request fails.
        """
        path = Path(file_path)
        project = project_key or self._config.project_key
        logger.info(f"Importing feature file: {path} (project={project})")

        key = "cloud_import_feature" if self._config.cloud else "import_feature"
        with path.open("rb") as f:
            response = self._request(
                "POST",
                self.ENDPOINTS[key],
                params={"projectKey": project},
                files={"file": (file_name or path.name, f, "text/plain")},
            )

        if self._config.cloud:
            return self._parse_cloud_feature_response(response)
        return self._parse_server_feature_response(response)

    @staticmethod
    def _parse_server_feature_response(response: Any) -> ImportFeatureResponse:
        """
        Normalize an Xray server feature import response.

        On success the server returns a plain list of issues. When scenarios
        cause errors (e.g. typos in Gherkin keywords) it returns an object with
        a message and the issues that were still processed.
        """
        result = ImportFeatureResponse()
        if isinstance(response, list):
            keys = [issue["key"] for issue in response if isinstance(issue, dict) and "key" in issue]
            result.updated_or_created_issues.extend(keys)
            logger.debug(f"Successfully updated or created issues: {', '.join(keys)}")
            return result

        if not isinstance(response, dict):
            result.errors.append(f"Unexpected feature import response: {response!r}")
            return result

        if response.get("message"):
            result.errors.append(str(response["message"]))
            logger.debug(f"Encountered an error during feature file import: {response['message']}")
        for group in ("testIssues", "preconditionIssues"):
            keys = [issue["key"] for issue in response.get(group) or [] if "key" in issue]
            if keys:
                result.updated_or_created_issues.extend(keys)
                logger.debug(f"Successfully updated or created {group}: {', '.join(keys)}")
        return result

    @staticmethod
    def _parse_cloud_feature_response(response: Any) -> ImportFeatureResponse:
        """Normalize an Xray cloud feature import response."""
        result = ImportFeatureResponse()
        if not isinstance(response, dict):
            result.errors.append(f"Unexpected feature import response: {response!r}")
            return result

        errors = [str(error) for error in response.get("errors") or []]
        if errors:
            result.errors.extend(errors)
            logger.debug("Encountered some errors during feature file import:\n" + "\n".join(
                f"- {error}" for error in errors
            ))
        for group in ("updatedOrCreatedTests", "updatedOrCreatedPreconditions"):
            keys = [issue["key"] for issue in response.get(group) or [] if "key" in issue]
            if keys:
                result.updated_or_created_issues.extend(keys)
                logger.debug(f"Successfully updated or created {group}: {', '.join(keys)}")
        return result

    def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None
            logger.debug("Xray client session closed")
