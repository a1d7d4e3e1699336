"""
Root conftest.py, shared Pytest fixtures.

Provides fixtures for:
- Capturing loguru output
- Mocked Jira and Xray clients
- Jira field descriptors
- Feature files written to a temporary directory
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Generator, List, Tuple
from unittest.mock import MagicMock

import pytest
from loguru import logger

from xray_sync.jira_client.jira_client import FieldDescriptor, JiraClient
from xray_sync.jira_client.xray_client import XrayClient


class LogCapture:
    """Collects (level, message) pairs emitted through loguru."""

    def __init__(self) -> None:
        self.records: List[Tuple[str, str]] = []

    def sink(self, message) -> None:
        record = message.record
        self.records.append((record["level"].name, record["message"]))

    def messages(self, level: str) -> List[str]:
        return [text for name, text in self.records if name == level]


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture
def log_messages() -> Generator[LogCapture, None, None]:
    """Capture every loguru message emitted during a test."""
    capture = LogCapture()
    handler_id = logger.add(capture.sink, level="DEBUG", format="{message}")
    yield capture
    logger.remove(handler_id)


# ---------------------------------------------------------------------------
# Jira fields
# ---------------------------------------------------------------------------


def make_field(field_id: str, name: str, custom: bool = False) -> FieldDescriptor:
    """Build a field descriptor as returned by GET /rest/api/2/field."""
    return FieldDescriptor(
        id=field_id,
        name=name,
        custom=custom,
        clause_names=(name.lower(),),
        schema={"type": "string"},
    )


@pytest.fixture
def jira_fields() -> List[FieldDescriptor]:
    """The fields of a typical Jira server instance with Xray installed."""
    return [
        make_field("summary", "Summary"),
        make_field("description", "Description"),
        make_field("labels", "Labels"),
        make_field("customfield_12100", "Test Type", custom=True),
        make_field("customfield_12101", "Test Plan", custom=True),
    ]


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


@pytest.fixture
def jira_client(jira_fields: List[FieldDescriptor]) -> MagicMock:
    """A Jira client mock serving the default field list."""
    client = MagicMock(spec=JiraClient)
    client.get_fields.return_value = jira_fields
    client.search.return_value = []
    return client


@pytest.fixture
def xray_client() -> MagicMock:
    """An Xray server client mock."""
    client = MagicMock(spec=XrayClient)
    client.is_cloud = False
    return client


# ---------------------------------------------------------------------------
# Feature files
# ---------------------------------------------------------------------------


@pytest.fixture
def feature_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Factory writing feature file content to the temporary directory."""

    def _write(content: str, name: str = "login.feature") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
