"""
Feature File Issue References.

Extracts the Jira issues a Cucumber feature file refers to:
- Scenarios reference test issues through tags, e.g. ``@CYP-123`` or
  ``@TestName:CYP-123`` with a configured test prefix.
- Backgrounds reference precondition issues through a comment placed between
  the background line and its first step, e.g. ``#@CYP-111`` or
  ``#@Precondition:CYP-111``.

Every scenario and background must reference exactly one issue.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from gherkin.errors import ParserError
from gherkin.parser import Parser
from loguru import logger

EMPTY_NAME = "<empty>"

HELP_URL_SERVER = "https://docs.getxray.app/display/XRAY/Importing+Cucumber+Tests+-+REST"
HELP_URL_CLOUD = "https://docs.getxray.app/display/XRAYCLOUD/Importing+Cucumber+Tests+-+REST+v2"


class FeatureFileError(Exception):
    """Base class for feature files that cannot be synchronized."""


class FeatureFileParseError(FeatureFileError):
    """Raised when a feature file is not valid Gherkin."""


class MissingIssueKeyError(FeatureFileError):
    """Raised when a scenario or background references no issue."""


class MultipleIssueKeysError(FeatureFileError):
    """Raised when a scenario or background references several issues."""


@dataclass
class CucumberIssueReference:
    """
    A Jira issue referenced by a scenario or background.

    Attributes:
        key: Issue key (e.g., "CYP-123").
        summary: Scenario or background name, which Xray uses as summary.
        tags: Scenario tag names without "@" (empty for preconditions).
    """

    key: str
    summary: str
    tags: List[str] = field(default_factory=list)


@dataclass
class FeatureFileIssueData:
    """All issue references of one feature file."""

    tests: List[CucumberIssueReference] = field(default_factory=list)
    preconditions: List[CucumberIssueReference] = field(default_factory=list)

    @property
    def issue_keys(self) -> List[str]:
        """Keys of all referenced issues, tests first, without duplicates."""
        keys = [ref.key for ref in self.tests] + [ref.key for ref in self.preconditions]
        return list(dict.fromkeys(keys))

    def references(self) -> List[CucumberIssueReference]:
        return self.tests + self.preconditions


def issue_tag_pattern(project_key: str, prefix: Optional[str] = None) -> re.Pattern:
    """
    Build the pattern matching issue tags of a project.

    Examples:
        issue_tag_pattern("CYP")               matches "@CYP-123"
        issue_tag_pattern("CYP", "TestName:")  matches "@TestName:CYP-123"
    """
    return re.compile(f"@{re.escape(prefix or '')}({re.escape(project_key)}-\\d+)")


def extract_issue_references(
    file_path: str | Path,
    project_key: str,
    cloud_mode: bool = False,
    test_prefix: Optional[str] = None,
    precondition_prefix: Optional[str] = None,
) -> FeatureFileIssueData:
    """
    Parse a feature file and collect its issue references.

    Args:
        file_path: Path to the feature file.
        project_key: Jira project key the issue keys belong to.
        cloud_mode: Whether remediation hints should target Xray cloud.
        test_prefix: Tag prefix of test issue tags (e.g., "TestName:").
        precondition_prefix: Tag prefix of precondition comments (e.g., "Precondition:").

    Returns:
        The test and precondition references.

    Raises:
        FeatureFileParseError: If the file cannot be read or parsed.
        MissingIssueKeyError: If a scenario or background references no issue.
        MultipleIssueKeysError: If a scenario or background references several issues.
    """
    document = parse_feature_file(file_path)
    data = FeatureFileIssueData()
    feature = document.get("feature")
    if not feature:
        logger.debug(f"Feature file contains no feature: {file_path}")
        return data

    comments = document.get("comments", [])
    test_pattern = issue_tag_pattern(project_key, test_prefix)
    precondition_pattern = issue_tag_pattern(project_key, precondition_prefix)

    for child in _iter_children(feature):
        if "scenario" in child:
            scenario = child["scenario"]
            tags = [tag["name"] for tag in scenario.get("tags", [])]
            keys = _matches(test_pattern, tags)
            if not keys:
                raise MissingIssueKeyError(
                    _missing_scenario_key_message(scenario, project_key, test_prefix, cloud_mode)
                )
            if len(keys) > 1:
                raise MultipleIssueKeysError(
                    _multiple_scenario_keys_message(scenario, tags, keys, cloud_mode)
                )
            data.tests.append(CucumberIssueReference(
                key=keys[0],
                summary=scenario.get("name") or EMPTY_NAME,
                tags=[name.lstrip("@") for name in tags],
            ))
        elif "background" in child:
            background = child["background"]
            background_comments = _background_comments(background, comments)
            keys = _matches(precondition_pattern, background_comments)
            if not keys:
                raise MissingIssueKeyError(
                    _missing_background_key_message(
                        background, project_key, precondition_prefix, cloud_mode
                    )
                )
            if len(keys) > 1:
                raise MultipleIssueKeysError(
                    _multiple_background_keys_message(background, background_comments, keys, cloud_mode)
                )
            data.preconditions.append(CucumberIssueReference(
                key=keys[0],
                summary=background.get("name") or EMPTY_NAME,
            ))

    logger.debug(
        f"Extracted {len(data.tests)} test and {len(data.preconditions)} precondition "
        f"references from {file_path}"
    )
    return data


def parse_feature_file(file_path: str | Path, encoding: str = "utf-8") -> Dict[str, Any]:
    """
    Parse a feature file into a Gherkin document.

    Raises:
        FeatureFileParseError: If the file cannot be read or is not valid Gherkin.
    """
    path = Path(file_path)
    try:
        content = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise FeatureFileParseError(f"Failed to read feature file {path}: {e}") from e
    try:
        return Parser().parse(content)
    except ParserError as e:
        raise FeatureFileParseError(f"Failed to parse feature file {path}:\n{e}") from e


def _iter_children(node: Dict[str, Any]):
    """Yield scenario and background children, descending into rules."""
    for child in node.get("children", []):
        if "rule" in child:
            yield from _iter_children(child["rule"])
        else:
            yield child


def _matches(pattern: re.Pattern, texts: List[str]) -> List[str]:
    keys = []
    for text in texts:
        match = pattern.search(text)
        if match:
            keys.append(match.group(1))
    return keys


def _background_comments(background: Dict[str, Any], comments: List[Dict[str, Any]]) -> List[str]:
    """Return the comments between the background line and its first step."""
    steps = background.get("steps", [])
    if not steps:
        return []
    start = background["location"]["line"]
    end = steps[0]["location"]["line"]
    return [
        comment["text"].strip()
        for comment in comments
        if start < comment["location"]["line"] < end
    ]


def _help_lines(cloud_mode: bool) -> List[str]:
    return [
        "",
        "For more information, visit:",
        f"- {HELP_URL_CLOUD if cloud_mode else HELP_URL_SERVER}",
    ]


def _default_prefix(prefix: Optional[str], cloud_mode: bool, cloud_default: str) -> str:
    if prefix:
        return prefix
    return cloud_default if cloud_mode else ""


def _missing_scenario_key_message(
    scenario: Dict[str, Any], project_key: str, prefix: Optional[str], cloud_mode: bool
) -> str:
    tag = f"@{_default_prefix(prefix, cloud_mode, 'TestName:')}{project_key}-123"
    lines = [
        f"No test issue keys found in tags of scenario: {scenario.get('name', '')}",
        "You can target existing test issues by adding a corresponding tag:",
        "",
        f"  {tag}",
        f"  {scenario.get('keyword', 'Scenario')}: {scenario.get('name', '')}",
        "    # steps ...",
    ]
    return "\n".join(lines + _help_lines(cloud_mode))


def _multiple_scenario_keys_message(
    scenario: Dict[str, Any], tags: List[str], keys: List[str], cloud_mode: bool
) -> str:
    indicator = " ".join(
        "^" * len(tag) if any(tag.endswith(key) for key in keys) else " " * len(tag)
        for tag in tags
    ).rstrip()
    lines = [
        f"Multiple test issue keys found in tags of scenario: {scenario.get('name', '')}",
        "Cannot decide which one to use:",
        "",
        f"  {' '.join(tags)}",
        f"  {indicator}",
        f"  {scenario.get('keyword', 'Scenario')}: {scenario.get('name', '')}",
        "    # steps ...",
    ]
    return "\n".join(lines + _help_lines(cloud_mode))


def _missing_background_key_message(
    background: Dict[str, Any], project_key: str, prefix: Optional[str], cloud_mode: bool
) -> str:
    tag = f"#@{_default_prefix(prefix, cloud_mode, 'Precondition:')}{project_key}-123"
    lines = [
        f"No precondition issue keys found in comments of background: {background.get('name', '')}",
        "You can target existing precondition issues by adding a corresponding comment:",
        "",
        f"  {background.get('keyword', 'Background')}: {background.get('name', '')}",
        f"    {tag}",
        "    # steps ...",
    ]
    return "\n".join(lines + _help_lines(cloud_mode))


def _multiple_background_keys_message(
    background: Dict[str, Any], comments: List[str], keys: List[str], cloud_mode: bool
) -> str:
    example = [f"  {background.get('keyword', 'Background')}: {background.get('name', '')}"]
    for comment in comments:
        example.append(f"    {comment}")
        if any(comment.endswith(key) for key in keys):
            marker = re.sub(r"\S", "^", comment)
            example.append(f"    {marker}")
    example.append("    # steps ...")
    lines = [
        f"Multiple precondition issue keys found in comments of background: {background.get('name', '')}",
        "Cannot decide which one to use:",
        "",
        *example,
    ]
    return "\n".join(lines + _help_lines(cloud_mode))
