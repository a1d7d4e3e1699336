"""
xray-sync command line interface.

Usage:
    xray-sync --config xray_sync.yaml sync-features cypress/e2e/*.feature
    xray-sync --config xray_sync.yaml upload results.json --summary "Nightly run" --attach
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from loguru import logger

from xray_sync import __version__
from xray_sync.config.loader import ConfigLoader, ConfigurationError
from xray_sync.config.settings import SyncConfig
from xray_sync.cucumber.synchronizer import FeatureFileSynchronizer
from xray_sync.jira_client.jira_client import JiraClient
from xray_sync.jira_client.xray_client import XrayClient
from xray_sync.reporting.uploader import ResultFileError, ResultUploader
from xray_sync.repository.fetching import IssueFieldFetcher
from xray_sync.repository.fields import FieldResolver
from xray_sync.repository.issues import IssueMetadataRepository


@dataclass
class SyncContext:
    """
    Collaborators of one run, shared by every command of the run so that
    field IDs and issue values are fetched at most once.
    """

    config: SyncConfig
    jira_client: JiraClient
    xray_client: XrayClient
    resolver: FieldResolver
    repository: IssueMetadataRepository

    @classmethod
    def from_config(cls, config: SyncConfig) -> "SyncContext":
        jira = config.jira
        jira_client = JiraClient(
            base_url=jira.url,
            auth_method=jira.auth_method,
            api_token=jira.api_token,
            username=jira.username,
            password=jira.password,
            timeout_sec=jira.timeout_sec,
            verify_ssl=jira.verify_ssl,
        )
        xray_client = XrayClient(
            base_url=config.xray.url or ("" if config.xray.cloud else jira.url),
            project_key=jira.project_key,
            cloud=config.xray.cloud,
            auth_method=jira.auth_method,
            api_token=jira.api_token,
            username=jira.username,
            password=jira.password,
            client_id=config.xray.client_id,
            client_secret=config.xray.client_secret,
            timeout_sec=jira.timeout_sec,
            verify_ssl=jira.verify_ssl,
        )
        resolver = FieldResolver(jira_client)
        repository = IssueMetadataRepository(
            resolver=resolver,
            fetcher=IssueFieldFetcher(jira_client),
            field_ids=jira.fields.as_mapping(),
            field_names=jira.field_names.as_mapping(),
        )
        return cls(config, jira_client, xray_client, resolver, repository)

    def synchronizer(self) -> FeatureFileSynchronizer:
        return FeatureFileSynchronizer(
            jira_client=self.jira_client,
            xray_client=self.xray_client,
            repository=self.repository,
            project_key=self.config.jira.project_key,
            cloud_mode=self.config.xray.cloud,
            test_prefix=self.config.cucumber.test_prefix,
            precondition_prefix=self.config.cucumber.precondition_prefix,
        )

    def uploader(self) -> ResultUploader:
        return ResultUploader(
            jira_client=self.jira_client,
            xray_client=self.xray_client,
            repository=self.repository,
            project_key=self.config.jira.project_key,
            test_exec_key=self.config.jira.test_execution_issue_key,
            status_passed=self.config.xray.status_passed,
            status_failed=self.config.xray.status_failed,
        )

    def close(self) -> None:
        self.jira_client.close()
        self.xray_client.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="xray-sync",
        description="Synchronize Cucumber feature files and test results with Jira Xray",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=str,
        default="xray_sync.yaml",
        help="Path to the configuration file (default: xray_sync.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug output",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync-features", help="Import feature files to Xray")
    sync.add_argument("files", nargs="+", help="Feature files to synchronize")
    sync.add_argument(
        "--project-root",
        type=str,
        default=".",
        help="Directory feature file paths are made relative to (default: .)",
    )

    upload = subparsers.add_parser("upload", help="Upload a results file as test execution")
    upload.add_argument("results", help="JSON results file")
    upload.add_argument("--summary", type=str, default=None, help="Test execution summary")
    upload.add_argument(
        "--attach",
        action="store_true",
        help="Attach the results file to the test execution issue",
    )
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def run_sync_features(context: SyncContext, files: List[str], project_root: str) -> int:
    synchronizer = context.synchronizer()
    for file_path in files:
        synchronizer.synchronize(Path(file_path), Path(project_root))
    logger.info(f"[xray-sync] Synchronized {len(files)} feature file(s)")
    return 0


def run_upload(context: SyncContext, results: str, summary: Optional[str], attach: bool) -> int:
    try:
        execution_key = context.uploader().upload(results, summary=summary, attach=attach)
    except ResultFileError as e:
        logger.error(f"[xray-sync] {e}")
        return 1
    if execution_key:
        logger.info(f"[xray-sync] Test execution: {execution_key}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point of xray-sync."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = ConfigLoader().load_sync_config(args.config)
    except ConfigurationError as e:
        logger.error(f"[xray-sync] {e}")
        return 1

    context = SyncContext.from_config(config)
    try:
        if args.command == "sync-features":
            return run_sync_features(context, args.files, args.project_root)
        return run_upload(context, args.results, args.summary, args.attach)
    finally:
        context.close()


if __name__ == "__main__":
    sys.exit(main())
