"""
Xray Sync - Core Package.

This package contains the core logic for:
- Configuration: plugin settings with schema validation and migrations.
- Jira Client: Jira and Xray REST API integration.
- Repository: cached Jira field resolution and per-issue field values.
- Cucumber: feature file issue references and synchronization with Xray.
- Reporting: test execution result upload.
"""

__version__ = "0.1.0"
