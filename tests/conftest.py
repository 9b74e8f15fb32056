"""Shared test fixtures for sql-export."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from typer.testing import CliRunner

from sql_export.core.models import ExportConfiguration

_CONNECTION_ENV_VARS = (
    "PGHOST",
    "PGPORT",
    "PGDATABASE",
    "PGUSER",
    "PGPASSWORD",
    "SQL_EXPORT_PROFILE",
)


@pytest.fixture
def runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove connection environment variables that would leak into resolution."""
    for name in _CONNECTION_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def export_config():
    """Default export configuration (comma, CRLF, double quotes)."""
    return ExportConfiguration()
