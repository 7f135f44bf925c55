"""
Pytest configuration to ensure paths are set up correctly for tests.

This allows imports like `from handlers import main` to work when running
tests, simulating the Lambda environment where code is deployed from the
src/ directory.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import boto3
import pytest


def _ensure_paths_on_sys_path() -> None:
    """Add repository root AND src/ to sys.path if missing.

    The src/ directory is added to simulate Lambda's import behavior,
    where the deployment package makes src/ the root of the code.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"

    root_str = str(repo_root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)

    src_str = str(src_root)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


_ensure_paths_on_sys_path()

# Ensure boto3 has offline-friendly defaults so tests do not require AWS access.
os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_SESSION_TOKEN", "test")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("BEDROCK_REGION", "eu-west-2")
os.environ.setdefault("MODEL_ID", "anthropic.claude-3-haiku-20240307-v1:0")

# Create a default boto3 session so resources/clients do not error during import.
boto3.setup_default_session(region_name="eu-west-2")

from repositories.memory_store import InMemoryTicketStore  # noqa: E402
from utils.clock import FixedClock  # noqa: E402

START = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def make_sql_store():
    """SqlTicketStore on a shared in-memory SQLite database."""
    from sqlalchemy import create_engine
    from sqlalchemy.pool import StaticPool

    from repositories.sql_store import SqlTicketStore

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlTicketStore(engine)
    store.create_schema()
    return store


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def store():
    return InMemoryTicketStore()


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Runs a test against both store implementations."""
    if request.param == "memory":
        return InMemoryTicketStore()
    return make_sql_store()

