"""
Shared pytest fixtures and configuration for layerstore tests.

This module provides:
- Auto-marking of unit/integration tests by location
- An in-memory SQLite database with the sample tables
- Storage engines and repositories wired to a recording connection
- A deterministic clock for timestamp assertions

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments:

    def test_store(users_repo, recorder):
        ...
"""

import sqlite3
import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure layerstore and the test support package are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from layerstore.core.logging import clear_context
from layerstore.persistence import Repository, SimpleEntityFactory, StorageEngine
from tests._support.models import (
    FIXED_NOW,
    MEMBERSHIPS,
    MEMBERSHIPS_DDL,
    USERS,
    USERS_DDL,
    Membership,
    RecordingConnection,
    User,
    insert_user,
)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path) or "_bridge" in test_path.name:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_log_context() -> Generator[None, None, None]:
    """Keep bound structlog context from leaking between tests."""
    clear_context()
    yield
    clear_context()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite (autocommit) with the ``users`` and ``memberships`` tables."""
    conn = sqlite3.connect(":memory:", isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute(USERS_DDL)
    conn.execute(MEMBERSHIPS_DDL)
    yield conn
    conn.close()


@pytest.fixture
def recorder(db: sqlite3.Connection) -> RecordingConnection:
    return RecordingConnection(db)


@pytest.fixture
def clock() -> str:
    return FIXED_NOW


@pytest.fixture
def users_engine(recorder: RecordingConnection, clock: str) -> StorageEngine:
    return StorageEngine(recorder, USERS, clock=lambda: clock)


@pytest.fixture
def memberships_engine(recorder: RecordingConnection, clock: str) -> StorageEngine:
    return StorageEngine(recorder, MEMBERSHIPS, clock=lambda: clock)


@pytest.fixture
def users_repo(users_engine: StorageEngine) -> Repository:
    return Repository(users_engine, SimpleEntityFactory(User))


@pytest.fixture
def memberships_repo(memberships_engine: StorageEngine) -> Repository:
    return Repository(memberships_engine, SimpleEntityFactory(Membership))


@pytest.fixture
def seed_users(db: sqlite3.Connection) -> Generator[list[int], None, None]:
    """Three users: ann (active), bob (active), cid (blocked)."""
    ids = [
        insert_user(db, "ann@example.com", full_name="Ann Lee", status="active"),
        insert_user(db, "bob@example.com", full_name="Bob Stone", status="active"),
        insert_user(db, "cid@example.org", full_name="Cid Lee", status="blocked"),
    ]
    yield ids
