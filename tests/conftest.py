"""Shared fixtures for flitevault tests."""

from datetime import datetime

import pytest
import structlog

from flitevault.config import Settings
from flitevault.context import RestoreContext
from flitevault.store import Actor
from tests.harness import ADMIN_AUTH_ID, ADMIN_EMAIL, MemoryStore, sample_tables


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging set up by CLI or API app factories between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def admin() -> Actor:
    return Actor(email=ADMIN_EMAIL, auth_id=ADMIN_AUTH_ID, label=ADMIN_EMAIL)


@pytest.fixture
def store(admin: Actor) -> MemoryStore:
    """Store holding the sample dataset, authenticated as the ops admin."""
    return MemoryStore.seeded(sample_tables(), actor=admin)


@pytest.fixture
def context() -> RestoreContext:
    """Restore context with a frozen clock."""
    return RestoreContext(clock=lambda: datetime(2026, 10, 19, 9, 30, 5))


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        supabase_url="https://portal.example.supabase.co",
        supabase_key="anon-key",
        backup_dir=tmp_path,
    )
