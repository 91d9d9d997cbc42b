"""
Shared fixtures for signed URL tests.
"""
# Load .env BEFORE any other imports (settings read the environment)
from pathlib import Path
from dotenv import load_dotenv

_repo_root = Path(__file__).parent.parent.parent
load_dotenv(_repo_root / ".env")

import pytest

from capurl.core.signing import CapabilityLifecycle, InMemorySaltStore

from capurl.tests.helpers import TEST_SECRET, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def salt_store():
    return InMemorySaltStore()


@pytest.fixture
def lifecycle(salt_store, clock):
    """Lifecycle with the default 1 hour TTL, an in-memory store and a fake clock."""
    return CapabilityLifecycle.from_store(TEST_SECRET, salt_store, clock=clock)
