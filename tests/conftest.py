# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# STATUS: Tests - Fixtures for the job queue suite
# PURPOSE: Frozen clock, in-memory store and wired services
# ============================================================================

from datetime import datetime, timezone

import pytest

from core.clock import FrozenClock
from core.config.defaults import RetryDefaults
from services import JobService
from tests.fakes import InMemoryJobStore

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def service(store, clock):
    return JobService.build(store, clock=clock, retry_defaults=RetryDefaults(base=5))


@pytest.fixture
def make_service(store, clock):
    """Build a JobService with a custom state-change hook."""
    def _make(hook=None, retry_defaults=None):
        return JobService.build(
            store,
            clock=clock,
            retry_defaults=retry_defaults or RetryDefaults(base=5),
            state_change_hook=hook,
        )
    return _make
