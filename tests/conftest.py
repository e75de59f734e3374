"""
Shared pytest fixtures for Session Keeper tests.

This module provides:
- FakeClock: a controllable time source for age and TTL scenarios
- FlakyStore: an in-memory store that fails selected operations
- Redis mocks for RedisSessionStore tests
"""

import os
import sys
from datetime import timedelta
from typing import Iterable, Optional
from unittest.mock import AsyncMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from session_keeper.sessions import InMemorySessionStore, SessionManager, SessionStoreError

SESSION_DURATION = timedelta(seconds=3600)
REGENERATE_AFTER = timedelta(seconds=1800)
T0 = 1_700_000_000.0


class FakeClock:
    """Callable time source that only moves when told to."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyStore(InMemorySessionStore):
    """In-memory store whose named operations raise SessionStoreError on demand."""

    def __init__(self, clock, fail_on: Optional[Iterable[str]] = None):
        super().__init__(clock=clock)
        self.fail_on = set(fail_on or ())
        self.calls = []

    def _maybe_fail(self, operation: str, session_id: str) -> None:
        self.calls.append((operation, session_id))
        if operation in self.fail_on:
            raise SessionStoreError(operation.upper(), session_id, detail="injected failure")

    async def hset(self, session_id, fields):
        self._maybe_fail("hset", session_id)
        await super().hset(session_id, fields)

    async def hget(self, session_id, field):
        self._maybe_fail("hget", session_id)
        return await super().hget(session_id, field)

    async def hgetall(self, session_id):
        self._maybe_fail("hgetall", session_id)
        return await super().hgetall(session_id)

    async def expire(self, session_id, ttl):
        self._maybe_fail("expire", session_id)
        await super().expire(session_id, ttl)

    async def clear(self, session_id):
        self._maybe_fail("clear", session_id)
        await super().clear(session_id)

    async def claim_rotation(self, session_id, new_session_id, ttl):
        self._maybe_fail("claim_rotation", session_id)
        return await super().claim_rotation(session_id, new_session_id, ttl)

    async def release_rotation(self, session_id, new_session_id):
        self._maybe_fail("release_rotation", session_id)
        return await super().release_rotation(session_id, new_session_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def flaky_store(clock):
    return FlakyStore(clock)


def make_manager(store, clock, rotation_lease: Optional[timedelta] = None) -> SessionManager:
    return SessionManager(
        store=store,
        session_duration=SESSION_DURATION,
        regenerate_after=REGENERATE_AFTER,
        clock=clock,
        rotation_lease=rotation_lease,
    )


@pytest.fixture
def manager(memory_store, clock):
    return make_manager(memory_store, clock)


@pytest.fixture
def mock_redis():
    """Create a mock async Redis client covering the commands the session store uses."""
    redis = AsyncMock()
    redis.hset = AsyncMock(return_value=1)
    redis.hget = AsyncMock(return_value=None)
    redis.hgetall = AsyncMock(return_value={})
    redis.hdel = AsyncMock(return_value=1)
    redis.expire = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.set = AsyncMock(return_value=True)
    redis.get = AsyncMock(return_value=None)
    redis.ttl = AsyncMock(return_value=-2)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    return redis
