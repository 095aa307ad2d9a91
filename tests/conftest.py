"""
Shared pytest fixtures for waitingflow tests.

This module provides common fixtures including:
- InMemorySortedSetRedis: async Redis double with sorted-set and SCAN support
- Store, token issuer and queue manager wired to the double
- A manual clock so arrival order is deterministic
"""

import asyncio
import fnmatch
import logging
import os
import sys
from typing import Dict, List, Optional, Tuple

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from waitingflow.modules.queue import QueueManager
from waitingflow.modules.storage import RedisOrderedQueueStore
from waitingflow.modules.token import TokenCache, TokenIssuer


# =============================================================================
# Redis Double
# =============================================================================


class InMemorySortedSetRedis:
    """
    Subset of redis.asyncio.Redis backed by dicts.

    Members are ordered by (score, member), which is how Redis breaks score
    ties. SCAN pages through keys in sorted order, `count` keys at a time.
    Every command yields to the event loop before running, like a network
    round-trip would, so concurrent callers interleave between commands.
    """

    def __init__(self):
        self._zsets: Dict[str, Dict[str, float]] = {}
        self.calls: List[Tuple[str, tuple]] = []

    def _ordered(self, key: str) -> List[Tuple[str, float]]:
        zset = self._zsets.get(key, {})
        return sorted(zset.items(), key=lambda item: (item[1], item[0]))

    async def zadd(self, key: str, mapping: Dict[str, float], nx: bool = False) -> int:
        await asyncio.sleep(0)
        self.calls.append(("zadd", (key, mapping, nx)))
        zset = self._zsets.setdefault(key, {})
        added = 0
        for member, score in mapping.items():
            if member in zset:
                if nx:
                    continue
            else:
                added += 1
            zset[member] = float(score)
        return added

    async def zrank(self, key: str, member: str) -> Optional[int]:
        await asyncio.sleep(0)
        self.calls.append(("zrank", (key, member)))
        for index, (m, _) in enumerate(self._ordered(key)):
            if m == member:
                return index
        return None

    async def zpopmin(self, key: str, count: int = 1) -> List[Tuple[str, float]]:
        await asyncio.sleep(0)
        self.calls.append(("zpopmin", (key, count)))
        popped = self._ordered(key)[:count]
        zset = self._zsets.get(key, {})
        for member, _ in popped:
            del zset[member]
        if key in self._zsets and not zset:
            # Redis deletes empty keys
            del self._zsets[key]
        return popped

    async def zcard(self, key: str) -> int:
        return len(self._zsets.get(key, {}))

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None):
        await asyncio.sleep(0)
        self.calls.append(("scan", (cursor, match, count)))
        keys = sorted(k for k in self._zsets if match is None or fnmatch.fnmatchcase(k, match))
        step = count or 10
        page = keys[cursor:cursor + step]
        next_cursor = cursor + step if cursor + step < len(keys) else 0
        return next_cursor, page

    async def ping(self) -> bool:
        return True

    async def aclose(self):
        return None

    # Test helpers

    def members(self, key: str) -> List[str]:
        return [member for member, _ in self._ordered(key)]

    def score(self, key: str, member: str) -> Optional[float]:
        return self._zsets.get(key, {}).get(member)


class ManualClock:
    """Clock returning a fixed time until advanced."""

    def __init__(self, start: float = 1_700_000_000):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 1) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def propagate_waitingflow_logs():
    """Let caplog see waitingflow logs even after dictConfig disabled propagation."""
    package_logger = logging.getLogger("waitingflow")
    previous = package_logger.propagate
    package_logger.propagate = True
    yield
    package_logger.propagate = previous


@pytest.fixture
def fake_redis():
    """In-memory async Redis with sorted sets."""
    return InMemorySortedSetRedis()


@pytest.fixture
def store(fake_redis):
    """Sorted-set store over the in-memory Redis."""
    return RedisOrderedQueueStore(fake_redis, timeout=1.0)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def token_issuer():
    return TokenIssuer(TokenCache(max_entries=100))


@pytest.fixture
def queue_manager(store, token_issuer, clock):
    """QueueManager on the in-memory store with a manual clock."""
    return QueueManager(store, token_issuer, clock=clock)

