import asyncio
import logging
from typing import AsyncIterator, Awaitable, List, Optional, Protocol, Tuple, TypeVar

from redis import exceptions as redis_exceptions

from waitingflow.exceptions import StoreTimeoutError, StoreUnavailableError

logger = logging.getLogger("waitingflow.storage")

T = TypeVar("T")

USER_QUEUE_KEY_PREFIX = "users:queue:"
WAIT_KEY_SUFFIX = ":wait"
PROCEED_KEY_SUFFIX = ":proceed"
USER_QUEUE_WAIT_KEY = USER_QUEUE_KEY_PREFIX + "{queue}" + WAIT_KEY_SUFFIX
USER_QUEUE_PROCEED_KEY = USER_QUEUE_KEY_PREFIX + "{queue}" + PROCEED_KEY_SUFFIX
WAIT_KEY_SCAN_PATTERN = USER_QUEUE_KEY_PREFIX + "*" + WAIT_KEY_SUFFIX


def wait_key(queue: str) -> str:
    """Sorted set holding users still waiting, scored by registration time."""
    return USER_QUEUE_WAIT_KEY.format(queue=queue)


def proceed_key(queue: str) -> str:
    """Sorted set holding admitted users, scored by admission time."""
    return USER_QUEUE_PROCEED_KEY.format(queue=queue)


def queue_name_from_key(key: str) -> str:
    """
    Extract the queue name from a wait or proceed key.

    Everything between the prefix and the suffix is the name, so queue names
    may themselves contain colons (``users:queue:flight:42:wait`` is queue
    ``flight:42``).
    """
    if key.startswith(USER_QUEUE_KEY_PREFIX):
        for suffix in (WAIT_KEY_SUFFIX, PROCEED_KEY_SUFFIX):
            if key.endswith(suffix) and len(key) > len(USER_QUEUE_KEY_PREFIX) + len(suffix):
                return key[len(USER_QUEUE_KEY_PREFIX):-len(suffix)]
    raise ValueError(f"Not a queue key: {key}")


class OrderedQueueStore(Protocol):
    """Sorted-set operations the queue manager depends on. No business logic."""

    async def add_if_absent(self, key: str, member: str, score: float) -> bool:
        """Insert member; False if it was already present (score untouched)."""
        ...

    async def rank(self, key: str, member: str) -> Optional[int]:
        """Zero-based position by ascending score, None if not a member."""
        ...

    async def pop_minimum(self, key: str, count: int) -> List[Tuple[str, float]]:
        """Remove and return up to count lowest-scored members, ascending."""
        ...

    async def add_with_score(self, key: str, member: str, score: float) -> None:
        """Insert or overwrite member with score."""
        ...

    def scan_keys(self, pattern: str, hint: int) -> AsyncIterator[str]:
        """Lazily enumerate keys matching a glob pattern."""
        ...


class RedisOrderedQueueStore:
    """
    OrderedQueueStore backed by Redis sorted sets.

    Every call is bounded by `timeout` seconds. Timeouts surface as
    StoreTimeoutError, any other Redis failure as StoreUnavailableError.
    """

    def __init__(self, redis_client, timeout: float = 2.0):
        """
        Initialize the store adapter.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            timeout: Per-call timeout in seconds
        """
        self.redis = redis_client
        self.timeout = timeout

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except (asyncio.TimeoutError, redis_exceptions.TimeoutError) as e:
            logger.warning(f"Store {operation} timed out on {key}")
            raise StoreTimeoutError(operation, key, e) from e
        except redis_exceptions.RedisError as e:
            logger.warning(f"Store {operation} failed on {key}: {e}")
            raise StoreUnavailableError(operation, key, e) from e

    async def add_if_absent(self, key: str, member: str, score: float) -> bool:
        added = await self._call("zadd_nx", key, self.redis.zadd(key, {member: score}, nx=True))
        return bool(added)

    async def rank(self, key: str, member: str) -> Optional[int]:
        return await self._call("zrank", key, self.redis.zrank(key, member))

    async def pop_minimum(self, key: str, count: int) -> List[Tuple[str, float]]:
        if count <= 0:
            return []
        popped = await self._call("zpopmin", key, self.redis.zpopmin(key, count))
        return [(member, float(score)) for member, score in popped or []]

    async def add_with_score(self, key: str, member: str, score: float) -> None:
        await self._call("zadd", key, self.redis.zadd(key, {member: score}))

    async def scan_keys(self, pattern: str, hint: int) -> AsyncIterator[str]:
        """
        Iterate keys matching pattern with SCAN.

        The cursor lives inside this generator, so a scan cannot be resumed
        once abandoned. Keys may repeat across batches, as SCAN allows.
        """
        cursor = 0
        while True:
            cursor, keys = await self._call(
                "scan", pattern, self.redis.scan(cursor=cursor, match=pattern, count=hint)
            )
            for key in keys:
                yield key.decode() if isinstance(key, bytes) else key
            if int(cursor) == 0:
                break
