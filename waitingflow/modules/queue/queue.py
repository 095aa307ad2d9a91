import asyncio
import logging
import math
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from waitingflow.exceptions import AlreadyRegisteredError, StoreError
from waitingflow.modules.storage import OrderedQueueStore, proceed_key, wait_key
from waitingflow.modules.token import TokenIssuer

logger = logging.getLogger("waitingflow.queue")

DEFAULT_QUEUE = "default"


class RegistrationOutcome(str, Enum):
    """Outcome of a registration attempt."""

    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"


@dataclass(frozen=True)
class RegistrationResult:
    """Registration outcome plus the user's 1-based rank in the wait set."""

    queue: str
    user_id: str
    outcome: RegistrationOutcome
    rank: int

    @property
    def registered(self) -> bool:
        return self.outcome is RegistrationOutcome.REGISTERED

    def unwrap(self) -> int:
        """Return the rank, or raise AlreadyRegisteredError for a duplicate."""
        if not self.registered:
            raise AlreadyRegisteredError(self.queue, self.user_id, self.rank)
        return self.rank


def _to_rank(position: Optional[int]) -> int:
    return position + 1 if position is not None and position >= 0 else -1


def _discard_result(task: asyncio.Future) -> None:
    # Errors are already logged by _admit; retrieve them so asyncio stays quiet
    if not task.cancelled():
        task.exception()


class QueueManager:
    def __init__(
        self,
        store: OrderedQueueStore,
        token_issuer: TokenIssuer,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize queue manager.

        Args:
            store: Sorted-set store holding the wait and proceed sets
            token_issuer: Issuer used to verify admission tokens
            clock: Returns current Unix time in seconds (time.time by default)
        """
        self.store = store
        self.token_issuer = token_issuer
        self.clock = clock or time.time
        self._last_score = -math.inf

    def _now(self) -> float:
        return float(self.clock())

    def _arrival_score(self) -> float:
        """
        Registration score: Unix time, strictly increasing within this process.

        Two registrations that read the same clock value get adjacent floats,
        so the earlier call keeps the lower score instead of falling back to
        Redis' lexicographic member order.
        """
        score = self._now()
        if score <= self._last_score:
            score = math.nextafter(self._last_score, math.inf)
        self._last_score = score
        return score

    @staticmethod
    def _queue_name(queue: str) -> str:
        queue = str(queue)
        if not queue:
            raise ValueError("Queue name must not be empty")
        return queue

    async def register(self, queue: str, user_id) -> RegistrationResult:
        """
        Put a user at the back of the queue.

        Args:
            queue: Queue name
            user_id: User identifier

        Returns:
            RegistrationResult with the 1-based rank. For a user already
            waiting the outcome is ALREADY_REGISTERED and the rank is the
            user's existing one.

        Logic:
        1. Score = current Unix time (fractional), earlier arrivals rank first
        2. ZADD NX so a waiting user is never re-scored
        3. Look up the rank of the user

        A promotion running between steps 2 and 3 can admit the user before
        the rank is read. The outcome is then REGISTERED with rank -1, and
        is_admitted() is already true for the user.
        """
        queue = self._queue_name(queue)
        member = str(user_id)
        key = wait_key(queue)

        added = await self.store.add_if_absent(key, member, self._arrival_score())
        rank = _to_rank(await self.store.rank(key, member))

        if not added:
            logger.debug(f"User {member} already waiting in {queue} at rank {rank}")
            return RegistrationResult(queue, member, RegistrationOutcome.ALREADY_REGISTERED, rank)

        return RegistrationResult(queue, member, RegistrationOutcome.REGISTERED, rank)

    async def promote(self, queue: str, count: int) -> int:
        """
        Move up to `count` earliest users from the wait set to the proceed set.

        Args:
            queue: Queue name
            count: Maximum number of users to admit

        Returns:
            Number of users actually admitted (0 <= n <= count)

        Not atomic: ZPOPMIN and the proceed inserts are separate commands. If
        an insert fails, the users popped but not yet admitted are lost from
        the queue; they are logged so they can be re-admitted by hand.

        Once users are popped the inserts run shielded: cancelling the
        caller (e.g. a scheduler tick timeout) does not stop them, so the
        popped users are still admitted.
        """
        if count <= 0:
            return 0

        queue = self._queue_name(queue)
        popped = await self.store.pop_minimum(wait_key(queue), count)
        if not popped:
            return 0

        admission = asyncio.ensure_future(self._admit(queue, popped))
        try:
            return await asyncio.shield(admission)
        except asyncio.CancelledError:
            if not admission.done():
                admission.add_done_callback(_discard_result)
                logger.warning(f"Promotion of {queue} cancelled; {len(popped)} popped users are still being admitted")
            raise

    async def _admit(self, queue: str, popped: List[Tuple[str, float]]) -> int:
        admitted_at = self._now()
        target = proceed_key(queue)
        moved = 0
        for member, _ in popped:
            try:
                await self.store.add_with_score(target, member, admitted_at)
            except (StoreError, asyncio.CancelledError):
                lost = [m for m, _ in popped[moved:]]
                logger.error(f"Promotion of {queue} interrupted; users removed from wait set but not admitted: {lost}")
                raise
            moved += 1

        return moved

    async def is_admitted(self, queue: str, user_id) -> bool:
        """True iff the user is in the proceed set."""
        queue = self._queue_name(queue)
        position = await self.store.rank(proceed_key(queue), str(user_id))
        return position is not None and position >= 0

    async def rank(self, queue: str, user_id) -> int:
        """1-based position in the wait set, -1 if not waiting."""
        queue = self._queue_name(queue)
        return _to_rank(await self.store.rank(wait_key(queue), str(user_id)))

    def issue_token(self, queue: str, user_id, flight_id) -> str:
        """Admission token for a verified session."""
        return self.token_issuer.get_or_create(self._queue_name(queue), user_id, flight_id)

    async def verify_token(self, queue: str, user_id, flight_id, presented_token: Optional[str]) -> bool:
        """
        Check a presented admission token.

        Args:
            queue: Queue name
            user_id: User identifier
            flight_id: Flight the token was issued for
            presented_token: Token from the client (cookie or query)

        Returns:
            True if it equals the canonical token for the tuple
        """
        if not presented_token:
            return False
        expected = self.issue_token(queue, user_id, flight_id)
        return secrets.compare_digest(expected.encode("utf-8"), presented_token.encode("utf-8"))
