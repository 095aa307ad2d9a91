import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from waitingflow.exceptions import HashAlgorithmUnavailableError

logger = logging.getLogger("waitingflow.token")

TOKEN_NAMESPACE = "user-queue"
TOKEN_HASH_ALGORITHM = "sha256"

CacheKey = Tuple[str, str, str]


class TokenCache:
    """
    Process-local cache of computed admission tokens.

    Never authoritative: a miss only costs a recomputation. Entries are
    evicted least-recently-used once max_entries is exceeded; max_entries=0
    disables caching entirely.
    """

    def __init__(self, max_entries: int = 10000):
        if max_entries < 0:
            raise ValueError("max_entries must be >= 0")
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, str]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[str]:
        with self._lock:
            token = self._entries.get(key)
            if token is not None:
                self._entries.move_to_end(key)
            return token

    def get_or_insert(self, key: CacheKey, factory: Callable[[], str]) -> str:
        """Return the cached token for key, computing and storing it on a miss."""
        with self._lock:
            token = self._entries.get(key)
            if token is not None:
                self._entries.move_to_end(key)
                return token

            token = factory()
            if self.max_entries == 0:
                return token

            self._entries[key] = token
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return token

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class TokenIssuer:
    """
    Issues deterministic admission tokens.

    token = hex(sha256("user-queue-<queue>-<user_id>-<flight_id>"))

    The literal format is shared with previously issued cookies and must not
    change.
    """

    def __init__(self, cache: Optional[TokenCache] = None):
        """
        Initialize token issuer.

        Args:
            cache: Token cache (a default bounded cache when omitted)

        Raises:
            HashAlgorithmUnavailableError: sha256 missing from hashlib
        """
        if TOKEN_HASH_ALGORITHM not in hashlib.algorithms_available:
            raise HashAlgorithmUnavailableError(
                f"Hash algorithm '{TOKEN_HASH_ALGORITHM}' is not available; refusing to start"
            )
        self.cache = cache if cache is not None else TokenCache()

    @staticmethod
    def canonical_input(queue: str, user_id, flight_id) -> str:
        return f"{TOKEN_NAMESPACE}-{queue}-{user_id}-{flight_id}"

    def _compute(self, queue: str, user_id, flight_id) -> str:
        data = self.canonical_input(queue, user_id, flight_id).encode("utf-8")
        return hashlib.new(TOKEN_HASH_ALGORITHM, data).hexdigest()

    def get_or_create(self, queue: str, user_id, flight_id) -> str:
        """
        Get the admission token for (queue, user_id, flight_id).

        Returns:
            64 character lowercase hex string
        """
        key = (str(queue), str(user_id), str(flight_id))
        return self.cache.get_or_insert(key, lambda: self._compute(queue, user_id, flight_id))
