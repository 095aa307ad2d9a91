"""
Unit tests for the token module.
"""

import hashlib
import threading
from unittest.mock import MagicMock, patch

import pytest

from waitingflow.exceptions import HashAlgorithmUnavailableError
from waitingflow.modules.token import TOKEN_NAMESPACE, TokenCache, TokenIssuer


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TestTokenIssuer:
    """Tests for TokenIssuer."""

    def test_canonical_format(self, token_issuer):
        """Test the token is sha256 of the fixed literal format"""
        assert TOKEN_NAMESPACE == "user-queue"
        assert TokenIssuer.canonical_input("default", 100, 1) == "user-queue-default-100-1"
        assert token_issuer.get_or_create("default", 100, 1) == sha256_hex("user-queue-default-100-1")

    def test_token_shape(self, token_issuer):
        token = token_issuer.get_or_create("default", 100, 1)

        assert len(token) == 64
        assert token == token.lower()
        int(token, 16)

    def test_deterministic(self, token_issuer):
        """Test identical inputs always produce identical tokens"""
        first = token_issuer.get_or_create("default", 100, 1)
        second = token_issuer.get_or_create("default", 100, 1)
        fresh = TokenIssuer(TokenCache(0)).get_or_create("default", 100, 1)

        assert first == second == fresh

    @pytest.mark.parametrize(
        "queue,user_id,flight_id",
        [("vip", 100, 1), ("default", 101, 1), ("default", 100, 2)],
    )
    def test_any_input_change_changes_token(self, token_issuer, queue, user_id, flight_id):
        base = token_issuer.get_or_create("default", 100, 1)
        assert token_issuer.get_or_create(queue, user_id, flight_id) != base

    def test_cache_is_used(self):
        cache = TokenCache(max_entries=10)
        issuer = TokenIssuer(cache)

        with patch.object(issuer, "_compute", wraps=issuer._compute) as compute:
            issuer.get_or_create("default", 100, 1)
            issuer.get_or_create("default", 100, 1)

        assert compute.call_count == 1
        assert len(cache) == 1

    def test_int_and_str_ids_share_cache_entry(self, token_issuer):
        assert token_issuer.get_or_create("default", 100, 1) == token_issuer.get_or_create("default", "100", "1")
        assert len(token_issuer.cache) == 1

    def test_missing_hash_algorithm_is_fatal(self):
        """Test the issuer refuses to start without sha256"""
        with patch("waitingflow.modules.token.token.hashlib") as hashlib_mock:
            hashlib_mock.algorithms_available = {"md5"}
            with pytest.raises(HashAlgorithmUnavailableError):
                TokenIssuer()


class TestTokenCache:
    """Tests for TokenCache."""

    def test_get_or_insert_calls_factory_once(self):
        cache = TokenCache(max_entries=10)
        factory = MagicMock(return_value="abc")

        assert cache.get_or_insert(("q", "1", "1"), factory) == "abc"
        assert cache.get_or_insert(("q", "1", "1"), factory) == "abc"
        factory.assert_called_once()

    def test_lru_eviction(self):
        """Test least recently used entries are evicted past capacity"""
        cache = TokenCache(max_entries=2)
        cache.get_or_insert(("q", "1", "1"), lambda: "t1")
        cache.get_or_insert(("q", "2", "1"), lambda: "t2")

        # Touch t1 so t2 becomes the eviction candidate
        assert cache.get(("q", "1", "1")) == "t1"
        cache.get_or_insert(("q", "3", "1"), lambda: "t3")

        assert len(cache) == 2
        assert cache.get(("q", "2", "1")) is None
        assert cache.get(("q", "1", "1")) == "t1"
        assert cache.get(("q", "3", "1")) == "t3"

    def test_zero_capacity_disables_cache(self):
        cache = TokenCache(max_entries=0)

        assert cache.get_or_insert(("q", "1", "1"), lambda: "t1") == "t1"
        assert len(cache) == 0
        assert cache.get(("q", "1", "1")) is None

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            TokenCache(max_entries=-1)

    def test_clear(self):
        cache = TokenCache()
        cache.get_or_insert(("q", "1", "1"), lambda: "t1")
        cache.clear()
        assert len(cache) == 0

    def test_concurrent_writers(self):
        """Test concurrent get-or-insert from many threads stays consistent"""
        issuer = TokenIssuer(TokenCache(max_entries=1000))
        results = {}

        def worker(n):
            results[n] = [issuer.get_or_create("default", user_id, 1) for user_id in range(200)]

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expected = [sha256_hex(f"user-queue-default-{u}-1") for u in range(200)]
        assert all(tokens == expected for tokens in results.values())
        assert len(issuer.cache) == 200
