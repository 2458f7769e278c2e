"""Unit tests for the process-wide fallback correlation cache."""

from __future__ import annotations

import threading

from crossposter.auth.state_store import CorrelationCache
from crossposter.state.types import PendingAuth
from tests.fakes import FakeClock


def _pending(state: str, provider: str = "linkedin") -> PendingAuth:
    return PendingAuth(provider=provider, state=state, redirect_uri="http://testserver/cb")


class TestCorrelationCache:
    """Tests for CorrelationCache."""

    def test_pop_is_single_use(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1"), ttl=60)

        first = cache.pop("linkedin", "s1")
        assert first is not None
        assert first.state == "s1"
        assert cache.pop("linkedin", "s1") is None

    def test_pop_unknown_state(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1"), ttl=60)
        assert cache.pop("linkedin", "forged") is None
        assert ("linkedin", "s1") in cache

    def test_pop_for_another_session_leaves_entry(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1"), ttl=60)

        assert cache.pop("linkedin", "s1", session_id="intruder") is None
        assert ("linkedin", "s1") in cache
        assert cache.pop("linkedin", "s1", session_id="sid") is not None

    def test_provider_is_part_of_the_key(self) -> None:
        """A state issued for one platform is useless for another."""
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1", provider="linkedin"), ttl=60)
        assert cache.pop("youtube", "s1") is None
        assert cache.pop("linkedin", "s1") is not None

    def test_expired_entry_behaves_like_missing(self) -> None:
        clock = FakeClock()
        cache = CorrelationCache(clock=clock)
        cache.put("sid", _pending("s1"), ttl=60)

        clock.advance(59)
        assert ("linkedin", "s1") in cache

        clock.advance(1)
        assert ("linkedin", "s1") not in cache
        assert cache.pop("linkedin", "s1") is None
        assert cache.size() == 0

    def test_new_flow_replaces_earlier_one_for_same_session(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1"), ttl=60)
        cache.put("sid", _pending("s2"), ttl=60)

        assert cache.size() == 1
        assert cache.pop("linkedin", "s1") is None
        assert cache.pop("linkedin", "s2") is not None

    def test_other_sessions_are_independent(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid-a", _pending("s1"), ttl=60)
        cache.put("sid-b", _pending("s2"), ttl=60)

        assert cache.size() == 2
        assert cache.pop("linkedin", "s1") is not None
        assert cache.pop("linkedin", "s2") is not None

    def test_capacity_evicts_soonest_expiring(self) -> None:
        clock = FakeClock()
        cache = CorrelationCache(max_pending=2, clock=clock)
        cache.put("a", _pending("s1"), ttl=30)
        cache.put("b", _pending("s2"), ttl=60)
        cache.put("c", _pending("s3"), ttl=60)

        assert cache.size() == 2
        assert ("linkedin", "s1") not in cache
        assert ("linkedin", "s3") in cache

    def test_discard_drops_session_entry(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1"), ttl=60)
        cache.put("other", _pending("s2"), ttl=60)

        cache.discard("sid", "linkedin")

        assert ("linkedin", "s1") not in cache
        assert ("linkedin", "s2") in cache

    def test_discard_without_entry_is_noop(self) -> None:
        cache = CorrelationCache(clock=FakeClock())
        cache.discard("sid", "linkedin")
        assert cache.size() == 0

    def test_cleanup_counts_removed(self) -> None:
        clock = FakeClock()
        cache = CorrelationCache(clock=clock)
        cache.put("a", _pending("s1"), ttl=10)
        cache.put("b", _pending("s2"), ttl=100)

        clock.advance(50)
        assert cache.cleanup() == 1
        assert cache.size() == 1

    def test_concurrent_pops_yield_one_winner(self) -> None:
        """Threads racing for the same state: exactly one gets it."""
        cache = CorrelationCache(clock=FakeClock())
        cache.put("sid", _pending("s1"), ttl=60)
        results: list[PendingAuth | None] = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            results.append(cache.pop("linkedin", "s1"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r is not None for r in results) == 1
