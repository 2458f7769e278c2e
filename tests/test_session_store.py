"""Unit tests for the memory session store and the read-through store."""

from __future__ import annotations

import asyncio

from crossposter.state.auth import new_session_id, sign_session_id, unsign_session_id
from crossposter.state.types import Credential, FlowState, PendingAuth
from tests.fakes import FakeClock, make_store


def _pending(state: str, provider: str = "linkedin", expires_at: float = 1e12) -> PendingAuth:
    return PendingAuth(provider=provider, state=state, expires_at=expires_at)


# ── MemorySessionStore ──────────────────────────────────────────────


class TestMemorySessionStore:
    """Tests for MemorySessionStore."""

    def test_create_and_get(self) -> None:
        sessions, _ = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid", ttl=60)
            return await sessions.get_session("sid")

        session = asyncio.run(scenario())
        assert session is not None
        assert session.session_id == "sid"

    def test_session_expires(self) -> None:
        clock = FakeClock()
        sessions, _ = make_store(clock)

        async def scenario():
            await sessions.create_session("sid", ttl=60)
            clock.advance(60)
            return await sessions.get_session("sid")

        assert asyncio.run(scenario()) is None

    def test_delete_session(self) -> None:
        sessions, _ = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            first = await sessions.delete_session("sid")
            second = await sessions.delete_session("sid")
            return first, second

        assert asyncio.run(scenario()) == (True, False)

    def test_pending_requires_session(self) -> None:
        sessions, _ = make_store(FakeClock())
        assert asyncio.run(sessions.set_pending("missing", _pending("s1"))) is False

    def test_pop_pending_matches_state(self) -> None:
        sessions, _ = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            await sessions.set_pending("sid", _pending("s1"))
            wrong = await sessions.pop_pending("sid", "linkedin", "s2")
            right = await sessions.pop_pending("sid", "linkedin", "s1")
            again = await sessions.pop_pending("sid", "linkedin", "s1")
            return wrong, right, again

        wrong, right, again = asyncio.run(scenario())
        assert wrong is None
        assert right is not None
        assert again is None

    def test_pop_pending_drops_expired(self) -> None:
        clock = FakeClock()
        sessions, _ = make_store(clock)

        async def scenario():
            await sessions.create_session("sid")
            await sessions.set_pending("sid", _pending("s1", expires_at=clock() + 10))
            clock.advance(10)
            return await sessions.pop_pending("sid", "linkedin", "s1")

        assert asyncio.run(scenario()) is None

    def test_credentials(self) -> None:
        sessions, _ = make_store(FakeClock())
        credential = Credential(access_token="at")

        async def scenario():
            await sessions.create_session("sid")
            await sessions.set_credential("sid", "tiktok", credential)
            stored = await sessions.get_credential("sid", "tiktok")
            cleared = await sessions.clear_credential("sid", "tiktok")
            after = await sessions.get_credential("sid", "tiktok")
            return stored, cleared, after

        stored, cleared, after = asyncio.run(scenario())
        assert stored is credential
        assert cleared is True
        assert after is None

    def test_flow_state_records_failure_reason(self) -> None:
        sessions, _ = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            idle = await sessions.get_flow_state("sid", "youtube")
            await sessions.set_flow_state("sid", "youtube", FlowState.FAILED, "user_denied")
            failed = await sessions.get_flow_state("sid", "youtube")
            failures = dict((await sessions.get_session("sid")).failures)
            await sessions.set_flow_state("sid", "youtube", FlowState.PENDING)
            cleared = dict((await sessions.get_session("sid")).failures)
            return idle, failed, failures, cleared

        idle, failed, failures, cleared = asyncio.run(scenario())
        assert idle is FlowState.IDLE
        assert failed is FlowState.FAILED
        assert failures == {"youtube": "user_denied"}
        assert cleared == {}

    def test_last_failure(self) -> None:
        sessions, _ = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            await sessions.set_flow_state("sid", "tiktok", FlowState.FAILED, "challenge_mismatch")
            failed = await sessions.get_failure("sid", "tiktok")
            await sessions.set_flow_state("sid", "tiktok", FlowState.CONNECTED)
            cleared = await sessions.get_failure("sid", "tiktok")
            return failed, cleared, await sessions.get_failure("gone", "tiktok")

        assert asyncio.run(scenario()) == ("challenge_mismatch", None, None)


# ── SessionCredentialStore ──────────────────────────────────────────


class TestSessionCredentialStore:
    """Tests for the primary-then-fallback lookup."""

    def test_take_clears_both_copies(self) -> None:
        sessions, store = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            await store.put("sid", _pending("s1"), ttl=60)
            taken = await store.take("sid", "linkedin", "s1")
            replay = await store.take("sid", "linkedin", "s1")
            return taken, replay

        taken, replay = asyncio.run(scenario())
        assert taken is not None
        assert replay is None
        assert store.cache.size() == 0

    def test_falls_back_to_cache_when_session_lost(self) -> None:
        """The session write did not survive the redirect."""
        sessions, store = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            await store.put("sid", _pending("s1"), ttl=60)
            await sessions.delete_session("sid")
            await sessions.create_session("new-sid")
            return await store.take("new-sid", "linkedin", "s1", adopt=True)

        taken = asyncio.run(scenario())
        assert taken is not None
        assert taken.state == "s1"

    def test_cache_copy_is_bound_to_issuing_session(self) -> None:
        sessions, store = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("issuer")
            await sessions.create_session("other")
            await store.put("issuer", _pending("s1"), ttl=60)
            await sessions.clear_pending("issuer", "linkedin")
            foreign = await store.take("other", "linkedin", "s1")
            own = await store.take("issuer", "linkedin", "s1")
            return foreign, own

        foreign, own = asyncio.run(scenario())
        assert foreign is None
        assert own is not None
        assert store.cache.size() == 0

    def test_put_without_session_keeps_cache_copy(self) -> None:
        _, store = make_store(FakeClock())

        async def scenario():
            await store.put("never-created", _pending("s1"), ttl=60)
            return await store.take("never-created", "linkedin", "s1")

        assert asyncio.run(scenario()) is not None

    def test_primary_wins_over_cache(self) -> None:
        """Conflicting copies of the same token resolve to the session copy."""
        sessions, store = make_store(FakeClock())
        primary = PendingAuth(provider="tiktok", state="s1", code_verifier="from-session", expires_at=1e12)
        fallback = PendingAuth(provider="tiktok", state="s1", code_verifier="from-cache", expires_at=1e12)

        async def scenario():
            await sessions.create_session("sid")
            await sessions.set_pending("sid", primary)
            store.cache.put("other-sid", fallback, ttl=60)
            taken = await store.take("sid", "tiktok", "s1")
            return taken

        taken = asyncio.run(scenario())
        assert taken.code_verifier == "from-session"
        assert ("tiktok", "s1") not in store.cache

    def test_concurrent_takes_consume_once(self) -> None:
        sessions, store = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            await store.put("sid", _pending("s1"), ttl=60)
            return await asyncio.gather(*(store.take("sid", "linkedin", "s1") for _ in range(5)))

        results = asyncio.run(scenario())
        assert sum(r is not None for r in results) == 1

    def test_clear_pending_clears_both(self) -> None:
        sessions, store = make_store(FakeClock())

        async def scenario():
            await sessions.create_session("sid")
            await store.put("sid", _pending("s1"), ttl=60)
            await store.clear_pending("sid", "linkedin")
            return await store.take("sid", "linkedin", "s1")

        assert asyncio.run(scenario()) is None
        assert store.cache.size() == 0


# ── Signed session cookies ──────────────────────────────────────────


class TestSignedSessionId:
    """Tests for sign_session_id / unsign_session_id."""

    def test_round_trip(self) -> None:
        sid = new_session_id()
        assert unsign_session_id(sign_session_id(sid, "k"), "k") == sid

    def test_wrong_secret(self) -> None:
        assert unsign_session_id(sign_session_id("sid", "k"), "other") is None

    def test_tampered_id(self) -> None:
        value = sign_session_id("sid", "k")
        assert unsign_session_id("evil" + value[3:], "k") is None

    def test_expired(self) -> None:
        value = sign_session_id("sid", "k", expires_at=1000)
        assert unsign_session_id(value, "k", now=999) == "sid"
        assert unsign_session_id(value, "k", now=1001) is None

    def test_malformed(self) -> None:
        assert unsign_session_id("garbage", "k") is None
        assert unsign_session_id("a:notanint:sig", "k") is None
