"""Tests for the conversation router."""

import logging
import threading
from unittest.mock import MagicMock

import pytest

from slack_convo.config import RouterConfig
from slack_convo.errors import StaleContinuationError
from slack_convo.models import Event, EventKind, Meta, PendingContinuation, StalePolicy
from slack_convo.registry import RouteRegistry
from slack_convo.router import ConversationRouter
from slack_convo.store import MemoryStore

KEY = "T1::C1::U1"


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_event(text="hi") -> Event:
    return Event(
        kind=EventKind.EVENT,
        body={"event": {"type": "message", "text": text}},
        meta=Meta(team_id="T1", channel_id="C1", user_id="U1"),
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def registry():
    return RouteRegistry()


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def router(store, registry, clock):
    return ConversationRouter(store, registry.lookup, clock=clock)


# ── register / cancel ─────────────────────────────────────────────


class TestRegister:
    def test_stores_continuation(self, router, store):
        router.register(KEY, "next", {"step": 2}, ttl_seconds=30)
        assert store.get(KEY) == PendingContinuation(
            handler_key="next", state={"step": 2}, expires_at=1_030_000.0
        )

    def test_default_ttl_is_one_hour(self, router, store):
        router.register(KEY, "next")
        assert store.get(KEY).expires_at == (1_000 + 3600) * 1000

    def test_falsy_ttl_uses_default(self, router, store):
        router.register(KEY, "next", ttl_seconds=0)
        assert store.get(KEY).expires_at == (1_000 + 3600) * 1000

    def test_configured_default_ttl(self, store, registry, clock):
        router = ConversationRouter(
            store, registry.lookup, RouterConfig(default_ttl=60), clock=clock
        )
        router.register(KEY, "next")
        assert store.get(KEY).expires_at == (1_000 + 60) * 1000

    def test_missing_state_defaults_to_empty_dict(self, router, store):
        router.register(KEY, "next")
        assert store.get(KEY).state == {}

    def test_register_overwrites(self, router, store):
        router.register(KEY, "first")
        router.register(KEY, "second")
        assert store.get(KEY).handler_key == "second"
        assert len(store) == 1

    def test_single_store_write(self, registry, clock):
        store = MagicMock()
        router = ConversationRouter(store, registry.lookup, clock=clock)
        router.register(KEY, "next")
        store.set.assert_called_once()
        store.get.assert_not_called()


class TestCancel:
    def test_cancel_removes(self, router, store):
        router.register(KEY, "next")
        router.cancel(KEY)
        assert store.get(KEY) is None

    def test_cancel_without_pending(self, router):
        router.cancel(KEY)

    def test_cancel_then_resolve_is_absent(self, router, registry):
        registry.add("next", lambda event, state: "ran")
        router.register(KEY, "next")
        router.cancel(KEY)
        assert router.pending(KEY) is None
        assert router.override_for(make_event()) is None


# ── expiry ────────────────────────────────────────────────────────


class TestPending:
    def test_live_continuation(self, router):
        router.register(KEY, "next", ttl_seconds=10)
        assert router.pending(KEY).handler_key == "next"

    def test_expired_is_absent_but_resident(self, router, store, clock):
        router.register(KEY, "next", ttl_seconds=10)
        clock.now += 10
        assert router.pending(KEY) is None
        assert store.get(KEY) is not None


# ── resolve_override ──────────────────────────────────────────────


class TestResolveOverride:
    def test_handler_receives_exact_state(self, router, registry):
        seen = []
        registry.add("next", lambda event, state: seen.append((event, state)))
        state = {"answers": ["a", "b"]}
        event = make_event()

        override = router.resolve_override("next", state)
        override(event)

        assert seen == [(event, state)]
        assert seen[0][1] is state

    def test_returns_handler_result(self, router, registry):
        registry.add("next", lambda event, state: state * 2)
        assert router.resolve_override("next", 21)(make_event()) == 42

    def test_stale_ignored_silently(self, router, caplog):
        with caplog.at_level(logging.WARNING):
            assert router.resolve_override("gone", {}) is None
        assert caplog.text == ""

    def test_stale_warn_policy(self, store, registry, clock, caplog):
        router = ConversationRouter(
            store, registry.lookup, RouterConfig(stale_policy=StalePolicy.WARN), clock=clock
        )
        with caplog.at_level(logging.WARNING):
            assert router.resolve_override("gone", {}) is None
        assert "unknown handler 'gone'" in caplog.text

    def test_stale_raise_policy(self, store, registry, clock):
        router = ConversationRouter(
            store, registry.lookup, RouterConfig(stale_policy=StalePolicy.RAISE), clock=clock
        )
        with pytest.raises(StaleContinuationError) as exc_info:
            router.resolve_override("gone", {})
        assert exc_info.value.handler_key == "gone"

    def test_stale_hook_called(self, store, registry, clock):
        hook = MagicMock()
        router = ConversationRouter(store, registry.lookup, on_stale=hook, clock=clock)
        router.resolve_override("gone", {"x": 1})
        hook.assert_called_once_with("gone", {"x": 1})


# ── event-scoped flow ─────────────────────────────────────────────


class TestOverrideFor:
    def test_round_trip(self, router, registry):
        registry.add("next", lambda event, state: (event.text, state))
        first = make_event("start")
        router.continue_conversation(first, "next", {"from": "start"})

        override = router.override_for(make_event("reply"))

        assert override(make_event("reply")) == ("reply", {"from": "start"})

    def test_consumes_continuation(self, router, registry, store):
        registry.add("next", lambda event, state: None)
        router.continue_conversation(make_event(), "next")

        assert router.override_for(make_event()) is not None
        assert store.get(KEY) is None
        assert router.override_for(make_event()) is None

    def test_handler_can_reregister(self, router, registry, store):
        @registry.route("loop")
        def loop(event, state):
            router.continue_conversation(event, "loop", {"n": state["n"] + 1})

        router.continue_conversation(make_event(), "loop", {"n": 0})
        router.override_for(make_event())(make_event())

        assert store.get(KEY).state == {"n": 1}

    def test_expired_is_not_resolved(self, router, registry, clock):
        registry.add("next", lambda event, state: None)
        router.continue_conversation(make_event(), "next", ttl_seconds=5)
        clock.now += 6
        assert router.override_for(make_event()) is None

    def test_other_conversation_unaffected(self, router, registry):
        registry.add("next", lambda event, state: None)
        router.continue_conversation(make_event(), "next")
        other = Event(
            kind=EventKind.EVENT,
            body={},
            meta=Meta(team_id="T1", channel_id="C1", user_id="U2"),
        )
        assert router.override_for(other) is None

    def test_cancel_conversation(self, router, store):
        router.continue_conversation(make_event(), "next")
        router.cancel_conversation(make_event())
        assert store.get(KEY) is None

    def test_store_errors_propagate(self, registry, clock):
        store = MagicMock()
        store.pop.side_effect = ConnectionError("store down")
        router = ConversationRouter(store, registry.lookup, clock=clock)
        with pytest.raises(ConnectionError):
            router.override_for(make_event())

    def test_expired_record_is_removed_on_take(self, router, registry, store, clock):
        registry.add("next", lambda event, state: None)
        router.continue_conversation(make_event(), "next", ttl_seconds=5)
        clock.now += 6
        router.override_for(make_event())
        assert store.get(KEY) is None


class TestResolveForKey:
    def test_resolves_by_conversation_key(self, router, registry):
        registry.add("next", lambda event, state: state)
        router.register(KEY, "next", {"step": 3})

        override = router.resolve_for_key(KEY)

        assert override(make_event()) == {"step": 3}
        assert router.pending(KEY) is None

    def test_unknown_key_is_absent(self, router):
        assert router.resolve_for_key("T9::C9::U9") is None

    def test_stale_handler_is_absent(self, router):
        router.register(KEY, "removed_in_last_deploy")
        assert router.resolve_for_key(KEY) is None


class GatedStore(MemoryStore):
    """Holds every reader at a barrier so two lookups overlap."""

    def __init__(self, parties: int) -> None:
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=5)

    def get(self, key):
        self.barrier.wait()
        return super().get(key)

    def pop(self, key):
        self.barrier.wait()
        return super().pop(key)


class TestConcurrentResume:
    def test_continuation_fires_once(self, registry, clock):
        store = GatedStore(parties=2)
        router = ConversationRouter(store, registry.lookup, clock=clock)
        fired = []
        registry.add("next", lambda event, state: fired.append(state))
        router.register(KEY, "next", {"n": 1})

        def resume():
            override = router.override_for(make_event())
            if override is not None:
                override(make_event())

        threads = [threading.Thread(target=resume) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert fired == [{"n": 1}]
