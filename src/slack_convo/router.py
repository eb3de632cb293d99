"""Conversation router: time-bounded continuations keyed by conversation.

A handler may ask for the *next* event in its conversation to be routed to
another registered handler, together with some state. The router records
that request in the conversation store and, when the next event arrives,
turns it back into a callable.

Expiry is lazy: an expired continuation is treated as absent when it is
looked up. It stays in the store until it is overwritten, cancelled, taken
by the next event in its conversation, or pruned. No background timer runs.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from slack_convo.config import RouterConfig
from slack_convo.errors import StaleContinuationError
from slack_convo.models import Event, PendingContinuation, StalePolicy
from slack_convo.registry import HandlerDescriptor
from slack_convo.store import ConversationStore

logger = logging.getLogger(__name__)

Lookup = Callable[[str], HandlerDescriptor | None]
Override = Callable[[Event], Any]


class ConversationRouter:
    """Registers, cancels and resolves pending continuations.

    Parameters
    ----------
    store:
        Backing :class:`~slack_convo.store.ConversationStore`.
    lookup:
        Read-only registry capability, usually ``RouteRegistry.lookup``.
    config:
        TTL default and stale-handler policy.
    on_stale:
        Optional hook called with ``(handler_key, state)`` whenever a
        continuation names a handler that is no longer registered.
    clock:
        Returns the current time in seconds; ``time.time`` by default.
    """

    def __init__(
        self,
        store: ConversationStore,
        lookup: Lookup,
        config: RouterConfig | None = None,
        *,
        on_stale: Callable[[str, Any], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._lookup = lookup
        self._config = config or RouterConfig()
        self._on_stale = on_stale
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000

    # -- keyed operations ----------------------------------------------------

    def register(
        self,
        conversation_key: str,
        handler_key: str,
        state: Any = None,
        ttl_seconds: int | None = None,
    ) -> PendingContinuation:
        """Route the next event in ``conversation_key`` to ``handler_key``.

        Replaces any continuation already pending for the conversation. A
        missing or falsy ``ttl_seconds`` falls back to ``config.default_ttl``.
        """
        if state is None:
            state = {}
        ttl = ttl_seconds or self._config.default_ttl
        pending = PendingContinuation(
            handler_key=handler_key,
            state=state,
            expires_at=self._now_ms() + ttl * 1000,
        )
        self._store.set(conversation_key, pending)
        logger.info(
            "Continuation registered: %s -> %s (ttl=%ss)", conversation_key, handler_key, ttl
        )
        return pending

    def cancel(self, conversation_key: str) -> None:
        self._store.delete(conversation_key)
        logger.debug("Continuation cancelled: %s", conversation_key)

    def pending(self, conversation_key: str) -> PendingContinuation | None:
        """Return the live continuation for a conversation, if any.

        Expired records are reported as absent but left in the store.
        """
        pending = self._store.get(conversation_key)
        if pending is None:
            return None
        if pending.is_expired(self._now_ms()):
            logger.debug("Continuation for %s expired; ignoring", conversation_key)
            return None
        return pending

    def resolve_override(self, handler_key: str, state: Any) -> Override | None:
        """Bind the handler registered under ``handler_key`` to ``state``.

        Returns ``None`` when the key is unknown, e.g. because the handler
        was removed by a deploy after the continuation was stored. Whether
        that is silent, logged or raised depends on ``config.stale_policy``.
        """
        descriptor = self._lookup(handler_key)
        if descriptor is None:
            self._stale(handler_key, state)
            return None

        def override(event: Event) -> Any:
            return descriptor.func(event, state)

        return override

    def _stale(self, handler_key: str, state: Any) -> None:
        if self._on_stale is not None:
            self._on_stale(handler_key, state)
        policy = self._config.stale_policy
        if policy is StalePolicy.RAISE:
            raise StaleContinuationError(handler_key)
        if policy is StalePolicy.WARN:
            logger.warning("Dropping continuation for unknown handler '%s'", handler_key)

    # -- event-scoped conveniences -------------------------------------------

    def continue_conversation(
        self,
        event: Event,
        handler_key: str,
        state: Any = None,
        ttl_seconds: int | None = None,
    ) -> PendingContinuation:
        return self.register(event.conversation_key, handler_key, state, ttl_seconds)

    def cancel_conversation(self, event: Event) -> None:
        self.cancel(event.conversation_key)

    def resolve_for_key(self, conversation_key: str) -> Override | None:
        """Take the pending continuation for ``conversation_key`` and resolve it.

        The record is removed from the store in one atomic ``pop``, so of two
        events racing in the same conversation only one gets the override,
        and the handler is free to register a follow-up. An expired record
        is removed and reported as absent.
        """
        pending = self._store.pop(conversation_key)
        if pending is None:
            return None
        if pending.is_expired(self._now_ms()):
            logger.debug("Continuation for %s expired; dropping", conversation_key)
            return None
        logger.info("Resuming conversation %s with %s", conversation_key, pending.handler_key)
        return self.resolve_override(pending.handler_key, pending.state)

    def override_for(self, event: Event) -> Override | None:
        return self.resolve_for_key(event.conversation_key)
