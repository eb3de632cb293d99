"""Route registry: maps handler keys to the functions that continue a conversation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from slack_convo.models import Event

logger = logging.getLogger(__name__)

Handler = Callable[[Event, Any], Any]


@dataclass(frozen=True)
class HandlerDescriptor:
    key: str
    func: Handler


class RouteRegistry:
    """Application-owned table of continuation handlers.

    Handlers are registered with :meth:`route` (as a decorator) or
    :meth:`add`. The conversation router only ever receives the read-only
    :meth:`lookup` capability.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerDescriptor] = {}

    def add(self, key: str, func: Handler) -> HandlerDescriptor:
        if key in self._handlers:
            raise ValueError(f"A handler is already registered under '{key}'")
        descriptor = HandlerDescriptor(key=key, func=func)
        self._handlers[key] = descriptor
        logger.debug("Registered route handler %s", key)
        return descriptor

    def route(self, key: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`add`; returns the function unchanged."""

        def decorator(func: Handler) -> Handler:
            self.add(key, func)
            return func

        return decorator

    def lookup(self, key: str) -> HandlerDescriptor | None:
        return self._handlers.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
