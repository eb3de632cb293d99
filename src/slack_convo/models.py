"""Shared data structures used across all components."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from slack_convo import identity


class EventKind(Enum):
    COMMAND = "command"
    ACTION = "action"
    EVENT = "event"
    OPTIONS = "options"


class MessageFilter(Enum):
    DIRECT_MESSAGE = "direct_message"
    DIRECT_MENTION = "direct_mention"
    MENTION = "mention"
    AMBIENT = "ambient"


class StalePolicy(Enum):
    """What to do when a continuation names a handler that no longer exists."""

    IGNORE = "ignore"
    WARN = "warn"
    RAISE = "raise"


@dataclass(frozen=True)
class Meta:
    team_id: str | None = None
    channel_id: str | None = None
    user_id: str | None = None
    bot_id: str | None = None
    bot_token: str | None = None
    app_token: str | None = None  # fallback Web API token, never the xapp- socket token
    bot_user_id: str | None = None  # the bot's own user ID, used for mentions
    response_url: str | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> Meta:
        """Build a Meta from a flat mapping, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in names})


@dataclass(frozen=True)
class Event:
    """One inbound occurrence from Slack, already parsed by the receiver."""

    kind: EventKind
    body: dict = field(default_factory=dict)
    meta: Meta = field(default_factory=Meta)

    @property
    def conversation_key(self) -> str:
        return identity.conversation_key(self.meta)

    @property
    def text(self) -> str | None:
        inner = self.body.get("event")
        if not isinstance(inner, dict):
            return None
        return inner.get("text")


@dataclass
class PendingContinuation:
    handler_key: str
    state: Any  # opaque, handed back to the handler verbatim
    expires_at: float  # epoch milliseconds

    def is_expired(self, now_ms: float) -> bool:
        return now_ms >= self.expires_at
