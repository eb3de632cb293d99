"""Conversation identity: which ongoing conversation an event belongs to."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from slack_convo.models import Meta

SEPARATOR = "::"


def conversation_key(meta: Meta) -> str:
    """Return the key for the (team, channel, actor) triple of ``meta``.

    The actor is the user ID when present, otherwise the bot ID. Missing
    parts render as empty strings, so the key is always deterministic.
    """
    actor = meta.user_id or meta.bot_id
    return SEPARATOR.join(part or "" for part in (meta.team_id, meta.channel_id, actor))
