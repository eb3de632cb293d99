"""Addressing-mode predicates over inbound events.

Every predicate is defined only for ``message`` events delivered through the
Events API (``Event.kind is EventKind.EVENT`` and ``body["event"]["type"] ==
"message"``). For anything else they all return ``False``.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from slack_convo import mentions
from slack_convo.models import Event, EventKind, MessageFilter

logger = logging.getLogger(__name__)

DIRECT_CHANNEL_PREFIX = "D"


def _bot_mention(event: Event) -> str:
    return f"<@{re.escape(event.meta.bot_user_id or '')}>"


def is_message(event: Event) -> bool:
    inner = event.body.get("event")
    return (
        event.kind is EventKind.EVENT
        and isinstance(inner, dict)
        and inner.get("type") == "message"
    )


def is_direct_mention(event: Event) -> bool:
    """``<@BOT> hi there`` or ``<@BOT>: hi there``."""
    if not is_message(event):
        return False
    return re.match(_bot_mention(event), event.text or "", re.IGNORECASE) is not None


def is_direct_message(event: Event, prefix: str = DIRECT_CHANNEL_PREFIX) -> bool:
    """A message in a one-to-one channel with the bot."""
    return is_message(event) and (event.meta.channel_id or "").startswith(prefix)


def is_mention(event: Event) -> bool:
    """The bot user is mentioned anywhere in the message."""
    if not is_message(event):
        return False
    return re.search(_bot_mention(event), event.text or "", re.IGNORECASE) is not None


def is_ambient(event: Event, prefix: str = DIRECT_CHANNEL_PREFIX) -> bool:
    """Neither a DM nor a mention of the bot (other users may be mentioned)."""
    return is_message(event) and not is_mention(event) and not is_direct_message(event, prefix)


def matches_any(
    event: Event,
    filters: Iterable[MessageFilter | str],
    prefix: str = DIRECT_CHANNEL_PREFIX,
) -> bool:
    """True if at least one of ``filters`` applies to ``event``.

    Filters may be :class:`MessageFilter` members or their string values.
    Unknown names are skipped.
    """
    checks = {
        MessageFilter.DIRECT_MESSAGE: lambda: is_direct_message(event, prefix),
        MessageFilter.DIRECT_MENTION: lambda: is_direct_mention(event),
        MessageFilter.MENTION: lambda: is_mention(event),
        MessageFilter.AMBIENT: lambda: is_ambient(event, prefix),
    }
    for name in filters:
        try:
            message_filter = MessageFilter(name)
        except ValueError:
            logger.debug("Unknown message filter %r; skipping", name)
            continue
        if checks[message_filter]():
            return True
    return False


def strip_direct_mention(event: Event) -> str:
    """Return the message text with a leading mention of the bot removed.

    ``<@BOT> hi`` and ``<@BOT>: hi`` both give ``hi``. Text that does not
    start with the bot's mention is returned unchanged, and non-messages
    give an empty string.
    """
    if not is_message(event):
        return ""
    text = event.text or ""
    match = re.match(_bot_mention(event) + r":?(.*)", text, re.IGNORECASE | re.DOTALL)
    if match:
        return match.group(1).strip()
    return text


# -- event-level mention helpers ---------------------------------------------


def _message_text(event: Event) -> str | None:
    return event.text if is_message(event) else None


def users_mentioned(event: Event) -> list[str]:
    return mentions.mentioned_users(_message_text(event))


def channels_mentioned(event: Event) -> list[str]:
    return mentions.mentioned_channels(_message_text(event))


def subteams_mentioned(event: Event) -> list[str]:
    return mentions.mentioned_subteams(_message_text(event))


def everyone_mentioned(event: Event) -> bool:
    return mentions.mentions_everyone(_message_text(event))


def channel_mentioned(event: Event) -> bool:
    return mentions.mentions_channel(_message_text(event))


def here_mentioned(event: Event) -> bool:
    return mentions.mentions_here(_message_text(event))


def links_mentioned(event: Event) -> list[str]:
    return mentions.mentioned_links(_message_text(event))
