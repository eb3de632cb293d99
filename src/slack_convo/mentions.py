"""Extraction of mentions and links from Slack message text.

Slack encodes references in message text as ``<PREFIX ID|label>``, e.g.
``<@U123>``, ``<#C456|general>``, ``<!subteam^S789|@oncall>``, ``<!here>``
or ``<https://example.com|Example>``. Every function here is total: ``None``
or empty text yields an empty list / ``False``.
"""

import re

_LABEL = r"(?:\|[^>]*)?"

USER_RE = re.compile(rf"<@(U[A-Za-z0-9]+){_LABEL}>")
CHANNEL_RE = re.compile(rf"<#(C[A-Za-z0-9]+){_LABEL}>")
SUBTEAM_RE = re.compile(rf"<!subteam\^(S[A-Za-z0-9]+){_LABEL}>")
EVERYONE_RE = re.compile(rf"<!everyone{_LABEL}>")
CHANNEL_BROADCAST_RE = re.compile(rf"<!channel{_LABEL}>")
HERE_RE = re.compile(rf"<!here{_LABEL}>")
# Anything bracketed that is not a user, channel or special (!) reference.
LINK_RE = re.compile(r"<([^@#!>][^>]*)>")


def mentioned_users(text: str | None) -> list[str]:
    return USER_RE.findall(text or "")


def mentioned_channels(text: str | None) -> list[str]:
    return CHANNEL_RE.findall(text or "")


def mentioned_subteams(text: str | None) -> list[str]:
    return SUBTEAM_RE.findall(text or "")


def mentions_everyone(text: str | None) -> bool:
    return EVERYONE_RE.search(text or "") is not None


def mentions_channel(text: str | None) -> bool:
    """True if ``@channel`` was used, not whether a channel was referenced."""
    return CHANNEL_BROADCAST_RE.search(text or "") is not None


def mentions_here(text: str | None) -> bool:
    return HERE_RE.search(text or "") is not None


def mentioned_links(text: str | None) -> list[str]:
    """Return the URLs of bracketed links, with any ``|label`` removed."""
    return [ref.split("|", 1)[0] for ref in LINK_RE.findall(text or "")]
