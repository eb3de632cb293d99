"""Slack receiver built on bolt Socket Mode.

Converts raw bolt payloads (``message`` events, slash commands and
interactive actions) into :class:`Event` instances and routes each one
either to its pending conversation continuation or to the application's
default handler.
"""

from __future__ import annotations

import collections
import logging
import os
import re
from typing import Any, Callable

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from slack_convo.config import Config
from slack_convo.models import Event, EventKind, Meta
from slack_convo.router import ConversationRouter

logger = logging.getLogger(__name__)

# Event subtypes that carry no useful message content.
_IGNORED_SUBTYPES = frozenset({
    "channel_join",
    "channel_leave",
    "channel_topic",
    "channel_purpose",
    "channel_name",
    "channel_archive",
    "channel_unarchive",
    "group_join",
    "group_leave",
    "message_changed",
    "message_deleted",
})

_ANY = re.compile(".*")


def meta_from_payload(
    kind: EventKind,
    body: dict,
    *,
    bot_token: str | None = None,
    app_token: str | None = None,
    bot_user_id: str | None = None,
) -> Meta:
    """Pull the routing identifiers out of a raw Slack payload."""
    if kind is EventKind.EVENT:
        inner = body.get("event", {})
        team_id = body.get("team_id") or inner.get("team")
        channel_id = inner.get("channel")
        user_id = inner.get("user")
        bot_id = inner.get("bot_id")
        response_url = None
    elif kind is EventKind.COMMAND:
        team_id = body.get("team_id")
        channel_id = body.get("channel_id")
        user_id = body.get("user_id")
        bot_id = None
        response_url = body.get("response_url")
    else:
        team_id = (body.get("team") or {}).get("id")
        channel_id = (body.get("channel") or {}).get("id")
        user_id = (body.get("user") or {}).get("id")
        bot_id = None
        response_url = body.get("response_url")

    return Meta(
        team_id=team_id,
        channel_id=channel_id,
        user_id=user_id,
        bot_id=bot_id,
        bot_token=bot_token,
        app_token=app_token,
        bot_user_id=bot_user_id,
        response_url=response_url,
    )


class SlackReceiver:
    """Wraps a Slack Bolt ``App`` with Socket Mode and conversation routing.

    Responsibilities
    ----------------
    * Connects to Slack and retrieves the bot's own user ID.
    * Converts raw payloads into :class:`Event` objects.
    * De-duplicates events using a bounded deque.
    * Runs a pending continuation when there is one, otherwise ``handler``.
    """

    def __init__(
        self,
        router: ConversationRouter,
        handler: Callable[[Event], Any],
        config: Config | None = None,
    ) -> None:
        self._bot_token = os.environ["SLACK_BOT_TOKEN"]
        # xapp- token: opens the socket only, it cannot call the Web API.
        self._socket_token = os.environ["SLACK_APP_TOKEN"]
        # Optional xoxp- token used by say() when an event has no bot token.
        self._user_token = os.environ.get("SLACK_USER_TOKEN")
        self._router = router
        self._handler = handler
        config = config or Config()

        self._app = App(token=self._bot_token)
        self._socket_handler = SocketModeHandler(self._app, self._socket_token)

        auth_response = self._app.client.auth_test()
        self._bot_user_id: str = auth_response["user_id"]
        logger.info("Bot user ID resolved: %s", self._bot_user_id)

        self._seen_events: collections.deque[str] = collections.deque(
            maxlen=config.dedupe_size
        )

        @self._app.event("message")
        def _on_message(body, ack):
            ack()
            self.receive(EventKind.EVENT, body)

        @self._app.command(_ANY)
        def _on_command(body, ack):
            ack()
            self.receive(EventKind.COMMAND, body)

        @self._app.action(_ANY)
        def _on_action(body, ack):
            ack()
            self.receive(EventKind.ACTION, body)

    # -- public properties / helpers -----------------------------------------

    @property
    def bot_user_id(self) -> str:
        """The Slack user ID of the bot itself."""
        return self._bot_user_id

    @property
    def app(self) -> App:
        """The underlying ``slack_bolt.App`` instance."""
        return self._app

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start the Socket Mode handler (blocking)."""
        logger.info("Starting Socket Mode handler")
        self._socket_handler.start()

    def close(self) -> None:
        logger.info("Closing Socket Mode handler")
        self._socket_handler.close()

    # -- event handling ------------------------------------------------------

    def parse(self, kind: EventKind, body: dict) -> Event | None:
        """Convert a raw payload into an :class:`Event`.

        Returns ``None`` when the payload should be silently dropped
        (duplicate, irrelevant subtype, or the bot's own message).
        """
        if kind is EventKind.EVENT:
            inner = body.get("event", {})
            event_id = body.get("event_id") or inner.get("client_msg_id") or inner.get("ts")
            if event_id is not None:
                if event_id in self._seen_events:
                    logger.debug("Duplicate event %s; dropping", event_id)
                    return None
                self._seen_events.append(event_id)

            subtype = inner.get("subtype")
            if subtype in _IGNORED_SUBTYPES:
                logger.debug("Ignored subtype %s; dropping", subtype)
                return None

            if inner.get("user") == self._bot_user_id:
                logger.debug("Own message in %s; dropping", inner.get("channel"))
                return None

        meta = meta_from_payload(
            kind,
            body,
            bot_token=self._bot_token,
            app_token=self._user_token,
            bot_user_id=self._bot_user_id,
        )
        return Event(kind=kind, body=body, meta=meta)

    def receive(self, kind: EventKind, body: dict) -> Any:
        event = self.parse(kind, body)
        if event is None:
            return None

        override = self._router.override_for(event)
        if override is not None:
            return override(event)
        return self._handler(event)
