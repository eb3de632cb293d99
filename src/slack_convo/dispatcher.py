"""Outbound replies: bot ``chat.postMessage`` and ``response_url`` POSTs."""

from __future__ import annotations

import logging
import random
from typing import Any, Callable, Mapping, Sequence, Union

import requests
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from slack_convo.config import Config
from slack_convo.errors import PlatformError, RateLimitError
from slack_convo.models import Event, Meta

logger = logging.getLogger(__name__)

Payload = Union[str, Mapping[str, Any], Sequence[Union[str, Mapping[str, Any]]]]
Callback = Callable[[Exception | None, Any], None]


def normalize_payload(value: Payload | None, rng: random.Random | None = None) -> dict:
    """Turn a string, mapping or list of candidates into message params.

    A list (or tuple) picks one candidate uniformly at random; a string is
    wrapped as ``{"text": value}``; a mapping is copied as-is. ``None`` and
    an empty candidate list give empty params.
    """
    if isinstance(value, (list, tuple)):
        value = (rng or random).choice(value) if value else None
    if value is None:
        return {}
    if isinstance(value, str):
        return {"text": value}
    return dict(value)


def _finish(callback: Callback | None, err: Exception | None, data: Any) -> Any:
    """Hand the outcome to ``callback``, or raise ``err`` if there is none."""
    if callback is not None:
        callback(err, data)
        return data
    if err is not None:
        raise err
    return data


class OutboundDispatcher:
    """Sends replies on behalf of the bot.

    ``say`` posts as the bot through the Web API; ``respond`` uses the
    one-time ``response_url`` of a slash command or interactive action.
    Neither retries. When a ``callback`` is given every outcome is reported
    as ``callback(err, data)``; otherwise errors are raised.
    """

    def __init__(
        self,
        client: WebClient | None = None,
        session: requests.Session | None = None,
        config: Config | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client or WebClient()
        self._session = session or requests.Session()
        self._config = config or Config()
        self._rng = rng

    def say(self, meta: Meta, payload: Payload, callback: Callback | None = None) -> Any:
        params = normalize_payload(payload, self._rng)
        params["token"] = meta.bot_token or meta.app_token
        params["channel"] = meta.channel_id

        try:
            response = self._client.chat_postMessage(**params)
        except SlackApiError as exc:
            error = exc.response.get("error") or str(exc)
            logger.warning("chat.postMessage to %s failed: %s", meta.channel_id, error)
            return _finish(callback, PlatformError(error), None)
        except Exception as exc:
            logger.warning("chat.postMessage to %s failed: %s", meta.channel_id, exc)
            return _finish(callback, exc, None)

        logger.debug("Posted message to %s", meta.channel_id)
        return _finish(callback, None, response.data)

    def respond(
        self, response_url: str, payload: Payload, callback: Callback | None = None
    ) -> Any:
        params = normalize_payload(payload, self._rng)

        try:
            resp = self._session.post(
                response_url, json=params, timeout=self._config.http_timeout
            )
        except requests.RequestException as exc:
            logger.warning("response_url POST failed: %s", exc)
            return _finish(callback, exc, None)

        try:
            body = resp.json()
        except ValueError:
            body = resp.text

        if isinstance(body, dict) and body.get("error"):
            logger.warning("response_url rejected payload: %s", body["error"])
            return _finish(callback, PlatformError(body["error"]), None)

        if isinstance(body, str) and self._config.rate_limit_notice in body:
            logger.warning("response_url rate limited")
            return _finish(callback, RateLimitError(), None)

        if isinstance(body, dict):
            body.pop("ok", None)
        return _finish(callback, None, body)

    # -- event-scoped conveniences -------------------------------------------

    def say_event(self, event: Event, payload: Payload, callback: Callback | None = None) -> Any:
        return self.say(event.meta, payload, callback)

    def respond_event(
        self, event: Event, payload: Payload, callback: Callback | None = None
    ) -> Any:
        """Reply through the event's own ``response_url``."""
        if not event.meta.response_url:
            raise ValueError(f"{event.kind.value} event carries no response_url")
        return self.respond(event.meta.response_url, payload, callback)
