"""Entry point and demo application for slack-convo."""

from __future__ import annotations

import argparse
import logging
import signal
import sys

from slack_convo import classifier
from slack_convo.config import Config, load_config
from slack_convo.dispatcher import OutboundDispatcher
from slack_convo.models import Event, EventKind, MessageFilter
from slack_convo.receiver import SlackReceiver
from slack_convo.registry import RouteRegistry
from slack_convo.router import ConversationRouter
from slack_convo.store import MemoryStore

logger = logging.getLogger(__name__)

GREETINGS = ["Hi there! What's your name?", "Hello! Who am I talking to?"]

ADDRESSED = [MessageFilter.DIRECT_MESSAGE, MessageFilter.DIRECT_MENTION]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="slack-convo",
        description="Run a Slack bot with time-bounded conversation continuations.",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="Path to config YAML (default: ~/.config/slack-convo/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser.parse_args(argv)


def register_handlers(
    registry: RouteRegistry, router: ConversationRouter, dispatcher: OutboundDispatcher
) -> None:
    """Register the demo's continuation handlers."""

    @registry.route("ask_name")
    def ask_name(event: Event, state: dict) -> None:
        name = classifier.strip_direct_mention(event).strip()
        if not name:
            dispatcher.say_event(event, "I didn't catch that. What's your name?")
            router.continue_conversation(event, "ask_name", state)
            return
        dispatcher.say_event(event, f"Nice to meet you, {name}!")
        logger.info("Conversation %s finished (%s)", event.conversation_key, state)


def handle_event(
    event: Event,
    *,
    router: ConversationRouter,
    dispatcher: OutboundDispatcher,
    config: Config,
) -> None:
    """Default handler for events with no pending continuation."""
    if event.kind is EventKind.COMMAND:
        text = event.body.get("text") or "nothing"
        dispatcher.respond_event(event, f"You said: {text}")
        return

    if not classifier.matches_any(event, ADDRESSED, config.direct_channel_prefix):
        logger.debug("Ignoring unaddressed event in %s", event.meta.channel_id)
        return

    dispatcher.say_event(event, GREETINGS)
    router.continue_conversation(event, "ask_name", {"greeted_by": event.meta.user_id})


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        level=getattr(logging, args.log_level),
    )

    try:
        config = load_config(args.config)
    except FileNotFoundError as exc:
        if args.config is not None:
            logger.error("Config file not found: %s", exc)
            sys.exit(1)
        logger.info("No config file found; using defaults")
        config = Config()
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    dispatcher = OutboundDispatcher(config=config)
    registry = RouteRegistry()
    router = ConversationRouter(MemoryStore(), registry.lookup, config.router_config())
    register_handlers(registry, router, dispatcher)

    receiver = SlackReceiver(
        router,
        lambda event: handle_event(event, router=router, dispatcher=dispatcher, config=config),
        config,
    )

    def _shutdown(signum, _frame):
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        receiver.close()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    logger.info("Starting slack-convo")
    receiver.start()
