"""Configuration loading and validation for slack-convo."""

import logging
import os
from dataclasses import dataclass

import yaml

from slack_convo.models import StalePolicy

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60 * 60

DEFAULT_RATE_LIMIT_NOTICE = "You are sending too many requests. Please relax."

KNOWN_KEYS = {
    "default_ttl",
    "stale_policy",
    "direct_channel_prefix",
    "rate_limit_notice",
    "http_timeout",
    "dedupe_size",
}


@dataclass
class RouterConfig:
    """The slice of configuration the conversation router needs.

    Attributes:
        default_ttl: Seconds a continuation waits for the next message when
            the caller passes no (or a falsy) ttl. One hour by default.
        stale_policy: How to treat a continuation whose handler key is no
            longer registered.
    """

    default_ttl: int = DEFAULT_TTL
    stale_policy: StalePolicy = StalePolicy.IGNORE


@dataclass
class Config:
    default_ttl: int = DEFAULT_TTL
    stale_policy: StalePolicy = StalePolicy.IGNORE
    direct_channel_prefix: str = "D"
    rate_limit_notice: str = DEFAULT_RATE_LIMIT_NOTICE
    http_timeout: float = 10
    dedupe_size: int = 1000

    def router_config(self) -> RouterConfig:
        return RouterConfig(default_ttl=self.default_ttl, stale_policy=self.stale_policy)


def _parse_policy(value: str) -> StalePolicy:
    """Parse a string into a StalePolicy, raising ValueError on invalid input."""
    try:
        return StalePolicy(value)
    except ValueError:
        valid = ", ".join(p.value for p in StalePolicy)
        raise ValueError(
            f"Invalid stale_policy '{value}'. Must be one of: {valid}"
        )


def _validate_config(config: Config) -> None:
    """Validate config values, raising ValueError on invalid fields."""
    if isinstance(config.default_ttl, bool) or not isinstance(config.default_ttl, int):
        raise ValueError(
            f"default_ttl must be an integer, got {type(config.default_ttl).__name__}"
        )
    if config.default_ttl <= 0:
        raise ValueError(f"default_ttl must be positive, got {config.default_ttl}")

    if not isinstance(config.http_timeout, (int, float)):
        raise ValueError(
            f"http_timeout must be a number, got {type(config.http_timeout).__name__}"
        )
    if config.http_timeout <= 0:
        raise ValueError(f"http_timeout must be positive, got {config.http_timeout}")

    if not isinstance(config.dedupe_size, int) or config.dedupe_size < 1:
        raise ValueError(f"dedupe_size must be a positive integer, got {config.dedupe_size!r}")

    if not config.direct_channel_prefix:
        raise ValueError("direct_channel_prefix must not be empty")
    if not config.rate_limit_notice:
        raise ValueError("rate_limit_notice must not be empty")


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML file.

    Config path resolution order:
    1. Explicit path argument
    2. SLACK_CONVO_CONFIG_PATH environment variable
    3. ~/.config/slack-convo/config.yaml
    """
    if path is None:
        path = os.environ.get("SLACK_CONVO_CONFIG_PATH")
    if path is None:
        path = os.path.expanduser("~/.config/slack-convo/config.yaml")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a YAML mapping, got {type(raw).__name__}")

    for key in raw:
        if key not in KNOWN_KEYS:
            logger.warning("Unknown config key '%s', ignoring", key)

    config = Config()

    if "default_ttl" in raw:
        config.default_ttl = raw["default_ttl"]
    if "stale_policy" in raw:
        config.stale_policy = _parse_policy(str(raw["stale_policy"]))
    if "direct_channel_prefix" in raw:
        config.direct_channel_prefix = str(raw["direct_channel_prefix"])
    if "rate_limit_notice" in raw:
        config.rate_limit_notice = str(raw["rate_limit_notice"])
    if "http_timeout" in raw:
        config.http_timeout = raw["http_timeout"]
    if "dedupe_size" in raw:
        config.dedupe_size = raw["dedupe_size"]

    _validate_config(config)

    return config
