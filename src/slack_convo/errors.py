"""Exception hierarchy for slack-convo."""


class SlackConvoError(Exception):
    """Base error type."""


class PlatformError(SlackConvoError):
    """Slack rejected a call and returned an explicit ``error`` field."""

    def __init__(self, error: str) -> None:
        super().__init__(error)
        self.error = error


class RateLimitError(PlatformError):
    """A response_url endpoint told us to slow down."""

    def __init__(self) -> None:
        super().__init__("rate_limit")


class StaleContinuationError(SlackConvoError):
    def __init__(self, handler_key: str) -> None:
        super().__init__(f"No handler registered under '{handler_key}'")
        self.handler_key = handler_key
