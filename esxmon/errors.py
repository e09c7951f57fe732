"""Error types for the listener.

Every fatal error carries the process exit code it maps to, so the CLI can
translate an exception into an exit status without a lookup table.
"""
from __future__ import annotations


class EsxmonError(Exception):
    """Base class for all listener errors."""

    exit_code: int = 20

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(EsxmonError):
    """Required connection information is missing or the config file is unusable."""

    exit_code = 1


class EndpointURLError(EsxmonError):
    """The endpoint URL could not be parsed into a usable connection target."""

    exit_code = 10

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Unable to parse the vsphere-url{detail}")


class EndpointConnectionError(EsxmonError):
    """Authentication or handshake against the management endpoint failed."""

    def __init__(self, host: str, cause: BaseException | None = None):
        self.host = host
        self.cause = cause
        reason = f": {cause}" if cause else ""
        super().__init__(f"Unable to connect to {host}{reason}")


class DiscoveryError(EsxmonError):
    """The default inventory root is missing or ambiguous."""


class StreamError(EsxmonError):
    """Transport failure while a subscription was active."""


class ForwardingError(EsxmonError):
    """A classified event could not be delivered to the sink.

    Never fatal: the dispatcher logs it and moves on to the next event.
    """

    def __init__(self, event_type: str, cause: BaseException):
        self.event_type = event_type
        self.cause = cause
        super().__init__(f"Failed to forward {event_type}: {cause}")
