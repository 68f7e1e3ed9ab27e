"""Structured error hierarchy for the Eludris client.

All client errors inherit from EludrisError, enabling uniform catch-all
handling while allowing granular recovery for specific failure modes.
Socket faults on the gateway are never raised; they arrive as ``close``
and ``error`` events instead.
"""


class EludrisError(Exception):
    """Base exception for all Eludris client errors."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class HTTPError(EludrisError):
    """Non-successful REST response (anything but 429, which is retried)."""

    def __init__(self, status: int, status_text: str, response_body: str = ""):
        super().__init__(status_text or f"HTTP {status}", status_code=status, response_body=response_body)
        self.status = status
        self.status_text = status_text


class RateLimitedError(HTTPError):
    """Still rate limited after the configured number of retries."""
    pass


class TransportError(EludrisError):
    """Network failure below the HTTP layer (DNS, TLS, reset socket...)."""
    pass


class ConnectionStateError(EludrisError):
    """Operation attempted while its preconditions are unmet.

    Raised when connecting without an auth token, or sending before the
    gateway socket exists.
    """
    pass


class ConfigurationError(EludrisError):
    """Contradictory or invalid construction options."""
    pass


class ProtocolError(EludrisError):
    """Malformed gateway frame (bad JSON or payload shape)."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message, response_body=raw)
        self.raw = raw
