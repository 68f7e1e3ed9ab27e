"""eludris - async client for the Eludris chat service.

Public exports:
    RESTClient: Rate limit aware REST client (Oprish + Effis)
    GatewayClient: Gateway (Pandemonium) session with heartbeats
    EventBus / LifecycleEvent: Event delivery for gateway frames
    RateLimitStore / RateLimitBucket: Per-route quota cache
    ClientConfig / GatewayConfig: Settings

Error hierarchy:
    EludrisError (base)
    HTTPError
    RateLimitedError
    TransportError
    ConnectionStateError
    ConfigurationError
    ProtocolError
"""

from .client import RESTClient
from .config import ClientConfig, GatewayConfig, setup_logging
from .errors import (
    ConfigurationError,
    ConnectionStateError,
    EludrisError,
    HTTPError,
    ProtocolError,
    RateLimitedError,
    TransportError,
)
from .event_bus import EventBus, LifecycleEvent
from .gateway import GatewayClient, GatewayState, decode_frame
from .rate_limiter import RateLimitBucket, RateLimitStore

__all__ = [
    "RESTClient",
    "GatewayClient",
    "GatewayState",
    "decode_frame",
    "EventBus",
    "LifecycleEvent",
    "RateLimitStore",
    "RateLimitBucket",
    "ClientConfig",
    "GatewayConfig",
    "setup_logging",
    "EludrisError",
    "HTTPError",
    "RateLimitedError",
    "TransportError",
    "ConnectionStateError",
    "ConfigurationError",
    "ProtocolError",
]

__version__ = "0.4.0"
