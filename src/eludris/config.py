"""
Eludris client configuration.

Simple, flat configuration objects with sensible defaults. Nothing in the
client reads the environment on its own; call ``ClientConfig.from_env()``
explicitly to pick settings up from the process environment or a ``.env``
file.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_API_URL = "https://api.eludris.gay/next"
DEFAULT_USER_AGENT = "eludris.py"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class ClientConfig:
    """
    REST client configuration.

    Attributes:
        api_url: Base URL of the Oprish REST API.
        user_agent: Value of the User-Agent header sent with every request.
        request_timeout: Per-request timeout in seconds handed to httpx.
        max_rate_limit_retries: Cap on consecutive 429 retries for a single
            call. None retries until the server stops answering 429.
        log_level: Level applied to the "eludris" logger by
            setup_logging(config=...).
    """

    api_url: str = DEFAULT_API_URL
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 15.0
    max_rate_limit_retries: Optional[int] = None
    log_level: str = "INFO"

    def __post_init__(self):
        self.api_url = self.api_url.rstrip("/")
        if not self.api_url:
            raise ConfigurationError("api_url cannot be empty")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be > 0")
        if self.max_rate_limit_retries is not None and self.max_rate_limit_retries < 0:
            raise ConfigurationError("max_rate_limit_retries must be >= 0")
        if not isinstance(getattr(logging, self.log_level.upper(), None), int):
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Load configuration from environment variables (and ``.env``).

        Returns:
            ClientConfig instance

        Raises:
            ConfigurationError: If a variable cannot be parsed
        """
        load_dotenv()

        retries = os.environ.get("ELUDRIS_MAX_RATE_LIMIT_RETRIES")
        try:
            return cls(
                api_url=os.environ.get("ELUDRIS_API_URL", DEFAULT_API_URL),
                user_agent=os.environ.get("ELUDRIS_USER_AGENT", DEFAULT_USER_AGENT),
                request_timeout=float(os.environ.get("ELUDRIS_REQUEST_TIMEOUT", "15.0")),
                max_rate_limit_retries=int(retries) if retries else None,
                log_level=os.environ.get("ELUDRIS_LOG_LEVEL", "INFO"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid Eludris environment configuration: {e}")


@dataclass(frozen=True)
class GatewayConfig:
    """
    Gateway client options, validated once at construction.

    Attributes:
        log_events: Log every raw frame sent and received at DEBUG level.
        emit_raw_events: Emit ``raw_receive``/``raw_send`` events. None means
            enabled. Logging is driven by those events, so it cannot be
            disabled while log_events is on.
    """

    log_events: bool = False
    emit_raw_events: Optional[bool] = None

    def __post_init__(self):
        if self.emit_raw_events is False and self.log_events:
            raise ConfigurationError("`emit_raw_events` cannot be False if `log_events` is True.")
        if self.emit_raw_events is None:
            object.__setattr__(self, "emit_raw_events", True)


def setup_logging(level: Optional[str] = None, config: Optional[ClientConfig] = None) -> logging.Logger:
    """
    Set up logging configuration for the client.

    An explicit ``level`` wins over ``config.log_level``; with neither, the
    ClientConfig default is used.
    """
    if level is None:
        level = (config or ClientConfig()).log_level
    numeric_level = getattr(logging, level.upper())

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    logger = logging.getLogger("eludris")
    logger.setLevel(numeric_level)
    return logger
