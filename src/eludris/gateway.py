"""GatewayClient - Eludris gateway (Pandemonium) session.

Manages one WebSocket connection: waits for HELLO, authenticates with the
REST client's token, keeps the session alive with jittered PING heartbeats
and re-emits every decoded frame on an EventBus.

Pandemonium protocol:
- Frames are JSON text: {"op": "<TAG>", "d": <payload>} ("d" optional)
- Server: {"op": "HELLO", "d": {"heartbeat_interval": ms, ...}}
- Client: {"op": "AUTHENTICATE", "d": "<token>"}
- Server: {"op": "AUTHENTICATED"}
- Client: {"op": "PING"} every heartbeat_interval ms, first one jittered
- Server: {"op": "MESSAGE_CREATE", "d": {...}}, ...

There is no reconnect logic. ``close`` and ``error`` events are where a
caller plugs in its own retry policy.
"""

import asyncio
import json
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type, Union

import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import ConnectionClosed

from .client import RESTClient
from .config import GatewayConfig
from .errors import ConnectionStateError, ProtocolError
from .event_bus import EventBus, LifecycleEvent
from .models import (
    ClientPayload,
    GatewayRateLimit,
    Hello,
    Message,
    PresenceUpdate,
    ServerFrame,
    User,
)

logger = logging.getLogger("eludris.gateway")

# Known server ops and the model of their "d" field. None means no payload.
SERVER_PAYLOADS: Dict[str, Optional[Type[BaseModel]]] = {
    "PONG": None,
    "RATE_LIMIT": GatewayRateLimit,
    "HELLO": Hello,
    "AUTHENTICATED": None,
    "MESSAGE_CREATE": Message,
    "USER_UPDATE": User,
    "PRESENCE_UPDATE": PresenceUpdate,
}


class GatewayState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    CLOSED = "closed"
    ERRORED = "errored"


def decode_frame(raw: Union[str, bytes]) -> ServerFrame:
    """Parse one inbound frame.

    Known ops are validated against SERVER_PAYLOADS. Unknown ops are passed
    through with their raw ``d`` so newer servers keep working.

    Raises:
        ProtocolError: Bad JSON, missing op tag, or invalid known payload.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON frame: {e}", text)

    if not isinstance(data, dict) or not isinstance(data.get("op"), str):
        raise ProtocolError("Frame has no op tag", text)

    op = data["op"]
    if op not in SERVER_PAYLOADS:
        return ServerFrame(op=op, d=data.get("d"), has_data="d" in data)

    model = SERVER_PAYLOADS[op]
    if model is None:
        return ServerFrame(op=op)
    if "d" not in data:
        raise ProtocolError(f"{op} frame is missing its payload", text)

    try:
        payload = model.model_validate(data["d"])
    except ValidationError as e:
        raise ProtocolError(f"Invalid {op} payload: {e}", text)
    return ServerFrame(op=op, d=payload, has_data=True)


class GatewayClient:
    """Eludris gateway session.

    Attributes:
        rest: REST client supplying the token and instance info. Only read.
        ws: The WebSocket connection, None until connect().
        events: EventBus. Subscribe to op tags or LifecycleEvent members.
        heartbeat_task: The periodic PING task. Runs until cancelled, which
            only close() does.
        state: Current GatewayState.
    """

    def __init__(
        self,
        rest: RESTClient,
        *,
        log_events: bool = False,
        emit_raw_events: Optional[bool] = None,
        config: Optional[GatewayConfig] = None,
    ):
        """
        Args:
            rest: REST client to take the token and instance info from.
            log_events: Log every raw frame at DEBUG level.
            emit_raw_events: Emit raw_receive/raw_send events (default on).
            config: Prebuilt options, takes precedence over the flags.

        Raises:
            ConfigurationError: If emit_raw_events is False and log_events is True.
        """
        self.config = config or GatewayConfig(log_events=log_events, emit_raw_events=emit_raw_events)
        self.rest = rest
        self.ws = None
        self.events = EventBus()
        self.heartbeat_task: Optional[asyncio.Task] = None
        self.state = GatewayState.DISCONNECTED

        self._receive_task: Optional[asyncio.Task] = None
        self._jitter_task: Optional[asyncio.Task] = None
        self._handlers: Dict[str, Callable[[ServerFrame], Awaitable[None]]] = {
            "HELLO": self._on_hello,
            "AUTHENTICATED": self._on_authenticated,
        }

        if self.config.log_events:
            self.events.subscribe(LifecycleEvent.RAW_RECEIVE, lambda data: logger.debug(f"< {data}"))
            self.events.subscribe(LifecycleEvent.RAW_SEND, lambda data: logger.debug(f"> {data}"))

    @property
    def emit_raw_events(self) -> bool:
        return bool(self.config.emit_raw_events)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the gateway connection and start listening.

        Returns once the socket is open; authentication happens when HELLO
        arrives. Subscribe to ``ready`` to know when it completed.

        Raises:
            ConnectionStateError: If the REST client has no auth token.
        """
        if not self.rest.auth_token:
            raise ConnectionStateError("No auth token.")

        self.state = GatewayState.CONNECTING
        try:
            instance_info = self.rest.instance_info or await self.rest.get_instance_info(with_rate_limits=False)
            logger.info(f"Connecting to gateway: {instance_info.pandemonium_url}")
            self.ws = await websockets.connect(instance_info.pandemonium_url)
        except Exception:
            self.state = GatewayState.ERRORED
            raise

        self.state = GatewayState.AWAITING_HELLO
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Stop heartbeats and close the socket.

        Never called by the client itself.
        """
        for task in (self._jitter_task, self.heartbeat_task):
            if task is not None and not task.done():
                task.cancel()
        self._jitter_task = None
        self.heartbeat_task = None

        if self.ws is not None:
            await self.ws.close(code, reason)
        if self._receive_task is not None:
            await self._receive_task
            self._receive_task = None

    async def _receive_loop(self) -> None:
        ws = self.ws
        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.error(f"Gateway receive error: {e}")
            self.state = GatewayState.ERRORED
            self.events.emit(LifecycleEvent.ERROR, e)
            return

        code = ws.close_code if ws.close_code is not None else 1006
        reason = ws.close_reason or ""
        logger.info(f"Gateway closed: {code} {reason}")
        self.state = GatewayState.CLOSED
        self.events.emit(LifecycleEvent.CLOSE, code, reason)

    async def _handle_frame(self, raw: Union[str, bytes]) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        if self.emit_raw_events:
            self.events.emit(LifecycleEvent.RAW_RECEIVE, raw)

        try:
            frame = decode_frame(raw)
        except ProtocolError as e:
            logger.error(f"Dropping malformed gateway frame: {e}")
            self.events.emit(LifecycleEvent.ERROR, e)
            return

        if frame.has_data:
            self.events.emit(frame.op, frame.d)
        else:
            self.events.emit(frame.op)

        handler = self._handlers.get(frame.op)
        if handler is None:
            return
        try:
            await handler(frame)
        except ConnectionClosed:
            raise
        except Exception as e:
            logger.error(f"Error handling {frame.op}: {e}")
            self.events.emit(LifecycleEvent.ERROR, e)

    # ------------------------------------------------------------------
    # Op handlers
    # ------------------------------------------------------------------

    async def _on_hello(self, frame: ServerFrame) -> None:
        self.state = GatewayState.AUTHENTICATING
        await self.send(ClientPayload.authenticate(self.rest.auth_token))
        logger.info("Sent authentication payload")

        self._jitter_task = asyncio.create_task(self.heartbeat(frame.d.heartbeat_interval))
        self._jitter_task.add_done_callback(self._log_heartbeat_failure)

    async def _on_authenticated(self, frame: ServerFrame) -> None:
        logger.info("Authenticated")
        self.state = GatewayState.READY
        self.events.emit(LifecycleEvent.READY)

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    async def heartbeat(self, heartbeat_interval: int) -> None:
        """Send a PING after a random jitter, then every ``heartbeat_interval`` ms.

        The jitter is uniform in [0, heartbeat_interval) so clients that
        connected together after an outage don't ping in lockstep.

        Raises:
            ConnectionStateError: If there is no socket.
        """
        if self.ws is None:
            raise ConnectionStateError("Not connected.")

        await asyncio.sleep(heartbeat_interval * random.random() / 1000)
        await self.send(ClientPayload.ping())

        self.heartbeat_task = asyncio.create_task(self._heartbeat_loop(heartbeat_interval))

    async def _heartbeat_loop(self, heartbeat_interval: int) -> None:
        # Keeps ticking after the socket closed, every tick failing, until
        # someone cancels heartbeat_task.
        while True:
            await asyncio.sleep(heartbeat_interval / 1000)
            try:
                await self.send(ClientPayload.ping())
            except Exception as e:
                logger.warning(f"Heartbeat failed: {e}")

    def _log_heartbeat_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Heartbeat failed: {task.exception()}")

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, payload: Union[ClientPayload, Dict[str, Any]]) -> None:
        """Send a payload to the gateway.

        Raises:
            ConnectionStateError: If the client is not connected.
        """
        if self.ws is None:
            raise ConnectionStateError("Not connected.")

        if not isinstance(payload, ClientPayload):
            payload = ClientPayload.model_validate(payload)
        data = payload.to_json()

        if self.emit_raw_events:
            self.events.emit(LifecycleEvent.RAW_SEND, data)

        await self.ws.send(data)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_health(self) -> Dict[str, Any]:
        """Connection state for monitoring."""
        return {
            "state": self.state.value,
            "connected": self.ws is not None,
            "heartbeat_running": self.heartbeat_task is not None and not self.heartbeat_task.done(),
            "events": self.events.get_stats(),
        }
