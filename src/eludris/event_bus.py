"""
Event Bus for the Eludris gateway client.

Publish-subscribe register used by GatewayClient to hand decoded gateway
frames and connection lifecycle signals to application code.

Event names:
    - Gateway op tags ("HELLO", "MESSAGE_CREATE", ...): called with the
      frame payload, or with no argument for ops that carry none.
    - Lifecycle events (LifecycleEvent): raw_receive(data), raw_send(data),
      ready(), close(code, reason), error(cause).

Delivery:
    - Synchronous, in subscription order, at the moment of emit().
    - Coroutine callbacks are scheduled as tasks on the running loop.
    - A failing subscriber is logged and counted. It stays subscribed and
      never prevents later subscribers from running.

Thread Safety:
    Designed for single event loop operation. All methods should be
    called from the same asyncio event loop.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

logger = logging.getLogger("eludris.event_bus")


class LifecycleEvent(str, Enum):
    """Events the gateway emits besides op tags."""
    RAW_RECEIVE = "raw_receive"
    RAW_SEND = "raw_send"
    READY = "ready"
    CLOSE = "close"
    ERROR = "error"


EventName = Union[str, LifecycleEvent]


def _event_key(event: EventName) -> str:
    return event.value if isinstance(event, LifecycleEvent) else event


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__name__", repr(callback))


class EventBus:
    """
    Typed-by-name event emitter.

    Usage:
        bus = EventBus()

        @bus.on("MESSAGE_CREATE")
        def on_message(message):
            print(message.content)

        bus.subscribe(LifecycleEvent.READY, lambda: print("ready"))
        bus.emit("MESSAGE_CREATE", message)
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._once: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

        self._events_emitted = 0
        self._callback_errors = 0
        self._last_error: Optional[str] = None

    def subscribe(self, event: EventName, callback: Callable) -> Callable:
        """
        Subscribe to an event.

        Args:
            event: Op tag or LifecycleEvent
            callback: Sync or async callable

        Returns:
            The callback, so this works as a decorator via on().
        """
        self._subscribers.setdefault(_event_key(event), []).append(callback)
        logger.debug(f"Subscriber added for {_event_key(event)}: {_callback_name(callback)}")
        return callback

    def on(self, event: EventName, callback: Optional[Callable] = None):
        """subscribe(), also usable as ``@bus.on(event)``."""
        if callback is None:
            return lambda cb: self.subscribe(event, cb)
        return self.subscribe(event, callback)

    def once(self, event: EventName, callback: Callable) -> Callable:
        """Subscribe for a single delivery of ``event``.

        Other registrations of the same callback are left untouched.
        """
        self._once.setdefault(_event_key(event), []).append(callback)
        return self.subscribe(event, callback)

    def unsubscribe(self, event: EventName, callback: Callable) -> None:
        """Remove one registration of ``callback`` for ``event``."""
        key = _event_key(event)
        try:
            self._subscribers.get(key, []).remove(callback)
            logger.debug(f"Subscriber removed for {key}: {_callback_name(callback)}")
        except ValueError:
            logger.warning(f"Callback not found in subscribers: {_callback_name(callback)}")
            return
        self._discard_once(key, callback)

    def _discard_once(self, key: str, callback: Callable) -> bool:
        pending = self._once.get(key)
        if not pending or callback not in pending:
            return False
        pending.remove(callback)
        if not pending:
            del self._once[key]
        return True

    off = unsubscribe

    def listener_count(self, event: EventName) -> int:
        return len(self._subscribers.get(_event_key(event), []))

    def emit(self, event: EventName, *args: Any) -> int:
        """
        Deliver ``args`` to every subscriber of ``event``.

        Returns:
            Number of subscribers notified.
        """
        key = _event_key(event)
        self._events_emitted += 1

        # Snapshot so callbacks may (un)subscribe while we iterate.
        subscribers = list(self._subscribers.get(key, []))
        for callback in subscribers:
            if self._discard_once(key, callback):
                self._subscribers[key].remove(callback)
            self._safe_call(key, callback, args)

        return len(subscribers)

    def _safe_call(self, event: str, callback: Callable, args: tuple) -> None:
        try:
            result = callback(*args)
        except Exception as e:
            self._record_error(event, callback, e)
            return

        if asyncio.iscoroutine(result):
            task = asyncio.get_running_loop().create_task(result)
            self._pending.add(task)
            task.add_done_callback(lambda t: self._on_task_done(event, callback, t))

    def _on_task_done(self, event: str, callback: Callable, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._record_error(event, callback, exc)

    def _record_error(self, event: str, callback: Callable, exc: BaseException) -> None:
        self._callback_errors += 1
        self._last_error = str(exc)
        logger.error(f"Error in subscriber callback {_callback_name(callback)} for {event}: {exc}")

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics."""
        return {
            "events_emitted": self._events_emitted,
            "callback_errors": self._callback_errors,
            "last_error": self._last_error,
            "pending_callbacks": len(self._pending),
            "subscriber_count": sum(len(subs) for subs in self._subscribers.values()),
        }
