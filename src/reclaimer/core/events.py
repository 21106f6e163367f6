# src/reclaimer/core/events.py
"""Event bus for retention run observability.

The executor publishes to an EventBusProtocol it is handed at construction;
console formatters, progress streams, or nothing at all subscribe at the
call site. There is no process-wide broadcaster.
"""

import threading
from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class EventBusProtocol(Protocol):
    """Protocol for event bus implementations.

    Lets EventBus and NullEventBus satisfy the interface without
    inheritance, so a no-op bus is never mistaken for a real one.
    """

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Subscribe a handler to an event type."""
        ...

    def emit(self, event: T) -> None:
        """Emit an event to all subscribers."""
        ...


class EventBus:
    """Synchronous typed event bus.

    Handlers run in subscription order on the emitting thread. Handler
    exceptions propagate to the emitter: subscribers are our own code and a
    broken formatter should fail loudly rather than hide progress.

    Subscribing and unsubscribing are safe from other threads (e.g. a
    streaming consumer attaching mid-run). The internal lock is released
    before handlers run, so a slow subscriber never blocks subscription.

    Example:
        bus = EventBus()
        bus.subscribe(ProgressEvent, lambda e: print(e.processed_count))
        executor = RetentionExecutor(..., event_bus=bus)
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Subscribe a handler to an event type.

        Subscriptions are exact-type: a handler for ProgressEvent does not
        receive subclasses.
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def subscribe_all(self, handlers: Mapping[type, Callable[..., None]]) -> None:
        """Subscribe a formatter map (event type -> handler) in one call."""
        for event_type, handler in handlers.items():
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Remove a handler.

        Raises:
            ValueError: If the handler was never subscribed to event_type
        """
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            handlers.remove(handler)

    def subscriber_count(self, event_type: type) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def emit(self, event: T) -> None:
        """Emit an event to all subscribers.

        Events with no subscribers are dropped; publishers do not need to
        know who is listening.
        """
        with self._lock:
            handlers = list(self._subscribers.get(type(event), []))
        for handler in handlers:
            handler(event)


class NullEventBus:
    """No-op event bus for library use where nobody observes progress.

    Does NOT inherit from EventBus: subscribing here is a no-op, and
    inheritance would hide a caller that expects callbacks.
    """

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """No-op subscription - handler will never be called."""
        pass

    def emit(self, event: T) -> None:
        """No-op emission."""
        pass
