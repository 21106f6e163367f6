# src/reclaimer/core/retention/progress.py
"""Progress reporting for retention passes.

ProgressReporter builds ProgressEvents for one run and publishes them on
the event bus. ProgressStream is a subscriber that buffers those events
for a consumer on another thread or event loop, e.g. a server-sent-events
endpoint streaming a long purge to a browser.
"""

import asyncio
import json
import queue
from collections.abc import AsyncIterator, Iterable, Iterator

from reclaimer.contracts.enums import RunStatus
from reclaimer.contracts.events import ProgressEvent, RecordError
from reclaimer.core.events import EventBus, EventBusProtocol


class ProgressReporter:
    """Publishes ProgressEvents for a single run.

    Emitting is fire-and-forget: the reporter never blocks on subscribers
    beyond the synchronous handler call made by the bus.
    """

    def __init__(self, bus: EventBusProtocol, operation_id: str, total_count: int, total_batches: int) -> None:
        self._bus = bus
        self.operation_id = operation_id
        self.total_count = total_count
        self.total_batches = total_batches
        self.last_event: ProgressEvent | None = None

    def update(
        self,
        *,
        processed_count: int,
        current_batch: int,
        errors: Iterable[RecordError] = (),
        status: RunStatus = RunStatus.RUNNING,
    ) -> ProgressEvent:
        """Emit a progress snapshot and return it."""
        event = ProgressEvent(
            operation_id=self.operation_id,
            processed_count=processed_count,
            total_count=self.total_count,
            current_batch=current_batch,
            total_batches=self.total_batches,
            status=status,
            errors=tuple(errors),
        )
        self.last_event = event
        self._bus.emit(event)
        return event

    def finish(
        self,
        status: RunStatus,
        *,
        processed_count: int,
        current_batch: int,
        errors: Iterable[RecordError] = (),
    ) -> ProgressEvent:
        """Emit the final snapshot carrying the terminal status."""
        if not status.is_terminal:
            raise ValueError(f"finish() requires a terminal status, got {status.value}")
        return self.update(processed_count=processed_count, current_batch=current_batch, errors=errors, status=status)


class ProgressStream:
    """Thread-safe buffer of one run's ProgressEvents.

    Iteration ends after the first event with a terminal status, or once
    the stream is closed. Executors publish a terminal event even for runs
    that raise, so a consumer attached before the run never waits forever;
    the timeouts cover runs that never start.

    Example:
        stream = ProgressStream()
        stream.attach(bus)
        threading.Thread(target=executor.execute, args=(policy,), kwargs={"confirmed": True}).start()
        for line in stream.sse_lines(timeout=30):
            response.write(line)
    """

    def __init__(self, operation_id: str | None = None) -> None:
        """Initialize the stream.

        Args:
            operation_id: Only buffer events for this run (None accepts all)
        """
        self._operation_id = operation_id
        # None marks the end of the stream
        self._queue: queue.Queue[ProgressEvent | None] = queue.Queue()
        self._bus: EventBus | None = None

    def attach(self, bus: EventBus) -> None:
        self._bus = bus
        bus.subscribe(ProgressEvent, self.handle)

    def detach(self) -> None:
        """Unsubscribe and end iteration for any waiting consumer."""
        if self._bus is not None:
            self._bus.unsubscribe(ProgressEvent, self.handle)
            self._bus = None
        self.close()

    def close(self) -> None:
        self._queue.put(None)

    def handle(self, event: ProgressEvent) -> None:
        """Event bus handler."""
        if self._operation_id is None or event.operation_id == self._operation_id:
            self._queue.put(event)

    def events(self, timeout: float | None = None) -> Iterator[ProgressEvent]:
        """Yield buffered events, blocking for new ones, until the run ends.

        Raises:
            queue.Empty: No event arrived within timeout
        """
        while True:
            event = self._queue.get(timeout=timeout)
            if event is None:
                return
            yield event
            if event.status.is_terminal:
                return

    def __iter__(self) -> Iterator[ProgressEvent]:
        return self.events()

    async def aevents(self, timeout: float | None = None) -> AsyncIterator[ProgressEvent]:
        """Async form of events(); the blocking wait runs on a worker thread.

        Raises:
            queue.Empty: No event arrived within timeout
        """
        while True:
            event = await asyncio.to_thread(self._queue.get, True, timeout)
            if event is None:
                return
            yield event
            if event.status.is_terminal:
                return

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self.aevents()

    def sse_lines(self, timeout: float | None = None) -> Iterator[str]:
        """Yield events framed as server-sent-event data lines."""
        for event in self.events(timeout):
            yield format_sse(event)


def format_sse(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"
