# src/reclaimer/core/retention/cancellation.py
"""Cooperative pause/resume/cancel for a running retention pass.

The executor calls checkpoint() once per item, before touching any
backend. Pausing blocks the run thread on an Event; nothing polls.
"""

import threading


class CancellationToken:
    """Control handle shared between a running executor and its caller.

    Example:
        token = CancellationToken()
        worker = threading.Thread(target=executor.execute, args=(policy,), kwargs={"confirmed": True, "cancel_token": token})
        worker.start()
        token.pause()
        ...
        token.resume()
        token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        # Set while running, cleared while paused
        self._running = threading.Event()
        self._running.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def paused(self) -> bool:
        return not self._running.is_set() and not self.cancelled

    def pause(self) -> None:
        """Block the run at its next checkpoint until resume() or cancel()."""
        self._running.clear()

    def resume(self) -> None:
        self._running.set()

    def cancel(self) -> None:
        """Stop the run at its next checkpoint. Irreversible."""
        self._cancelled.set()
        # Wake a paused run so it can observe the cancel
        self._running.set()

    def checkpoint(self, timeout: float | None = None) -> bool:
        """Wait while paused, then report whether the run may continue.

        Args:
            timeout: Give up waiting after this many seconds (None waits forever)

        Returns:
            True to continue, False if cancelled (or still paused at timeout)
        """
        if not self._running.wait(timeout):
            return False
        return not self._cancelled.is_set()
