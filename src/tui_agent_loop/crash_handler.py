"""Signal trapping and emergency exit for the supervisor.

Handles:
- SIGINT/SIGTERM handlers registered on the event loop
- An explicit cancellation context around the blocking worker call
- The emergency exit path: loop-log line, Interrupted notification, exit 1

A signal never skips to the next iteration; it always ends the process.
"""

import asyncio
import signal
import sys
from typing import Any, Awaitable, NoReturn, Optional, TypeVar

from .errors import SupervisorInterrupted
from .loop_log import LoopLog
from .models import LifecycleEventType
from .notifier import WebhookNotifier, lifecycle_event


T = TypeVar("T")

EXIT_INTERRUPTED = 1


class CrashHandler:
    """Turns signals into a deterministic cancellation of the running iteration.

    The supervisor wraps every blocking await in ``guard()``. A trapped signal
    marks the context cancelled and cancels the guarded task; ``guard()`` then
    raises SupervisorInterrupted and the supervisor calls ``emergency_exit()``.
    """

    def __init__(self, loop_log: LoopLog, notifier: WebhookNotifier, worker_label: str):
        self.loop_log = loop_log
        self.notifier = notifier
        self.worker_label = worker_label
        self.reason: Optional[str] = None
        self._current: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: list[signal.Signals] = []

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def _signals(self) -> list[signal.Signals]:
        # SIGTERM is not available on Windows
        if sys.platform == "win32":
            return [signal.SIGINT]
        return [signal.SIGINT, signal.SIGTERM]

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register signal handlers on the running event loop."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in self._signals():
            try:
                self._loop.add_signal_handler(sig, self.trigger, f"received {sig.name}")
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(sig, self._handle_signal)
            self._installed.append(sig)

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for sig in self._installed:
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, signal.SIG_DFL)
        self._installed = []

    def _handle_signal(self, signum: int, frame: Any) -> None:
        name = signal.Signals(signum).name
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.trigger, f"received {name}")
        else:
            self.trigger(f"received {name}")

    def trigger(self, reason: str) -> None:
        """Mark the context cancelled and cancel whatever is being awaited."""
        if self.reason is None:
            self.reason = reason
        if self._current is not None and not self._current.done():
            self._current.cancel()

    def raise_if_cancelled(self) -> None:
        """Raise SupervisorInterrupted if a signal has been trapped."""
        if self.cancelled:
            raise SupervisorInterrupted(self.reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await under the cancellation context.

        Raises:
            SupervisorInterrupted: if a signal arrived before or during the await
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise SupervisorInterrupted(self.reason)

        task = asyncio.ensure_future(awaitable)
        self._current = task
        try:
            return await task
        except asyncio.CancelledError:
            if self.cancelled:
                raise SupervisorInterrupted(self.reason) from None
            raise
        finally:
            self._current = None

    def emergency_exit(self, reason: str) -> NoReturn:
        """Log, notify Interrupted and terminate with a nonzero status."""
        self.loop_log.log(f"Emergency exit: Script interrupted ({reason}).", style="red")
        self.notifier.notify(lifecycle_event(LifecycleEventType.INTERRUPTED, self.worker_label))
        raise SystemExit(EXIT_INTERRUPTED)
