"""Time source and delayed-callback scheduling for the chat engine.

Every timing rule (session expiry, AI reply latency, matchmaking retries,
teardown grace) goes through a scheduler so that it can be cancelled by the
entity that owns it. Two implementations:

- ``SocketIOScheduler`` runs callbacks as Socket.IO background tasks.
- ``ManualScheduler`` only fires callbacks when ``advance()`` is called;
  used under TESTING so timers are deterministic.
"""

import heapq
import itertools
import logging
import time
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a pending callback. ``cancel()`` is idempotent."""

    def __init__(self, name: str, deadline: float, callback: Callable[..., Any], args: tuple = ()):
        self.name = name
        self.deadline = deadline
        self._callback = callback
        self._args = args
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        """Cancel the task. Returns True only for the call that actually cancelled it."""
        if not self.pending:
            return False
        self.cancelled = True
        return True

    def run(self) -> None:
        if not self.pending:
            return
        self.fired = True
        try:
            self._callback(*self._args)
        except Exception:
            # A failing timer must never take the worker down with it
            logger.exception(f"[timer-error] task={self.name}")

    def __repr__(self):
        state = 'cancelled' if self.cancelled else 'fired' if self.fired else 'pending'
        return f"<ScheduledTask {self.name} deadline={self.deadline:.3f} {state}>"


class SocketIOScheduler:
    """Scheduler backed by ``socketio.start_background_task``.

    Each task sleeps in its own green thread / thread and re-checks its
    cancellation flag before firing.
    """

    def __init__(self, socketio):
        self._socketio = socketio

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args, name: str = 'task') -> ScheduledTask:
        task = ScheduledTask(name, self.now() + max(0.0, delay), callback, args)

        def _runner(t: ScheduledTask):
            sleep_for = max(0.0, t.deadline - time.time())
            if sleep_for:
                self._socketio.sleep(sleep_for)
            t.run()

        self._socketio.start_background_task(_runner, task)
        return task


class ManualScheduler:
    """Virtual clock. Time only moves when ``advance`` is called."""

    def __init__(self, start: float = 1_000_000.0):
        self._now = start
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args, name: str = 'task') -> ScheduledTask:
        task = ScheduledTask(name, self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (task.deadline, next(self._seq), task))
        return task

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due tasks in deadline order.

        Tasks scheduled by a firing callback also run if they fall inside
        the window.
        """
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            deadline, _, task = heapq.heappop(self._queue)
            self._now = max(self._now, deadline)
            task.run()
        self._now = max(self._now, target)

    def pending(self, name: Optional[str] = None) -> List[ScheduledTask]:
        return [t for _, _, t in sorted(self._queue) if t.pending and (name is None or t.name == name)]
