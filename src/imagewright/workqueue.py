"""Rate limited, de-duplicating work queue of resource keys."""

import heapq
import itertools
import threading
import time
from collections import deque

BASE_DELAY = 0.005
MAX_DELAY = 1000.0


class ShutDown(Exception):
    """Raised by ``get`` once the queue is shut down and drained."""


class RateLimitingQueue:
    """FIFO of keys where each key appears at most once.

    A key handed out by ``get`` is "processing" until ``done`` is called;
    adding it again meanwhile marks it dirty and it is queued once ``done``
    runs, so two workers never hold the same key. Failed keys are re-added
    with per-key exponential backoff from ``base_delay`` to ``max_delay``.
    """

    def __init__(self, base_delay=BASE_DELAY, max_delay=MAX_DELAY, clock=time.monotonic):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock
        self._cond = threading.Condition()
        self._queue = deque()
        self._dirty = set()
        self._processing = set()
        self._waiting = []
        self._sequence = itertools.count()
        self._failures = {}
        self._shutting_down = False

    def add(self, key):
        with self._cond:
            self._add(key)

    def _add(self, key):
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key not in self._processing:
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key, delay):
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            heapq.heappush(self._waiting, (ready_at, next(self._sequence), key))
            self._cond.notify()

    def when(self, key):
        """Next backoff delay for ``key``; each call counts one more failure."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * (2**failures), self.max_delay)

    def add_rate_limited(self, key):
        self.add_after(key, self.when(key))

    def forget(self, key):
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key):
        with self._cond:
            return self._failures.get(key, 0)

    def _promote_waiting(self):
        """Move due delayed keys onto the queue; return seconds until the next."""
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._add(key)
        if self._waiting:
            return self._waiting[0][0] - now
        return None

    def get(self, timeout=None):
        """Block for the next key; raise ``ShutDown`` when shut down.

        Returns None if ``timeout`` passes with nothing to hand out.
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                wait = self._promote_waiting()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutting_down:
                    raise ShutDown()
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key):
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self):
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self):
        return self._shutting_down

    def __len__(self):
        with self._cond:
            return len(self._queue)
