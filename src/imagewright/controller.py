"""Worker threads that drive a reconciler from a work queue."""

import logging
import threading

from imagewright.errors import ConflictError, PermanentError, find_in_chain
from imagewright.reconciler.base import ReconcileContext
from imagewright.reconciler.network_error import NetworkErrorReconciler
from imagewright.workqueue import RateLimitingQueue, ShutDown

logger = logging.getLogger(__name__)


class Controller:
    """Runs ``reconciler`` for keys of one resource kind.

    Keys are reconciled by ``workers`` threads. Success and permanent
    failures forget the key's backoff; conflicts are requeued straight away
    and any other error is requeued with backoff.
    """

    def __init__(
        self,
        name,
        reconciler,
        workers=2,
        reconcile_timeout=None,
        resync_period=None,
        list_keys=None,
        queue=None,
    ):
        self.name = name
        self.reconciler = NetworkErrorReconciler(reconciler)
        self.workers = workers
        self.reconcile_timeout = reconcile_timeout
        self.resync_period = resync_period
        self.list_keys = list_keys
        self.queue = queue if queue is not None else RateLimitingQueue()
        self.stop_event = threading.Event()
        self._threads = []

    def enqueue(self, resource):
        self.queue.add(resource.key)

    def enqueue_key(self, key):
        self.queue.add(key)

    def enqueue_after(self, key, delay):
        self.queue.add_after(key, delay)

    def enqueue_controller_of(self, resource, owner_kind):
        """Enqueue the controlling owner of ``resource`` if it is an ``owner_kind``."""
        ref = resource.controller_of()
        if ref is None or ref.kind != owner_kind:
            return
        if resource.namespace:
            self.queue.add(f"{resource.namespace}/{ref.name}")
        else:
            self.queue.add(ref.name)

    def process_next(self, timeout=None):
        """Reconcile one key; return False once the queue shut down."""
        try:
            key = self.queue.get(timeout=timeout)
        except ShutDown:
            return False
        if key is None:
            return True

        try:
            ctx = ReconcileContext.with_timeout(self.reconcile_timeout, self.stop_event)
            self.reconciler.reconcile(key, ctx)
        except PermanentError as e:
            logger.error(f"{self.name}: reconcile of {key} failed permanently: {e}")
            self.queue.forget(key)
        except Exception as e:
            if find_in_chain(e, ConflictError) is not None:
                logger.info(f"{self.name}: conflict reconciling {key}, requeueing")
                self.queue.add(key)
            else:
                logger.warning(
                    f"{self.name}: reconcile of {key} failed, retrying with backoff: {e}"
                )
                self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    def _work(self):
        while self.process_next():
            pass

    def resync(self):
        """Enqueue every key of this controller's kind."""
        if self.list_keys is None:
            return
        keys = self.list_keys()
        logger.debug(f"{self.name}: resyncing {len(keys)} keys")
        for key in keys:
            self.queue.add(key)

    def _resync_loop(self):
        while not self.stop_event.wait(self.resync_period):
            try:
                self.resync()
            except Exception as e:
                logger.error(f"{self.name}: resync failed: {e}")

    def start(self):
        logger.info(f"Starting controller {self.name} with {self.workers} workers")
        for i in range(self.workers):
            thread = threading.Thread(
                target=self._work, name=f"{self.name}-{i}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        if self.resync_period and self.list_keys is not None:
            thread = threading.Thread(
                target=self._resync_loop, name=f"{self.name}-resync", daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def stop(self, timeout=None):
        logger.info(f"Stopping controller {self.name}")
        self.stop_event.set()
        self.queue.shut_down()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
