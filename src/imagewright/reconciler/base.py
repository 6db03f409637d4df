"""Fetch, copy, compute status, write back only on change."""

import logging
import threading
import time

from imagewright.crd.base import CRDStatus, semantically_equal
from imagewright.errors import NotFoundError, ReconcileCancelled
from imagewright.store.base import split_key

logger = logging.getLogger(__name__)


class ReconcileContext:
    """Deadline and shutdown signal threaded through one reconcile call."""

    def __init__(self, deadline=None, stop_event=None, clock=time.monotonic):
        self.deadline = deadline
        self.stop_event = stop_event or threading.Event()
        self._clock = clock

    @classmethod
    def with_timeout(cls, timeout, stop_event=None, clock=time.monotonic):
        deadline = clock() + timeout if timeout else None
        return cls(deadline=deadline, stop_event=stop_event, clock=clock)

    def cancelled(self):
        if self.stop_event.is_set():
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    def check(self):
        """Raise ``ReconcileCancelled`` once the deadline passed or on shutdown."""
        if self.stop_event.is_set():
            raise ReconcileCancelled("controller is shutting down")
        if self.deadline is not None and self._clock() >= self.deadline:
            raise ReconcileCancelled("reconcile deadline exceeded")


class StatusReconciler:
    """Generic reconcile loop shared by every resource kind.

    Subclasses set ``resource_class`` and implement ``reconcile_resource``,
    which mutates the owned copy it is given. A failure there is still
    written into status before it propagates.
    """

    resource_class = None

    def __init__(self, store):
        self.store = store

    def reconcile(self, key, ctx=None):
        ctx = ctx or ReconcileContext()
        namespace, name = split_key(key)
        try:
            original = self.store.get(self.resource_class, name, namespace)
        except NotFoundError:
            logger.debug(f"{self.resource_class.crd_kind} {key} no longer exists")
            return

        resource = original.deep_copy()
        try:
            self.reconcile_resource(resource, ctx)
        except ReconcileCancelled:
            raise
        except Exception:
            self.write_status(original, resource, ctx)
            raise
        self.write_status(original, resource, ctx)

    def reconcile_resource(self, resource, ctx):
        raise NotImplementedError

    def write_status(self, original, resource, ctx):
        """Persist ``resource.status`` when it differs from ``original``'s.

        Returns True when an update was issued.
        """
        resource.status.observedGeneration = resource.generation
        if semantically_equal(resource.status, original.status):
            return False
        ctx.check()
        self.store.update_status(resource)
        logger.debug(f"Updated status of {resource.crd_kind} {resource.key}")
        return True


def ready_status(status_class, error=None, **fields):
    """Fresh status carrying a single Ready condition for ``error``."""
    return status_class(conditions=CRDStatus.ready_conditions(error), **fields)
