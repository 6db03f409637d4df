"""In-process resource store with the API server's write semantics."""

import itertools
import logging
import threading
import uuid
from datetime import datetime, timezone

from imagewright.crd.base import semantically_equal
from imagewright.errors import ConflictError, NotFoundError

from .base import ResourceStore
from .cache import ResourceCache

logger = logging.getLogger(__name__)


class InMemoryStore(ResourceStore):
    """Store used by tests and local runs.

    Mirrors the parts of the API server the reconcilers rely on: resource
    versions checked on every write, generation bumped on spec changes,
    ``generateName``, label selection and UID delete preconditions.
    Every write is appended to ``actions`` as ``(verb, kind, key)``.
    """

    def __init__(self):
        self.cache = ResourceCache()
        self.actions = []
        self._lock = threading.RLock()
        self._versions = itertools.count(1)
        self._names = itertools.count(1)
        self._listeners = []

    def subscribe(self, callback):
        """Call ``callback(event_type, resource)`` after every write."""
        self._listeners.append(callback)

    def _notify(self, event_type, resource):
        for callback in list(self._listeners):
            callback(event_type, resource)

    def _record(self, verb, resource):
        self.actions.append((verb, resource.crd_kind, resource.key))

    def actions_for(self, verb, kind=None):
        return [a for a in self.actions if a[0] == verb and kind in (None, a[1])]

    def seed(self, *resources):
        """Insert resources as-is, filling in identity fields when missing."""
        for resource in resources:
            resource = resource.deep_copy()
            resource.metadata.uid = resource.metadata.uid or str(uuid.uuid4())
            resource.metadata.generation = resource.metadata.generation or 1
            resource.metadata.resourceVersion = str(next(self._versions))
            self.cache.set(resource)

    def observe(self, resource_class, event_type, body):
        """Parse a watch event body; this store is its own source of truth."""
        return resource_class.from_body(body)

    def get(self, resource_class, name, namespace=None):
        resource = self.cache.get(resource_class.crd_kind, name, namespace)
        if resource is None:
            raise NotFoundError(resource_class.crd_kind, name, namespace)
        return resource

    def list(self, resource_class, namespace=None, selector=None):
        return self.cache.list(resource_class.crd_kind, namespace, selector)

    def _current(self, resource):
        current = self.cache.get(resource.crd_kind, resource.name, resource.namespace)
        if current is None:
            raise NotFoundError(resource.crd_kind, resource.name, resource.namespace)
        if resource.metadata.resourceVersion != current.metadata.resourceVersion:
            raise ConflictError(
                f"{resource.crd_kind} '{resource.key}' was modified; "
                f"resourceVersion {resource.metadata.resourceVersion} is stale"
            )
        return current

    def create(self, resource):
        with self._lock:
            created = resource.deep_copy()
            if not created.metadata.name:
                if not created.metadata.generateName:
                    raise ValueError("resource needs a name or generateName")
                created.metadata.name = (
                    f"{created.metadata.generateName}{next(self._names):05x}"
                )
            if self.cache.get(created.crd_kind, created.name, created.namespace):
                raise ConflictError(f"{created.crd_kind} '{created.key}' already exists")

            created.metadata.uid = str(uuid.uuid4())
            created.metadata.generation = 1
            created.metadata.resourceVersion = str(next(self._versions))
            created.metadata.creationTimestamp = datetime.now(timezone.utc)
            created = self.cache.set(created)
            self._record("create", created)
        self._notify("ADDED", created)
        return created.deep_copy()

    def update(self, resource):
        with self._lock:
            current = self._current(resource)
            updated = resource.deep_copy()
            updated.metadata.uid = current.metadata.uid
            updated.metadata.creationTimestamp = current.metadata.creationTimestamp
            updated.metadata.generation = current.metadata.generation
            if not semantically_equal(updated.spec, current.spec):
                updated.metadata.generation += 1
            if hasattr(current, "status"):
                updated.status = current.status.model_copy(deep=True)
            updated.metadata.resourceVersion = str(next(self._versions))
            updated = self.cache.set(updated)
            self._record("update", updated)
        self._notify("MODIFIED", updated)
        return updated.deep_copy()

    def update_status(self, resource):
        with self._lock:
            current = self._current(resource)
            updated = current.deep_copy()
            updated.status = resource.status.model_copy(deep=True)
            updated.metadata.resourceVersion = str(next(self._versions))
            updated = self.cache.set(updated)
            self._record("update_status", updated)
        self._notify("MODIFIED", updated)
        return updated.deep_copy()

    def delete(self, resource_class, name, namespace=None, uid=None):
        with self._lock:
            current = self.get(resource_class, name, namespace)
            if uid is not None and current.metadata.uid != uid:
                raise ConflictError(
                    f"{resource_class.crd_kind} '{current.key}' uid precondition failed"
                )
            self.cache.remove(resource_class.crd_kind, name, namespace)
            self._record("delete", current)
        self._notify("DELETED", current)
