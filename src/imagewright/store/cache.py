"""Thread-safe local cache of observed resources."""

import logging
import threading

from .base import matches_selector

logger = logging.getLogger(__name__)


class ResourceCache:
    """Latest observed copy of every resource, keyed by kind/namespace/name.

    Values are stored as private copies so the writer cannot alias them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._items = {}

    @staticmethod
    def _key(kind, name, namespace):
        return (kind, namespace or "", name)

    def set(self, resource):
        key = self._key(resource.crd_kind, resource.name, resource.namespace)
        copy = resource.deep_copy()
        with self._lock:
            self._items[key] = copy
        return copy

    def remove(self, kind, name, namespace=None):
        with self._lock:
            return self._items.pop(self._key(kind, name, namespace), None)

    def get(self, kind, name, namespace=None):
        with self._lock:
            return self._items.get(self._key(kind, name, namespace))

    def list(self, kind, namespace=None, selector=None):
        with self._lock:
            items = [
                resource
                for (item_kind, item_ns, _), resource in self._items.items()
                if item_kind == kind and (namespace is None or item_ns == namespace)
            ]
        return [r for r in items if matches_selector(r.metadata.labels, selector)]

    def keys(self, kind):
        return [resource.key for resource in self.list(kind)]

    def __len__(self):
        with self._lock:
            return len(self._items)
