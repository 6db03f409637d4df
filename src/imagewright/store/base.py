"""Resource store interface consumed by every reconciler."""

from abc import ABC, abstractmethod


def split_key(key):
    """Split a work queue key into (namespace, name)."""
    parts = key.split("/")
    if len(parts) == 1:
        return None, parts[0]
    if len(parts) == 2 and parts[1]:
        return parts[0] or None, parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


def matches_selector(labels, selector):
    """Equality based label selection; an empty selector matches everything."""
    return all(labels.get(k) == v for k, v in (selector or {}).items())


def format_selector(selector):
    return ",".join(f"{k}={v}" for k, v in sorted((selector or {}).items()))


class ResourceStore(ABC):
    """Declarative store with watch-cache reads and optimistic concurrency.

    Reads may return cache owned values; callers copy before mutating.
    Writes carry ``metadata.resourceVersion`` and raise ``ConflictError``
    when it is stale.
    """

    @abstractmethod
    def get(self, resource_class, name, namespace=None):
        """Return the resource or raise ``NotFoundError``."""

    @abstractmethod
    def list(self, resource_class, namespace=None, selector=None):
        """Return resources of a kind matching a label selector."""

    @abstractmethod
    def create(self, resource):
        """Create a resource, honouring ``metadata.generateName``."""

    @abstractmethod
    def update(self, resource):
        """Replace metadata and spec."""

    @abstractmethod
    def update_status(self, resource):
        """Replace the status subresource only."""

    @abstractmethod
    def delete(self, resource_class, name, namespace=None, uid=None):
        """Delete a resource; ``uid`` is a precondition on its identity."""
