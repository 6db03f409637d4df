"""Resource stores: the interface, a watch-fed cache and two backends."""

from .base import ResourceStore, split_key
from .cache import ResourceCache
from .memory import InMemoryStore

__all__ = ["ResourceStore", "ResourceCache", "InMemoryStore", "split_key"]
