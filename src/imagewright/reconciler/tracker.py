"""Non-owning "notify me when this changes" registrations between resources."""

import logging
import threading
import time
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)


class Reference(NamedTuple):
    """Identity of a watched subject: kind plus namespace/name."""

    kind: str
    name: str
    namespace: Optional[str] = None

    @classmethod
    def of(cls, resource):
        return cls(resource.crd_kind, resource.name, resource.namespace or None)


class Tracker:
    """Maps subjects to dependent keys that must be re-enqueued on change.

    Registrations expire after ``lease`` seconds unless refreshed; expired
    and empty entries are pruned lazily by ``on_changed``. The callback runs
    after the lock is released so it may itself call ``track``.
    """

    def __init__(self, callback, lease, clock=time.monotonic, lock=None):
        self._callback = callback
        self._lease = lease
        self._clock = clock
        self._lock = lock or threading.Lock()
        self._subjects = {}
        self._kinds = {}

    def track(self, ref, dependent_key):
        expiry = self._clock() + self._lease
        with self._lock:
            self._subjects.setdefault(ref, {})[dependent_key] = expiry

    def track_kind(self, kind, dependent_key):
        """Register interest in every object of ``kind``."""
        expiry = self._clock() + self._lease
        with self._lock:
            self._kinds.setdefault(kind, {})[dependent_key] = expiry

    def _live_keys(self, table, subject, now):
        dependents = table.get(subject)
        if not dependents:
            table.pop(subject, None)
            return []

        live = []
        for key, expiry in list(dependents.items()):
            if now >= expiry:
                del dependents[key]
            else:
                live.append(key)
        if not dependents:
            del table[subject]
        return live

    def on_changed(self, subject):
        """Re-enqueue every unexpired dependent of ``subject``.

        ``subject`` is a ``Reference`` or a resource.
        """
        ref = subject if isinstance(subject, Reference) else Reference.of(subject)
        now = self._clock()
        with self._lock:
            keys = self._live_keys(self._subjects, ref, now)
            for key in self._live_keys(self._kinds, ref.kind, now):
                if key not in keys:
                    keys.append(key)

        for key in keys:
            logger.debug(f"{ref.kind} {ref.name} changed, enqueueing {key}")
            self._callback(key)

    def __len__(self):
        with self._lock:
            return sum(len(d) for d in self._subjects.values()) + sum(
                len(d) for d in self._kinds.values()
            )
