"""Memoizes keychains per namespace and service account."""

import threading

from .factory import KeychainFactory


class CachedKeychainFactory(KeychainFactory):
    """Resolves each identity once; a slow lookup only holds up its own identity."""

    def __init__(self, factory, lock=None):
        self.factory = factory
        self._lock = lock or threading.Lock()
        self._keychains = {}
        self._pending = {}

    def keychain_for_secret_ref(self, ref):
        key = f"{ref.namespace}/{ref.service_account}"
        with self._lock:
            keychain = self._keychains.get(key)
            if keychain is not None:
                return keychain
            key_lock = self._pending.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                keychain = self._keychains.get(key)
            if keychain is None:
                keychain = self.factory.keychain_for_secret_ref(ref)
                with self._lock:
                    self._keychains[key] = keychain
                    self._pending.pop(key, None)
            return keychain
