"""Process wide wiring of the store, collaborators and controllers."""

import logging

from imagewright.credentials import (
    CachedKeychainFactory,
    KubeSecretFetcher,
    PullSecretKeychainProvider,
    SecretKeychainFactory,
    VolumeSecretKeychain,
)

logger = logging.getLogger(__name__)

# Set by the operator entrypoint; watch handlers route events through it.
_current = None


def current():
    return _current


def set_current(context):
    global _current
    _current = context


def build_keychain_factory(config, collaborators):
    """Keychain factory for the running operator, memoized per identity."""
    fetcher = collaborators.secret_fetcher or KubeSecretFetcher()
    provider = collaborators.cluster_keychain_provider
    if provider is None and isinstance(fetcher, KubeSecretFetcher):
        provider = PullSecretKeychainProvider(fetcher)
    return CachedKeychainFactory(
        SecretKeychainFactory(fetcher, VolumeSecretKeychain.from_config(config), provider)
    )


class OperatorContext:
    """Everything plugins need to build and feed their controllers."""

    def __init__(self, config, store, collaborators, keychain_factory):
        self.config = config
        self.store = store
        self.collaborators = collaborators
        self.keychain_factory = keychain_factory
        self.plugins = []
        self.controllers = {}

    def add_controller(self, controller):
        self.controllers[controller.name] = controller
        return controller

    def list_keys(self, resource_class):
        """Callable listing every key of a kind, for periodic resyncs."""

        def keys():
            return [resource.key for resource in self.store.list(resource_class)]

        return keys

    def observe(self, resource_class, event_type, body):
        """Feed a watch event into the store cache and on to every plugin."""
        resource = self.store.observe(resource_class, event_type or "ADDED", body)
        for plugin in self.plugins:
            plugin.handle_event(resource, event_type or "ADDED")
        return resource

    def start(self):
        for controller in self.controllers.values():
            controller.start()

    def stop(self):
        for controller in self.controllers.values():
            controller.stop(timeout=self.config.reconcile_timeout)
