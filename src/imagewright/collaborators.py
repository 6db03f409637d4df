"""Capabilities the operator consumes from the outside world.

Production implementations talk to registries, git servers and the build
pod runtime; tests use small in-memory stand-ins. None of them is
implemented here.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Resolver(Protocol):
    """Pins one kind of source (git, blob or registry) to a revision."""

    def can_resolve(self, source_resolver) -> bool: ...

    def resolve(self, source_resolver):
        """Return a ``ResolvedSourceConfig``; may block on network I/O."""
        ...


class ClusterStoreReader(Protocol):
    def read(self, keychain, store_images) -> List[Any]:
        """Return the ``StoreBuildpack`` entries found in the store images."""
        ...


class ClusterStackReader(Protocol):
    def read(self, keychain, stack_spec):
        """Return a ``ResolvedClusterStack``."""
        ...


class ClusterLifecycleReader(Protocol):
    def read(self, keychain, lifecycle_spec):
        """Return a ``ResolvedClusterLifecycle``."""
        ...


class BuildpackReader(Protocol):
    def read(self, keychain, images) -> List[Any]:
        """Return ``StoreBuildpack`` entries for buildpack or extension images."""
        ...


class BuilderCreator(Protocol):
    def create_builder(
        self,
        builder_keychain,
        stack_keychain,
        lifecycle_keychain,
        cluster_stack,
        cluster_lifecycle,
        cluster_store,
        buildpacks,
        spec,
    ):
        """Assemble and push a builder image; return a ``BuilderRecord``."""
        ...


@dataclass
class BuildPodState:
    """What the build runtime reports about a build's execution."""

    phase: str = "Pending"  # Pending, Running, Succeeded, Failed
    pod_name: str = ""
    message: str = ""
    step_states: List[Dict[str, Any]] = field(default_factory=list)
    steps_completed: List[str] = field(default_factory=list)
    latest_image: str = ""
    buildpacks: List[Any] = field(default_factory=list)
    stack: Optional[Any] = None


class BuildPodObserver(Protocol):
    def observe(self, build) -> BuildPodState:
        """Start the build's pod if needed and report its state."""
        ...


class ClusterKeychainProvider(Protocol):
    def keychain(self, namespace, service_account, image_pull_secrets):
        """Keychain for pull secrets and platform credentials of an identity."""
        ...


class SecretFetcher(Protocol):
    def secrets_for_service_account(self, service_account, namespace) -> List[Any]:
        """Return the ``Secret`` values attached to a service account."""
        ...


@dataclass
class Collaborators:
    """Everything the reconcilers need from outside the cluster API."""

    git_resolver: Resolver
    blob_resolver: Resolver
    registry_resolver: Resolver
    store_reader: ClusterStoreReader
    stack_reader: ClusterStackReader
    lifecycle_reader: ClusterLifecycleReader
    buildpack_reader: BuildpackReader
    builder_creator: BuilderCreator
    build_observer: BuildPodObserver
    cluster_keychain_provider: Optional[ClusterKeychainProvider] = None
    secret_fetcher: Optional[SecretFetcher] = None

    def resolvers(self):
        return [self.git_resolver, self.blob_resolver, self.registry_resolver]


def load_collaborators(import_path, config):
    """Call the ``module:factory`` at ``import_path`` with the config."""
    if not import_path or ":" not in import_path:
        raise ValueError(
            f"Collaborators must be given as 'module:factory', got {import_path!r}"
        )
    module_name, factory_name = import_path.split(":", 1)
    factory = getattr(importlib.import_module(module_name), factory_name)
    collaborators = factory(config)
    if not isinstance(collaborators, Collaborators):
        raise TypeError(f"{import_path} returned {type(collaborators).__name__}")
    logger.info(f"Loaded collaborators from {import_path}")
    return collaborators
