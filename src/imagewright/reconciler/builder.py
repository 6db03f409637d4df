"""Builder and ClusterBuilder reconcilers."""

import logging

from imagewright.credentials import SecretRef
from imagewright.errors import NotReadyError
from imagewright.models.builder import (
    Builder,
    ClusterBuilder,
    ClusterBuildpack,
    ClusterLifecycle,
    ClusterStack,
    ClusterStore,
    Extension,
)

from .base import StatusReconciler
from .remote import secret_ref_for
from .tracker import Reference

logger = logging.getLogger(__name__)


class BuilderReconciler(StatusReconciler):
    """Assembles a builder image from its stack, lifecycle and buildpacks.

    Every referenced composition resource is tracked so a new stack or
    buildpack version rebuilds the builder without a spec change.
    """

    resource_class = Builder

    def __init__(self, store, keychain_factory, builder_creator, tracker):
        super().__init__(store)
        self.keychain_factory = keychain_factory
        self.builder_creator = builder_creator
        self.tracker = tracker

    def reconcile_resource(self, builder, ctx):
        try:
            record = self.reconcile_builder(builder, ctx)
        except Exception as e:
            logger.warning(f"Failed to build {builder.crd_kind} {builder.key}: {e}")
            builder.status.apply_error(e)
            raise
        builder.status.apply_record(record)

    def track_dependencies(self, builder):
        key = builder.key
        spec = builder.spec
        self.tracker.track(Reference(ClusterStack.crd_kind, spec.stack.name), key)
        self.tracker.track(Reference(ClusterLifecycle.crd_kind, spec.lifecycle.name), key)
        if spec.store is not None:
            self.tracker.track(Reference(ClusterStore.crd_kind, spec.store.name), key)
        self.tracker.track_kind(ClusterBuildpack.crd_kind, key)
        self.tracker.track_kind(Extension.crd_kind, key)

    def fetch_buildpacks(self, builder):
        buildpacks = self.store.list(ClusterBuildpack)
        if builder.namespace:
            buildpacks.extend(self.store.list(Extension, builder.namespace))
        return buildpacks

    def reconcile_builder(self, builder, ctx):
        self.track_dependencies(builder)
        spec = builder.spec

        cluster_stack = self.store.get(ClusterStack, spec.stack.name)
        if not cluster_stack.status.ready():
            raise NotReadyError(f"Error: clusterstack '{spec.stack.name}' is not ready")

        cluster_lifecycle = self.store.get(ClusterLifecycle, spec.lifecycle.name)
        if not cluster_lifecycle.status.ready():
            raise NotReadyError(
                f"Error: clusterlifecycle '{spec.lifecycle.name}' is not ready"
            )

        cluster_store = None
        if spec.store is not None:
            cluster_store = self.store.get(ClusterStore, spec.store.name)

        buildpacks = self.fetch_buildpacks(builder)

        service_account = builder.service_account_ref()
        builder_keychain = self.keychain_factory.keychain_for_secret_ref(
            SecretRef(
                service_account=service_account.name,
                namespace=service_account.namespace,
            )
        )
        stack_keychain = self.keychain_factory.keychain_for_secret_ref(
            secret_ref_for(cluster_stack.spec.serviceAccountRef)
        )
        lifecycle_keychain = self.keychain_factory.keychain_for_secret_ref(
            secret_ref_for(cluster_lifecycle.spec.serviceAccountRef)
        )

        ctx.check()
        return self.builder_creator.create_builder(
            builder_keychain,
            stack_keychain,
            lifecycle_keychain,
            cluster_stack,
            cluster_lifecycle,
            cluster_store,
            buildpacks,
            spec,
        )


class ClusterBuilderReconciler(BuilderReconciler):
    resource_class = ClusterBuilder
