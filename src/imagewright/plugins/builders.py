"""Builders plugin: builders and the composition resources they are made of."""

import logging

from imagewright.models.builder import (
    Builder,
    ClusterBuilder,
    ClusterBuildpack,
    ClusterLifecycle,
    ClusterStack,
    ClusterStore,
    Extension,
)
from imagewright.reconciler import (
    BuilderReconciler,
    ClusterBuilderReconciler,
    ClusterBuildpackReconciler,
    ClusterLifecycleReconciler,
    ClusterStackReconciler,
    ClusterStoreReconciler,
    ExtensionReconciler,
    Tracker,
)
from imagewright.workqueue import RateLimitingQueue

from .base import PluginBase

logger = logging.getLogger(__name__)

COMPOSITION_KINDS = (
    ClusterStore,
    ClusterStack,
    ClusterLifecycle,
    ClusterBuildpack,
    Extension,
)


class BuildersPlugin(PluginBase):
    """Reads stores, stacks, lifecycles and buildpacks and assembles builders."""

    @property
    def name(self) -> str:
        return "builders"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return "Resolves builder composition resources and creates builder images"

    @property
    def models(self):
        return [Builder, ClusterBuilder, *COMPOSITION_KINDS]

    def _initialise_plugin(self, context):
        collaborators = context.collaborators
        store = context.store
        keychains = context.keychain_factory
        lease = context.config.tracker_lease

        builder_queue = RateLimitingQueue()
        cluster_builder_queue = RateLimitingQueue()
        self.trackers = [
            Tracker(builder_queue.add, lease),
            Tracker(cluster_builder_queue.add, lease),
        ]
        self.builder_controller = self.controller(
            "builders",
            BuilderReconciler(
                store, keychains, collaborators.builder_creator, self.trackers[0]
            ),
            Builder,
            queue=builder_queue,
        )
        self.cluster_builder_controller = self.controller(
            "clusterbuilders",
            ClusterBuilderReconciler(
                store, keychains, collaborators.builder_creator, self.trackers[1]
            ),
            ClusterBuilder,
            queue=cluster_builder_queue,
        )

        self.composition_controllers = {
            ClusterStore: self.controller(
                "clusterstores",
                ClusterStoreReconciler(store, keychains, collaborators.store_reader),
                ClusterStore,
            ),
            ClusterStack: self.controller(
                "clusterstacks",
                ClusterStackReconciler(store, keychains, collaborators.stack_reader),
                ClusterStack,
            ),
            ClusterLifecycle: self.controller(
                "clusterlifecycles",
                ClusterLifecycleReconciler(
                    store, keychains, collaborators.lifecycle_reader
                ),
                ClusterLifecycle,
            ),
            ClusterBuildpack: self.controller(
                "clusterbuildpacks",
                ClusterBuildpackReconciler(
                    store, keychains, collaborators.buildpack_reader
                ),
                ClusterBuildpack,
            ),
            Extension: self.controller(
                "extensions",
                ExtensionReconciler(store, keychains, collaborators.buildpack_reader),
                Extension,
            ),
        }

    def handle_event(self, resource, event_type):
        if isinstance(resource, ClusterBuilder):
            self.cluster_builder_controller.enqueue(resource)
        elif isinstance(resource, Builder):
            self.builder_controller.enqueue(resource)
        elif isinstance(resource, COMPOSITION_KINDS):
            self.composition_controllers[type(resource)].enqueue(resource)
            for tracker in self.trackers:
                tracker.on_changed(resource)
