"""Images plugin: Image, Build and SourceResolver controllers."""

import logging

from imagewright.models.build import Build
from imagewright.models.builder import Builder, ClusterBuilder
from imagewright.models.core import PersistentVolumeClaim
from imagewright.models.image import Image
from imagewright.models.source_resolver import SourceResolver
from imagewright.reconciler import (
    BuildReconciler,
    ImageReconciler,
    PollingEnqueuer,
    SourceResolverReconciler,
    Tracker,
)
from imagewright.workqueue import RateLimitingQueue

from .base import PluginBase

logger = logging.getLogger(__name__)


class ImagesPlugin(PluginBase):
    """Keeps images built: resolves sources, schedules and observes builds."""

    @property
    def name(self) -> str:
        return "images"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return "Schedules builds of Images and tracks their SourceResolvers and Builds"

    @property
    def models(self):
        return [Image, Build, SourceResolver]

    def _initialise_plugin(self, context):
        collaborators = context.collaborators
        store = context.store
        config = context.config

        image_queue = RateLimitingQueue()
        self.tracker = Tracker(image_queue.add, config.tracker_lease)
        self.image_controller = self.controller(
            "images", ImageReconciler(store, self.tracker), Image, queue=image_queue
        )

        self.build_controller = self.controller(
            "builds", BuildReconciler(store, collaborators.build_observer), Build
        )

        source_queue = RateLimitingQueue()
        enqueuer = PollingEnqueuer(source_queue.add_after, config.source_polling_frequency)
        self.source_resolver_controller = self.controller(
            "sourceresolvers",
            SourceResolverReconciler(store, collaborators.resolvers(), enqueuer),
            SourceResolver,
            queue=source_queue,
        )

    def handle_event(self, resource, event_type):
        if isinstance(resource, Image):
            self.image_controller.enqueue(resource)
        elif isinstance(resource, Build):
            self.build_controller.enqueue(resource)
            self.image_controller.enqueue_controller_of(resource, Image.crd_kind)
        elif isinstance(resource, SourceResolver):
            self.source_resolver_controller.enqueue(resource)
            self.image_controller.enqueue_controller_of(resource, Image.crd_kind)
        elif isinstance(resource, PersistentVolumeClaim):
            self.image_controller.enqueue_controller_of(resource, Image.crd_kind)
        elif isinstance(resource, (Builder, ClusterBuilder)):
            self.tracker.on_changed(resource)
