"""Image reconciler: schedules builds and retires old ones."""

import logging

from imagewright.crd.base import (
    CONDITION_READY,
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
    CRDCondition,
    CRDStatus,
    semantically_equal,
)
from imagewright.errors import NotFoundError, ReconcileCancelled
from imagewright.models.build import Build
from imagewright.models.builder import Builder, ClusterBuilder
from imagewright.models.image import (
    BUILDER_NOT_READY,
    CONDITION_BUILDER_READY,
    Image,
    ImageStatus,
)
from imagewright.models.source_resolver import SourceResolver

from ..base import StatusReconciler
from ..tracker import Reference
from .build_list import BuildList
from .build_required import determine_build
from .buildcache import reconcile_build_cache

logger = logging.getLogger(__name__)

BUILDER_KINDS = {
    Builder.crd_kind: Builder,
    ClusterBuilder.crd_kind: ClusterBuilder,
}


def builder_condition(builder):
    if not builder.ready():
        return CRDCondition.now(
            CONDITION_BUILDER_READY,
            STATUS_FALSE,
            reason=BUILDER_NOT_READY,
            message=f"Builder {builder.name} is not ready",
        )
    return CRDCondition.now(CONDITION_BUILDER_READY, STATUS_TRUE)


def scheduled_build_conditions(build):
    return [
        CRDCondition.now(
            CONDITION_READY, STATUS_UNKNOWN, message=f"{build.name} is executing"
        ),
        CRDCondition.now(CONDITION_BUILDER_READY, STATUS_TRUE),
    ]


def no_scheduled_build_conditions(decision_status, builder, last_build):
    ready = STATUS_UNKNOWN
    if decision_status != STATUS_UNKNOWN and last_build is not None:
        ready = last_build.succeeded_status()
    return [CRDCondition.now(CONDITION_READY, ready), builder_condition(builder)]


class ImageReconciler(StatusReconciler):
    """Keeps an image's children in line and decides on its next build.

    At most one build per image runs at a time: while the latest build is
    running nothing new is scheduled, though children and history are still
    kept in line.
    """

    resource_class = Image

    def __init__(self, store, tracker, clock=None):
        super().__init__(store)
        self.tracker = tracker
        self.clock = clock

    def builder_class(self, image):
        kind = image.spec.builder.kind or Builder.crd_kind
        if kind not in BUILDER_KINDS:
            raise ValueError(f"unsupported builder kind '{kind}'")
        return BUILDER_KINDS[kind]

    def fetch_builder(self, image):
        """Track and return the image's builder, or None when missing."""
        builder_class = self.builder_class(image)
        namespace = None
        if builder_class.is_namespaced():
            namespace = image.spec.builder.namespace or image.namespace

        name = image.spec.builder.name
        self.tracker.track(Reference(builder_class.crd_kind, name, namespace), image.key)
        try:
            return self.store.get(builder_class, name, namespace)
        except NotFoundError:
            return None

    def reconcile_resource(self, image, ctx):
        try:
            self.reconcile_image(image, ctx)
        except ReconcileCancelled:
            raise
        except Exception as e:
            logger.warning(f"Failed to reconcile image {image.key}: {e}")
            image.status.conditions = CRDStatus.ready_conditions(e)
            raise

    def reconcile_image(self, image, ctx):
        image.validate_spec()
        builder = self.fetch_builder(image)
        if builder is None:
            logger.info(f"Builder for image {image.key} not found")
            image.status.conditions = image.builder_not_found()
            return

        cache_name = reconcile_build_cache(self.store, image)
        source_resolver = self.reconcile_source_resolver(image)

        builds = BuildList.for_image(self.store, image)
        last_build = builds.last_build
        if last_build is not None and last_build.is_running():
            logger.debug(f"Build {last_build.key} still running for {image.key}")
            self.delete_old_builds(image)
            return

        ctx.check()
        image.status = self.reconcile_build(
            image, builds, source_resolver, builder, cache_name
        )
        self.delete_old_builds(image)

    def reconcile_source_resolver(self, image):
        desired = image.source_resolver()
        try:
            existing = self.store.get(
                SourceResolver, desired.name, desired.namespace
            )
        except NotFoundError:
            logger.info(f"Creating source resolver {desired.key}")
            return self.store.create(desired)

        if (
            semantically_equal(desired.spec, existing.spec)
            and desired.metadata.labels == existing.metadata.labels
        ):
            return existing

        updated = existing.deep_copy()
        updated.spec = desired.spec
        updated.metadata.labels = desired.metadata.labels
        return self.store.update(updated)

    def latest_stack(self, image, last_build):
        if last_build is not None and last_build.is_success():
            return last_build.stack()
        return image.status.latestStack

    def reconcile_build(self, image, builds, source_resolver, builder, cache_name):
        last_build = builds.last_build
        counter = builds.build_counter(image.status.buildCounter)
        now = self.clock() if self.clock else None
        decision = determine_build(image, last_build, source_resolver, builder, now=now)

        if decision.build_required:
            build = self.store.create(
                image.build(
                    source_resolver,
                    builder,
                    last_build,
                    decision.reasons(),
                    decision.changes_json(),
                    counter + 1,
                    now=now,
                )
            )
            logger.info(f"Created build {build.key} ({decision.reasons()})")
            return ImageStatus(
                conditions=scheduled_build_conditions(build),
                buildCounter=counter + 1,
                buildCacheName=cache_name,
                latestBuildRef=build.name,
                latestBuildReason=build.reason(),
                latestBuildImageGeneration=build.image_generation(),
                latestImage=image.latest_for_image(last_build),
                latestStack=self.latest_stack(image, last_build),
            )

        status = ImageStatus(
            conditions=no_scheduled_build_conditions(
                decision.status, builder, last_build
            ),
            buildCounter=counter,
            buildCacheName=cache_name,
            latestImage=image.latest_for_image(last_build),
            latestStack=self.latest_stack(image, last_build),
        )
        if last_build is not None:
            status.latestBuildRef = last_build.name
            status.latestBuildReason = last_build.reason()
            status.latestBuildImageGeneration = last_build.image_generation()
        return status

    def delete_old_builds(self, image):
        """Delete at most one failed and one successful build over the limits."""
        builds = BuildList.for_image(self.store, image)
        if len(builds.failed_builds) > image.spec.failedBuildHistoryLimit:
            self._delete_build(builds.oldest_failure())
        if len(builds.successful_builds) > image.spec.successBuildHistoryLimit:
            self._delete_build(builds.oldest_success())

    def _delete_build(self, build):
        logger.info(f"Deleting build {build.key} over history limit")
        try:
            self.store.delete(Build, build.name, build.namespace, uid=build.metadata.uid)
        except NotFoundError:
            logger.debug(f"Build {build.key} already deleted")
