import json
from datetime import datetime, timezone

import pytest

from imagewright.crd.base import CRDMetadata
from imagewright.errors import NetworkError, NotFoundError, PermanentError
from imagewright.models.build import (
    BUILD_NUMBER_LABEL,
    IMAGE_GENERATION_LABEL,
    IMAGE_LABEL,
    Build,
    BuildSpec,
)
from imagewright.models.builder import Builder, ClusterBuilder
from imagewright.models.core import BuildpackMetadata, ObjectReference
from imagewright.models.image import Image, ImageStatus, parse_tag
from imagewright.models.source import SourceConfig
from imagewright.models.source_resolver import SourceResolver
from imagewright.reconciler import ImageReconciler, NetworkErrorReconciler, Reference

from conftest import (
    GIT_URL,
    complete_build,
    make_builder,
    make_image,
    ready_condition,
    resolve_source,
    resolved_git,
)

KEY = "ns/my-image"
NOW = datetime(2024, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def reconciler(store, tracker):
    return ImageReconciler(store, tracker, clock=lambda: NOW)


def get_image(store):
    return store.get(Image, "my-image", "ns")


def builds_of(store):
    return sorted(store.list(Build, "ns"), key=lambda b: b.build_number())


def seed_ready(store, image=None, builder=None):
    """An image whose builder is ready and whose source is already resolved."""
    store.seed(image or make_image(), builder or make_builder())
    image = get_image(store)
    source_resolver = image.source_resolver()
    source_resolver.status.source = resolved_git()
    source_resolver.status.conditions = [ready_condition()]
    source_resolver.status.observedGeneration = 1
    store.seed(source_resolver)
    return image


def seed_build(store, image, number, success=True, running=False):
    build = Build(
        metadata=CRDMetadata(
            name=f"my-image-build-{number}",
            namespace="ns",
            ownerReferences=[image.controller_ref()],
            labels={IMAGE_LABEL: image.name, BUILD_NUMBER_LABEL: str(number)},
        ),
        spec=BuildSpec(tags=[image.spec.tag], source=SourceConfig()),
    )
    store.seed(build)
    if running:
        return store.get(Build, build.name, "ns")
    return complete_build(store, store.get(Build, build.name, "ns"), success=success)


class TestFirstBuild:
    def test_schedules_build_once_source_resolves(self, store, reconciler):
        store.seed(make_image(), make_builder())

        reconciler.reconcile(KEY)

        assert builds_of(store) == []
        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.spec.source.git.url == GIT_URL
        assert source_resolver.is_controlled_by(get_image(store))
        assert get_image(store).status.get_condition("Ready").status == "Unknown"

        resolve_source(store, get_image(store))
        reconciler.reconcile(KEY)

        (build,) = builds_of(store)
        assert build.build_number() == 1
        assert build.reason() == "CONFIG"
        assert build.is_controlled_by(get_image(store))
        assert build.metadata.labels[IMAGE_LABEL] == "my-image"
        assert build.metadata.labels[IMAGE_GENERATION_LABEL] == "1"
        assert build.spec.source.git.revision == "abcdef"
        assert build.spec.builder.image == "registry.io/builder@sha256:b1"
        assert build.spec.lastBuild is None
        assert build.spec.tags == [
            "registry.io/team/app",
            "registry.io/team/app:b1.20240301.123000",
        ]
        changes = json.loads(build.changes())
        assert changes[0]["reason"] == "CONFIG"

        status = get_image(store).status
        assert status.latestBuildRef == build.name
        assert status.latestBuildReason == "CONFIG"
        assert status.buildCounter == 1
        assert status.get_condition("Ready").status == "Unknown"
        assert status.get_condition("Ready").message == f"{build.name} is executing"

    def test_running_build_blocks_new_builds(self, store, reconciler):
        seed_ready(store)
        reconciler.reconcile(KEY)

        image = get_image(store).deep_copy()
        image.spec.serviceAccountName = "other"
        store.update(image)
        reconciler.reconcile(KEY)

        (build,) = builds_of(store)
        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.spec.serviceAccountName == "other"
        status = get_image(store).status
        assert status.latestBuildRef == build.name
        assert status.buildCounter == 1
        assert status.observedGeneration == 2

    def test_idempotent_once_built(self, store, reconciler):
        seed_ready(store)
        reconciler.reconcile(KEY)
        complete_build(store, builds_of(store)[0])

        reconciler.reconcile(KEY)
        writes = list(store.actions)
        reconciler.reconcile(KEY)

        assert store.actions == writes
        assert len(builds_of(store)) == 1
        status = get_image(store).status
        assert status.get_condition("Ready").status == "True"
        assert status.get_condition("BuilderReady").status == "True"
        assert status.latestImage == "registry.io/team/app@sha256:built"
        assert status.latestStack == "io.stack"


class TestRebuilds:
    def build_once(self, store, reconciler):
        seed_ready(store)
        reconciler.reconcile(KEY)
        return complete_build(store, builds_of(store)[0])

    def test_buildpack_update(self, store, reconciler):
        first = self.build_once(store, reconciler)
        builder = store.get(Builder, "builder", "ns").deep_copy()
        builder.status.builderMetadata = [
            BuildpackMetadata(id="org.node", version="2.0.0")
        ]
        store.update_status(builder)

        reconciler.reconcile(KEY)

        second = builds_of(store)[-1]
        assert second.build_number() == 2
        assert second.reason() == "BUILDPACK"
        assert second.spec.lastBuild.image == first.built_image()
        assert second.spec.lastBuild.stackId == "io.stack"
        assert json.loads(second.changes()) == [
            {
                "reason": "BUILDPACK",
                "old": [{"id": "org.node", "version": "1.0.0"}],
                "new": [],
            }
        ]
        status = get_image(store).status
        assert status.latestImage == first.built_image()
        assert status.buildCounter == 2

    def test_new_commit(self, store, reconciler):
        self.build_once(store, reconciler)
        resolve_source(store, get_image(store), revision="123456")

        reconciler.reconcile(KEY)

        second = builds_of(store)[-1]
        assert second.reason() == "COMMIT"
        assert second.spec.source.git.revision == "123456"

    def test_spec_change_records_image_generation(self, store, reconciler):
        self.build_once(store, reconciler)
        image = get_image(store).deep_copy()
        image.spec.serviceAccountName = "deployer"
        store.update(image)

        reconciler.reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.spec.serviceAccountName == "deployer"
        assert source_resolver.generation == 2
        # The resolver has not caught up with its new generation yet.
        assert len(builds_of(store)) == 1

        resolve_source(store, get_image(store))
        reconciler.reconcile(KEY)
        second = builds_of(store)[-1]
        assert second.reason() == "CONFIG"
        assert second.metadata.labels[IMAGE_GENERATION_LABEL] == "2"
        assert get_image(store).status.latestBuildImageGeneration == 2

    def test_failed_build_is_reported_and_not_retried(self, store, reconciler):
        seed_ready(store)
        reconciler.reconcile(KEY)
        complete_build(store, builds_of(store)[0], success=False)

        reconciler.reconcile(KEY)

        assert len(builds_of(store)) == 1
        status = get_image(store).status
        assert status.get_condition("Ready").status == "False"
        assert status.latestImage == ""

    def test_build_numbers_never_go_backwards(self, store, reconciler):
        image = make_image()
        image.status = ImageStatus(buildCounter=5)
        seed_ready(store, image=image)

        reconciler.reconcile(KEY)

        (build,) = builds_of(store)
        assert build.build_number() == 6
        assert get_image(store).status.buildCounter == 6

    def test_builds_of_other_images_are_ignored(self, store, reconciler):
        image = seed_ready(store)
        stranger = make_image()
        stranger.metadata.uid = "someone-else"
        seed_build(store, stranger, 9)

        reconciler.reconcile(KEY)

        mine = [b for b in builds_of(store) if b.is_controlled_by(image)]
        assert [b.build_number() for b in mine] == [1]


class TestBuilderLookup:
    def test_builder_not_found(self, store, reconciler, enqueued):
        store.seed(make_image())

        reconciler.reconcile(KEY)

        ready = get_image(store).status.get_condition("Ready")
        assert (ready.status, ready.reason) == ("False", "BuilderNotFound")
        assert ready.message == (
            "Error: Unable to find builder 'builder' in namespace 'ns'."
        )
        with pytest.raises(NotFoundError):
            store.get(SourceResolver, "my-image-source", "ns")

        store.seed(make_builder())
        reconciler.tracker.on_changed(store.get(Builder, "builder", "ns"))
        assert enqueued == [KEY]

    def test_builder_not_ready(self, store, reconciler):
        seed_ready(store, builder=make_builder(ready=False))

        reconciler.reconcile(KEY)

        status = get_image(store).status
        assert builds_of(store) == []
        assert status.get_condition("Ready").status == "Unknown"
        builder_ready = status.get_condition("BuilderReady")
        assert (builder_ready.status, builder_ready.reason) == ("False", "BuilderNotReady")

    def test_cluster_builder(self, store, reconciler, enqueued):
        builder = make_builder()
        cluster_builder = ClusterBuilder.model_validate(
            {
                "metadata": {"name": "shared", "generation": 1},
                "spec": {
                    "tag": "registry.io/shared",
                    "stack": {"kind": "ClusterStack", "name": "stack"},
                    "serviceAccountRef": {"name": "sa", "namespace": "infra"},
                },
                "status": builder.status.model_dump(),
            }
        )
        seed_ready(
            store,
            image=make_image(builder=ObjectReference(kind="ClusterBuilder", name="shared")),
            builder=cluster_builder,
        )

        reconciler.reconcile(KEY)

        assert len(builds_of(store)) == 1
        reconciler.tracker.on_changed(Reference("ClusterBuilder", "shared"))
        assert enqueued == [KEY]

    def test_default_builder_kind(self, store, reconciler):
        seed_ready(store, image=make_image(builder=ObjectReference(name="builder")))
        reconciler.reconcile(KEY)
        assert len(builds_of(store)) == 1

    def test_unknown_builder_kind_is_permanent(self, store, reconciler):
        store.seed(make_image(builder=ObjectReference(kind="Pipeline", name="x")))
        with pytest.raises(PermanentError, match="unsupported builder kind"):
            NetworkErrorReconciler(reconciler).reconcile(KEY)

        ready = get_image(store).status.get_condition("Ready")
        assert (ready.status, ready.reason) == ("False", "ReconcileFailed")
        assert ready.message == "unsupported builder kind 'Pipeline'"


class TestBuildHistory:
    def test_deletes_one_old_failure_per_pass(self, store, reconciler):
        image = seed_ready(store, image=make_image(failedBuildHistoryLimit=1))
        for number in (1, 2, 3):
            seed_build(store, image, number, success=False)

        reconciler.delete_old_builds(image)
        assert [b.build_number() for b in builds_of(store)] == [2, 3]

        reconciler.delete_old_builds(image)
        assert [b.build_number() for b in builds_of(store)] == [3]

        reconciler.delete_old_builds(image)
        assert [b.build_number() for b in builds_of(store)] == [3]

    def test_deletes_one_old_success_per_pass(self, store, reconciler):
        image = seed_ready(store, image=make_image(successBuildHistoryLimit=1))
        for number in (1, 2, 3):
            seed_build(store, image, number)

        reconciler.delete_old_builds(image)

        assert [b.build_number() for b in builds_of(store)] == [2, 3]

    def test_failures_and_successes_are_limited_separately(self, store, reconciler):
        image = seed_ready(
            store,
            image=make_image(failedBuildHistoryLimit=1, successBuildHistoryLimit=1),
        )
        seed_build(store, image, 1, success=False)
        seed_build(store, image, 2)
        seed_build(store, image, 3, success=False)
        seed_build(store, image, 4)

        reconciler.delete_old_builds(image)

        assert [b.build_number() for b in builds_of(store)] == [3, 4]

    def test_history_is_trimmed_during_reconcile(self, store, reconciler):
        image = seed_ready(store, image=make_image(failedBuildHistoryLimit=1))
        seed_build(store, image, 1, success=False)
        seed_build(store, image, 2, success=False)

        reconciler.reconcile(KEY)

        assert [b.build_number() for b in builds_of(store)] == [2, 3]


    def test_history_is_trimmed_while_a_build_runs(self, store, reconciler):
        image = seed_ready(store, image=make_image(failedBuildHistoryLimit=1))
        seed_build(store, image, 1, success=False)
        seed_build(store, image, 2, success=False)
        seed_build(store, image, 3, running=True)

        reconciler.reconcile(KEY)

        assert [b.build_number() for b in builds_of(store)] == [2, 3]


class TestFailures:
    @pytest.mark.parametrize(
        "overrides, message",
        [
            (
                {"tag": "registry.io/team/app@sha256:abc"},
                "invalid image tag 'registry.io/team/app@sha256:abc'",
            ),
            (
                {"failedBuildHistoryLimit": 0},
                "failedBuildHistoryLimit must be at least 1",
            ),
            (
                {"successBuildHistoryLimit": 0},
                "successBuildHistoryLimit must be at least 1",
            ),
        ],
    )
    def test_invalid_spec_is_recorded_and_never_built(
        self, store, reconciler, overrides, message
    ):
        seed_ready(store, image=make_image(**overrides))

        for _ in range(3):
            with pytest.raises(PermanentError, match="must be at least 1|invalid image tag"):
                NetworkErrorReconciler(reconciler).reconcile(KEY)

        assert builds_of(store) == []
        ready = get_image(store).status.get_condition("Ready")
        assert (ready.status, ready.message) == ("False", message)

    def test_store_failure_is_recorded(self, store, reconciler, monkeypatch):
        seed_ready(store)

        def unavailable(resource):
            raise NetworkError("api server unavailable")

        monkeypatch.setattr(store, "create", unavailable)
        with pytest.raises(NetworkError):
            reconciler.reconcile(KEY)

        assert builds_of(store) == []
        ready = get_image(store).status.get_condition("Ready")
        assert (ready.status, ready.message) == ("False", "api server unavailable")


class TestParseTag:
    @pytest.mark.parametrize(
        "reference, parsed",
        [
            ("registry.io/team/app", ("registry.io", "team/app", "latest")),
            ("registry.io/team/app:v1", ("registry.io", "team/app", "v1")),
            ("localhost:5000/app:v1", ("localhost:5000", "app", "v1")),
            ("ubuntu", ("index.docker.io", "library/ubuntu", "latest")),
            ("org/app:1", ("index.docker.io", "org/app", "1")),
        ],
    )
    def test_parse(self, reference, parsed):
        assert parse_tag(reference) == parsed

    @pytest.mark.parametrize("reference", ["", "app@sha256:1", " app"])
    def test_rejects(self, reference):
        assert parse_tag(reference) is None

    def test_build_number_tag_keeps_the_requested_tag(self):
        image = make_image(tag="registry.io/team/app:v1")
        assert image.generate_tags(7, now=NOW) == [
            "registry.io/team/app:v1",
            "registry.io/team/app:v1-b7.20240301.123000",
        ]

    def test_no_tagging_strategy(self):
        image = make_image(imageTaggingStrategy="None")
        assert image.generate_tags(7, now=NOW) == ["registry.io/team/app"]
