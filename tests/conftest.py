import pytest

from imagewright.crd.base import (
    CONDITION_READY,
    CONDITION_SUCCEEDED,
    STATUS_FALSE,
    STATUS_TRUE,
    CRDCondition,
    CRDMetadata,
)
from imagewright.collaborators import Collaborators
from imagewright.credentials import AnonymousKeychain
from imagewright.models.build import BuildStatus
from imagewright.models.builder import (
    Builder,
    BuilderStatus,
    ClusterLifecycle,
    ClusterLifecycleSpec,
    ClusterLifecycleStatus,
    ClusterStack,
    ClusterStackSpec,
    ClusterStackStatus,
    NamespacedBuilderSpec,
    StackImage,
)
from imagewright.models.core import BuildpackMetadata, BuildStack, ObjectReference
from imagewright.models.image import Image, ImageSpec
from imagewright.models.source import (
    COMMIT,
    GitSource,
    ResolvedGitSource,
    ResolvedSourceConfig,
    SourceConfig,
)
from imagewright.models.source_resolver import SourceResolver
from imagewright.reconciler import Tracker
from imagewright.store.memory import InMemoryStore

NAMESPACE = "ns"
GIT_URL = "https://github.com/org/app"
RUN_IMAGE = "registry.io/run@sha256:r1"


class ManualClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingKeychainFactory:
    """Hands out anonymous keychains and remembers every identity asked for."""

    def __init__(self):
        self.refs = []

    def keychain_for_secret_ref(self, ref):
        self.refs.append(ref)
        return AnonymousKeychain()


class RecordingEnqueuer:
    def __init__(self, delay=300.0):
        self.delay = delay
        self.keys = []

    def enqueue(self, resource):
        self.keys.append(resource.key)


class FakeResolver:
    def __init__(self, kind="git", result=None, error=None):
        self.kind = kind
        self.result = result
        self.error = error
        self.calls = 0

    def can_resolve(self, source_resolver):
        return source_resolver.spec.source.kind() == self.kind

    def resolve(self, source_resolver):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakeReader:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def read(self, keychain, what):
        self.calls.append(what)
        if self.error is not None:
            raise self.error
        return self.result


class FakeBuilderCreator:
    def __init__(self, record=None, error=None):
        self.record = record
        self.error = error
        self.calls = []

    def create_builder(self, *args):
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return self.record


class FakeBuildObserver:
    def __init__(self, state=None, error=None):
        self.state = state
        self.error = error
        self.observed = []

    def observe(self, build):
        self.observed.append(build.key)
        if self.error is not None:
            raise self.error
        return self.state


def ready_condition(status=STATUS_TRUE):
    return CRDCondition.now(CONDITION_READY, status)


def make_image(name="my-image", namespace=NAMESPACE, **overrides):
    spec = dict(
        tag="registry.io/team/app",
        builder=ObjectReference(kind="Builder", name="builder"),
        source=SourceConfig(git=GitSource(url=GIT_URL, revision="main")),
    )
    spec.update(overrides)
    return Image(
        metadata=CRDMetadata(name=name, namespace=namespace), spec=ImageSpec(**spec)
    )


def make_builder(buildpacks=None, run_image=RUN_IMAGE, ready=True, name="builder"):
    if buildpacks is None:
        buildpacks = [BuildpackMetadata(id="org.node", version="1.0.0")]
    return Builder(
        metadata=CRDMetadata(name=name, namespace=NAMESPACE, generation=1),
        spec=NamespacedBuilderSpec(
            tag="registry.io/builder",
            stack=ObjectReference(kind="ClusterStack", name="stack"),
        ),
        status=BuilderStatus(
            conditions=[ready_condition(STATUS_TRUE if ready else STATUS_FALSE)],
            latestImage="registry.io/builder@sha256:b1",
            builderMetadata=buildpacks,
            stack=BuildStack(runImage=run_image, id="io.stack"),
            observedGeneration=1,
        ),
    )


def make_cluster_stack(name="stack", ready=True):
    return ClusterStack(
        metadata=CRDMetadata(name=name),
        spec=ClusterStackSpec(
            id="io.stack",
            buildImage=StackImage(image="registry.io/build"),
            runImage=StackImage(image="registry.io/run"),
        ),
        status=ClusterStackStatus(
            conditions=[ready_condition()] if ready else [],
            id="io.stack",
        ),
    )


def make_cluster_lifecycle(name="default-lifecycle", ready=True):
    return ClusterLifecycle(
        metadata=CRDMetadata(name=name),
        spec=ClusterLifecycleSpec(image="registry.io/lifecycle"),
        status=ClusterLifecycleStatus(
            conditions=[ready_condition()] if ready else []
        ),
    )


def resolved_git(revision="abcdef", type=COMMIT):
    return ResolvedSourceConfig(
        git=ResolvedGitSource(url=GIT_URL, revision=revision, type=type)
    )


def resolve_source(store, image, revision="abcdef", type=COMMIT):
    """Mark an image's resolver as resolved, as its own controller would."""
    source_resolver = store.get(
        SourceResolver, image.source_resolver_name(), image.namespace
    ).deep_copy()
    source_resolver.status.source = resolved_git(revision, type)
    source_resolver.status.conditions = [ready_condition()]
    source_resolver.status.observedGeneration = source_resolver.generation
    return store.update_status(source_resolver)


def complete_build(store, build, success=True, buildpacks=None, run_image=RUN_IMAGE):
    build = build.deep_copy()
    if buildpacks is None:
        buildpacks = [BuildpackMetadata(id="org.node", version="1.0.0")]
    build.status = BuildStatus(
        conditions=[
            CRDCondition.now(
                CONDITION_SUCCEEDED, STATUS_TRUE if success else STATUS_FALSE
            )
        ],
        latestImage="registry.io/team/app@sha256:built" if success else "",
        buildMetadata=buildpacks if success else [],
        stack=BuildStack(runImage=run_image, id="io.stack"),
    )
    return store.update_status(build)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def enqueued():
    return []


@pytest.fixture
def tracker(enqueued, clock):
    return Tracker(enqueued.append, lease=600, clock=clock)


@pytest.fixture
def keychain_factory():
    return RecordingKeychainFactory()


def make_collaborators(config=None):
    """Collaborators built from the fakes above; also loadable by import path."""
    return Collaborators(
        git_resolver=FakeResolver("git", result=resolved_git()),
        blob_resolver=FakeResolver("blob"),
        registry_resolver=FakeResolver("registry"),
        store_reader=FakeReader([]),
        stack_reader=FakeReader(),
        lifecycle_reader=FakeReader(),
        buildpack_reader=FakeReader([]),
        builder_creator=FakeBuilderCreator(),
        build_observer=FakeBuildObserver(),
        secret_fetcher=object(),
    )
