import pytest

from imagewright.crd.base import CRDMetadata
from imagewright.errors import NetworkError, PermanentError
from imagewright.models.source import (
    BRANCH,
    COMMIT,
    UNKNOWN,
    BlobSource,
    GitSource,
    ResolvedBlobSource,
    ResolvedSourceConfig,
    SourceConfig,
)
from imagewright.models.source_resolver import SourceResolver, SourceResolverSpec
from imagewright.reconciler import PollingEnqueuer, SourceResolverReconciler

from conftest import GIT_URL, FakeResolver, RecordingEnqueuer, resolved_git

KEY = "ns/my-image-source"


def make_source_resolver(source=None):
    return SourceResolver(
        metadata=CRDMetadata(name="my-image-source", namespace="ns"),
        spec=SourceResolverSpec(
            source=source or SourceConfig(git=GitSource(url=GIT_URL, revision="main"))
        ),
    )


@pytest.fixture
def enqueuer():
    return RecordingEnqueuer()


def reconciler_for(store, enqueuer, *resolvers):
    return SourceResolverReconciler(store, resolvers, enqueuer)


class TestSourceResolverReconciler:
    def test_branch_is_resolved_and_polled(self, store, enqueuer):
        store.seed(make_source_resolver())
        resolver = FakeResolver(result=resolved_git("abcdef", BRANCH))

        reconciler_for(store, enqueuer, resolver).reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.revision == "abcdef"
        assert source_resolver.status.source.git.type == BRANCH
        assert source_resolver.ready()
        assert source_resolver.polling_ready()
        assert enqueuer.keys == [KEY]

    def test_commit_is_not_polled(self, store, enqueuer):
        store.seed(make_source_resolver())
        reconciler_for(
            store, enqueuer, FakeResolver(result=resolved_git("abcdef", COMMIT))
        ).reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.ready()
        assert not source_resolver.polling_ready()
        assert enqueuer.keys == []

    def test_unknown_never_overwrites_a_resolved_revision(self, store, enqueuer):
        store.seed(make_source_resolver())
        resolver = FakeResolver(result=resolved_git("abcdef", BRANCH))
        reconciler = reconciler_for(store, enqueuer, resolver)
        reconciler.reconcile(KEY)

        resolver.result = resolved_git("main", UNKNOWN)
        reconciler.reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.revision == "abcdef"
        assert source_resolver.status.source.git.type == BRANCH
        assert len(store.actions_for("update_status")) == 1

    def test_unknown_is_recorded_before_any_resolution(self, store, enqueuer):
        store.seed(make_source_resolver())
        reconciler_for(
            store, enqueuer, FakeResolver(result=resolved_git("main", UNKNOWN))
        ).reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.type == UNKNOWN
        assert not source_resolver.polling_ready()

    def test_unknown_is_recorded_after_a_spec_change(self, store, enqueuer):
        store.seed(make_source_resolver())
        resolver = FakeResolver(result=resolved_git("abcdef", BRANCH))
        reconciler = reconciler_for(store, enqueuer, resolver)
        reconciler.reconcile(KEY)

        changed = store.get(SourceResolver, "my-image-source", "ns").deep_copy()
        changed.spec.source.git.revision = "develop"
        store.update(changed)
        resolver.result = resolved_git("develop", UNKNOWN)
        reconciler.reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.type == UNKNOWN
        assert source_resolver.status.observedGeneration == 2

    def test_unknown_is_recorded_after_a_failed_first_resolution(self, store, enqueuer):
        store.seed(make_source_resolver())
        resolver = FakeResolver(error=NetworkError("git server unavailable"))
        reconciler = reconciler_for(store, enqueuer, resolver)
        with pytest.raises(NetworkError):
            reconciler.reconcile(KEY)
        assert store.get(SourceResolver, "my-image-source", "ns").status.source is None

        resolver.error = None
        resolver.result = resolved_git("main", UNKNOWN)
        reconciler.reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.type == UNKNOWN
        assert source_resolver.status.get_condition("Ready").status == "True"

    def test_unknown_replaces_a_source_of_an_older_generation(self, store, enqueuer):
        store.seed(make_source_resolver())
        resolver = FakeResolver(result=resolved_git("abcdef", BRANCH))
        reconciler = reconciler_for(store, enqueuer, resolver)
        reconciler.reconcile(KEY)

        changed = store.get(SourceResolver, "my-image-source", "ns").deep_copy()
        changed.spec.source.git.revision = "develop"
        store.update(changed)
        resolver.error = NetworkError("git server unavailable")
        with pytest.raises(NetworkError):
            reconciler.reconcile(KEY)

        resolver.error = None
        resolver.result = resolved_git("develop", UNKNOWN)
        reconciler.reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.revision == "develop"
        assert source_resolver.status.resolvedGeneration == 2

    def test_no_matching_resolver_is_permanent(self, store, enqueuer):
        store.seed(make_source_resolver())
        with pytest.raises(PermanentError, match="invalid source type"):
            reconciler_for(store, enqueuer, FakeResolver(kind="blob")).reconcile(KEY)

    def test_resolver_error_keeps_last_source(self, store, enqueuer):
        store.seed(make_source_resolver())
        resolver = FakeResolver(result=resolved_git("abcdef", COMMIT))
        reconciler = reconciler_for(store, enqueuer, resolver)
        reconciler.reconcile(KEY)

        resolver.error = NetworkError("git server unavailable")
        with pytest.raises(NetworkError):
            reconciler.reconcile(KEY)

        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.status.source.git.revision == "abcdef"
        ready = source_resolver.status.get_condition("Ready")
        assert ready.status == "False"
        assert ready.message == "git server unavailable"

    def test_picks_the_resolver_for_the_source_kind(self, store, enqueuer):
        store.seed(
            make_source_resolver(
                SourceConfig(blob=BlobSource(url="https://example.com/app.tgz"))
            )
        )
        git = FakeResolver(kind="git", result=resolved_git())
        blob = FakeResolver(
            kind="blob",
            result=ResolvedSourceConfig(
                blob=ResolvedBlobSource(url="https://example.com/app.tgz")
            ),
        )

        reconciler_for(store, enqueuer, git, blob).reconcile(KEY)

        assert (git.calls, blob.calls) == (0, 1)
        source_resolver = store.get(SourceResolver, "my-image-source", "ns")
        assert source_resolver.source_config().blob.url == "https://example.com/app.tgz"


class TestPollingEnqueuer:
    def test_enqueues_after_delay(self):
        calls = []
        enqueuer = PollingEnqueuer(lambda key, delay: calls.append((key, delay)), 300)
        enqueuer.enqueue(make_source_resolver())
        assert calls == [(KEY, 300)]
