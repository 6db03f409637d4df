from unittest.mock import MagicMock

import pytest
import urllib3
from kubernetes.client.exceptions import ApiException

from imagewright.crd.base import CRDMetadata
from imagewright.errors import ConflictError, NetworkError, NotFoundError
from imagewright.models.build import Build, BuildSpec
from imagewright.models.core import PersistentVolumeClaim
from imagewright.models.image import Image
from imagewright.models.source import SourceConfig
from imagewright.store.base import format_selector, matches_selector, split_key
from imagewright.store.kube import KubeResourceStore, translate_api_errors

from conftest import make_image


def make_build(name="b1", labels=None):
    return Build(
        metadata=CRDMetadata(name=name, namespace="ns", labels=labels or {}),
        spec=BuildSpec(source=SourceConfig()),
    )


class TestKeys:
    def test_split_namespaced_key(self):
        assert split_key("ns/name") == ("ns", "name")

    def test_split_cluster_key(self):
        assert split_key("name") == (None, "name")

    @pytest.mark.parametrize("key", ["a/b/c", "ns/"])
    def test_split_rejects_malformed_keys(self, key):
        with pytest.raises(ValueError):
            split_key(key)

    def test_selector_matching(self):
        assert matches_selector({"a": "1", "b": "2"}, {"a": "1"})
        assert not matches_selector({"a": "1"}, {"a": "2"})
        assert matches_selector({}, None)
        assert format_selector({"b": "2", "a": "1"}) == "a=1,b=2"


class TestInMemoryStore:
    def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.get(Image, "missing", "ns")

    def test_create_assigns_identity(self, store):
        created = store.create(make_image())
        assert created.metadata.uid
        assert created.metadata.generation == 1
        assert created.metadata.resourceVersion
        assert store.actions == [("create", "Image", "ns/my-image")]

    def test_create_existing_name_conflicts(self, store):
        store.create(make_image())
        with pytest.raises(ConflictError):
            store.create(make_image())

    def test_generate_name(self, store):
        build = make_build(name="")
        build.metadata.generateName = "app-build-1-"
        first = store.create(build)
        second = store.create(build)
        assert first.name.startswith("app-build-1-")
        assert first.name != second.name

    def test_reads_are_not_aliased_with_writes(self, store):
        created = store.create(make_image())
        created.spec.tag = "changed"
        assert store.get(Image, "my-image", "ns").spec.tag == "registry.io/team/app"

    def test_update_bumps_generation_only_on_spec_change(self, store):
        image = store.create(make_image())
        image.metadata.labels["team"] = "a"
        image = store.update(image)
        assert image.metadata.generation == 1

        image.spec.tag = "registry.io/team/other"
        image = store.update(image)
        assert image.metadata.generation == 2

    def test_update_keeps_status(self, store):
        image = store.create(make_image())
        image.status.latestImage = "registry.io/team/app@sha256:1"
        image = store.update_status(image)

        image.status.latestImage = "ignored"
        image.spec.tag = "registry.io/team/other"
        updated = store.update(image)
        assert updated.status.latestImage == "registry.io/team/app@sha256:1"

    def test_update_status_keeps_spec(self, store):
        image = store.create(make_image())
        image.spec.tag = "ignored"
        image.status.buildCounter = 3
        updated = store.update_status(image)
        assert updated.spec.tag == "registry.io/team/app"
        assert updated.status.buildCounter == 3

    def test_stale_write_conflicts(self, store):
        image = store.create(make_image())
        stale = image.deep_copy()
        image.status.buildCounter = 1
        store.update_status(image)

        stale.status.buildCounter = 2
        with pytest.raises(ConflictError):
            store.update_status(stale)

    def test_list_by_namespace_and_selector(self, store):
        store.seed(
            make_build("a", {"image": "one"}),
            make_build("b", {"image": "two"}),
        )
        assert [b.name for b in store.list(Build, "ns", {"image": "two"})] == ["b"]
        assert store.list(Build, "other") == []

    def test_delete_uid_precondition(self, store):
        created = store.create(make_image())
        with pytest.raises(ConflictError):
            store.delete(Image, "my-image", "ns", uid="someone-else")
        store.delete(Image, "my-image", "ns", uid=created.metadata.uid)
        with pytest.raises(NotFoundError):
            store.get(Image, "my-image", "ns")

    def test_subscribers_see_writes(self, store):
        events = []
        store.subscribe(lambda event, resource: events.append((event, resource.key)))
        image = store.create(make_image())
        store.delete(Image, image.name, image.namespace)
        assert events == [("ADDED", "ns/my-image"), ("DELETED", "ns/my-image")]


class TestTranslateApiErrors:
    @pytest.mark.parametrize(
        "status, error",
        [(404, NotFoundError), (409, ConflictError), (429, NetworkError), (503, NetworkError)],
    )
    def test_status_codes(self, status, error):
        with pytest.raises(error):
            with translate_api_errors("Image", "x", "ns"):
                raise ApiException(status=status, reason="nope")

    def test_client_errors_pass_through(self):
        with pytest.raises(ApiException):
            with translate_api_errors("Image", "x", "ns"):
                raise ApiException(status=422, reason="invalid")

    def test_connection_errors_are_network_errors(self):
        with pytest.raises(NetworkError):
            with translate_api_errors("Image", "x", "ns"):
                raise urllib3.exceptions.MaxRetryError(None, "/", "refused")


class TestKubeResourceStore:
    def setup_method(self):
        self.custom_api = MagicMock()
        self.core_api = MagicMock()
        self.store = KubeResourceStore(self.custom_api, self.core_api)

    def test_get_prefers_cache(self):
        image = make_image()
        self.store.observe(Image, "ADDED", image.to_body())
        assert self.store.get(Image, "my-image", "ns").spec.tag == image.spec.tag
        self.custom_api.get_namespaced_custom_object.assert_not_called()

    def test_get_falls_back_to_api(self):
        self.custom_api.get_namespaced_custom_object.return_value = make_image().to_body()
        image = self.store.get(Image, "my-image", "ns")
        assert image.name == "my-image"
        self.custom_api.get_namespaced_custom_object.assert_called_once_with(
            "build.imagewright.io", "v1alpha1", "ns", "images", "my-image"
        )

    def test_get_missing_raises_not_found(self):
        self.custom_api.get_namespaced_custom_object.side_effect = ApiException(status=404)
        with pytest.raises(NotFoundError):
            self.store.get(Image, "missing", "ns")

    def test_deleted_event_evicts(self):
        body = make_image().to_body()
        self.store.observe(Image, "ADDED", body)
        self.store.observe(Image, "DELETED", body)
        assert self.store.cache.get("Image", "my-image", "ns") is None

    def test_list_passes_label_selector(self):
        self.custom_api.list_namespaced_custom_object.return_value = {
            "items": [make_build().to_body()]
        }
        builds = self.store.list(Build, "ns", {"app": "x"})
        assert [b.name for b in builds] == ["b1"]
        self.custom_api.list_namespaced_custom_object.assert_called_once_with(
            "build.imagewright.io", "v1alpha1", "ns", "builds", label_selector="app=x"
        )

    def test_claims_use_the_core_api(self):
        claim = PersistentVolumeClaim(metadata=CRDMetadata(name="c", namespace="ns"))
        self.core_api.create_namespaced_persistent_volume_claim.return_value = (
            claim.to_body()
        )
        self.store.create(claim)
        self.core_api.create_namespaced_persistent_volume_claim.assert_called_once()
        self.custom_api.create_namespaced_custom_object.assert_not_called()

    def test_delete_sends_uid_precondition(self):
        self.store.delete(Image, "my-image", "ns", uid="u1")
        kwargs = self.custom_api.delete_namespaced_custom_object.call_args.kwargs
        assert kwargs["body"].preconditions.uid == "u1"

    def test_update_status_conflict(self):
        self.custom_api.replace_namespaced_custom_object_status.side_effect = (
            ApiException(status=409, reason="Conflict")
        )
        with pytest.raises(ConflictError):
            self.store.update_status(make_image())

