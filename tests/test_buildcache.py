import pytest

from imagewright.errors import NotFoundError
from imagewright.models.core import PersistentVolumeClaim
from imagewright.models.image import Image
from imagewright.reconciler.image import get_bytes, reconcile_build_cache

from conftest import make_image


def get_claim(store):
    return store.get(PersistentVolumeClaim, "my-image-cache", "ns")


def seed_image(store, **spec):
    store.seed(make_image(**spec))
    return store.get(Image, "my-image", "ns")


def change_spec(store, **changes):
    image = store.get(Image, "my-image", "ns").deep_copy()
    for field, value in changes.items():
        setattr(image.spec, field, value)
    return store.update(image)


@pytest.mark.parametrize(
    "size, expected",
    [
        ("2G", 2 * 1000**3),
        ("2000M", 2 * 1000**3),
        ("1Gi", 1024**3),
        ("1.5Gi", int(1.5 * 1024**3)),
        ("512", 512),
        (None, None),
    ],
)
def test_get_bytes(size, expected):
    assert get_bytes(size) == expected


class TestReconcileBuildCache:
    def test_no_cache_requested(self, store):
        image = seed_image(store)
        assert reconcile_build_cache(store, image) == ""
        assert store.actions == []

    def test_creates_owned_claim(self, store):
        image = seed_image(store, cacheSize="2G", cacheStorageClass="fast")

        assert reconcile_build_cache(store, image) == "my-image-cache"

        claim = get_claim(store)
        assert claim.storage_request() == "2G"
        assert claim.spec.storageClassName == "fast"
        assert claim.spec.accessModes == ["ReadWriteOnce"]
        assert claim.is_controlled_by(image)

    def test_equivalent_size_is_not_an_update(self, store):
        seed_image(store, cacheSize="2G")
        reconcile_build_cache(store, store.get(Image, "my-image", "ns"))

        image = change_spec(store, cacheSize="2000M")
        reconcile_build_cache(store, image)

        assert store.actions_for("update", "PersistentVolumeClaim") == []

    def test_resizes_claim(self, store):
        seed_image(store, cacheSize="2G")
        reconcile_build_cache(store, store.get(Image, "my-image", "ns"))

        image = change_spec(store, cacheSize="3G")
        assert reconcile_build_cache(store, image) == "my-image-cache"

        assert get_claim(store).storage_request() == "3G"
        assert len(store.actions_for("update", "PersistentVolumeClaim")) == 1

    def test_storage_class_left_alone_when_unset(self, store):
        seed_image(store, cacheSize="2G", cacheStorageClass="fast")
        reconcile_build_cache(store, store.get(Image, "my-image", "ns"))

        image = change_spec(store, cacheStorageClass=None)
        reconcile_build_cache(store, image)

        assert get_claim(store).spec.storageClassName == "fast"
        assert store.actions_for("update", "PersistentVolumeClaim") == []

    def test_label_change_updates_claim(self, store):
        seed_image(store, cacheSize="2G")
        reconcile_build_cache(store, store.get(Image, "my-image", "ns"))

        image = store.get(Image, "my-image", "ns").deep_copy()
        image.metadata.labels["team"] = "payments"
        image = store.update(image)
        reconcile_build_cache(store, image)

        assert get_claim(store).metadata.labels == {"team": "payments"}

    def test_deletes_claim_when_cache_removed(self, store):
        seed_image(store, cacheSize="2G")
        reconcile_build_cache(store, store.get(Image, "my-image", "ns"))

        image = change_spec(store, cacheSize=None)
        assert reconcile_build_cache(store, image) == ""

        assert store.actions_for("delete", "PersistentVolumeClaim") == [
            ("delete", "PersistentVolumeClaim", "ns/my-image-cache")
        ]
        with pytest.raises(NotFoundError):
            get_claim(store)
