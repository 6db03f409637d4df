"""Keeps an image's build cache claim in line with its requested size."""

import logging

from imagewright.errors import NotFoundError
from imagewright.models.core import PersistentVolumeClaim

logger = logging.getLogger(__name__)


def get_bytes(size_str):
    """ Convert k8s size string to bytes for comparison.

    Args:
        size_str: Size string like '10Gi', '500Mi', '1.5G'
    """
    if size_str is None:
        return None

    size_str = str(size_str).strip()
    units = {
        "Ki": 1024,
        "Mi": 1024**2,
        "Gi": 1024**3,
        "Ti": 1024**4,
        "Pi": 1024**5,
        "k": 1000,
        "K": 1000,
        "M": 1000**2,
        "G": 1000**3,
        "T": 1000**4,
        "P": 1000**5,
    }

    for suffix, multiplier in units.items():
        if size_str.endswith(suffix):
            return int(float(size_str[: -len(suffix)]) * multiplier)

    return int(float(size_str))


def build_caches_equal(desired, existing):
    if get_bytes(desired.storage_request()) != get_bytes(existing.storage_request()):
        return False
    if (
        desired.spec.storageClassName is not None
        and desired.spec.storageClassName != existing.spec.storageClassName
    ):
        return False
    return desired.metadata.labels == existing.metadata.labels


def reconcile_build_cache(store, image):
    """Create, update or delete the cache claim; return its name or ''."""
    try:
        existing = store.get(PersistentVolumeClaim, image.cache_name(), image.namespace)
    except NotFoundError:
        existing = None

    if not image.need_cache():
        if existing is not None:
            logger.info(f"Deleting build cache {existing.key}")
            store.delete(
                PersistentVolumeClaim,
                existing.name,
                existing.namespace,
                uid=existing.metadata.uid,
            )
        return ""

    desired = image.build_cache()
    if existing is None:
        logger.info(f"Creating build cache {desired.key} of {image.spec.cacheSize}")
        return store.create(desired).name

    if build_caches_equal(desired, existing):
        return existing.name

    updated = existing.deep_copy()
    updated.spec.resources = desired.spec.resources
    if desired.spec.storageClassName is not None:
        updated.spec.storageClassName = desired.spec.storageClassName
    updated.metadata.labels = desired.metadata.labels
    logger.info(f"Updating build cache {updated.key}")
    return store.update(updated).name
