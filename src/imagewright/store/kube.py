"""Resource store backed by the Kubernetes API server."""

import logging
from contextlib import contextmanager

import kubernetes
import urllib3
from kubernetes.client.exceptions import ApiException

from imagewright.errors import ConflictError, NetworkError, NotFoundError
from imagewright.models.core import PersistentVolumeClaim

from .base import ResourceStore, format_selector
from .cache import ResourceCache

logger = logging.getLogger(__name__)


@contextmanager
def translate_api_errors(kind, name=None, namespace=None):
    """Map client failures onto the operator's error taxonomy."""
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise NotFoundError(kind, name or "", namespace) from e
        if e.status == 409:
            raise ConflictError(f"{kind} '{name}': {e.reason}") from e
        if e.status == 429 or (e.status or 0) >= 500:
            raise NetworkError(f"{kind} '{name}': {e.status} {e.reason}") from e
        raise
    except urllib3.exceptions.HTTPError as e:
        raise NetworkError(f"{kind} '{name}': {e}") from e


def _delete_options(uid):
    if uid is None:
        return kubernetes.client.V1DeleteOptions()
    return kubernetes.client.V1DeleteOptions(
        preconditions=kubernetes.client.V1Preconditions(uid=uid)
    )


class KubeResourceStore(ResourceStore):
    """Reads from a cache fed by watch events, writes through the API.

    ``get`` falls back to the API on a cache miss; ``list`` always asks the
    API so a build created moments ago is never missed.
    """

    def __init__(self, custom_api=None, core_api=None):
        self.cache = ResourceCache()
        self.custom_api = custom_api or kubernetes.client.CustomObjectsApi()
        self.core_api = core_api or kubernetes.client.CoreV1Api()

    def observe(self, resource_class, event_type, body):
        """Apply a watch event to the cache and return the parsed resource."""
        resource = resource_class.from_body(body)
        if event_type == "DELETED":
            self.cache.remove(resource.crd_kind, resource.name, resource.namespace)
        else:
            self.cache.set(resource)
        return resource

    def _is_core(self, resource_class):
        return resource_class is PersistentVolumeClaim

    def _to_dict(self, obj):
        if isinstance(obj, dict):
            return obj
        return self.core_api.api_client.sanitize_for_serialization(obj)

    def get(self, resource_class, name, namespace=None):
        cached = self.cache.get(resource_class.crd_kind, name, namespace)
        if cached is not None:
            return cached

        with translate_api_errors(resource_class.crd_kind, name, namespace):
            if self._is_core(resource_class):
                body = self.core_api.read_namespaced_persistent_volume_claim(
                    name, namespace
                )
            elif resource_class.is_namespaced():
                body = self.custom_api.get_namespaced_custom_object(
                    resource_class.crd_group,
                    resource_class.crd_version,
                    namespace,
                    resource_class.crd_plural,
                    name,
                )
            else:
                body = self.custom_api.get_cluster_custom_object(
                    resource_class.crd_group,
                    resource_class.crd_version,
                    resource_class.crd_plural,
                    name,
                )
        return self.cache.set(resource_class.from_body(self._to_dict(body)))

    def list(self, resource_class, namespace=None, selector=None):
        label_selector = format_selector(selector)
        with translate_api_errors(resource_class.crd_kind, namespace=namespace):
            if self._is_core(resource_class):
                result = self.core_api.list_namespaced_persistent_volume_claim(
                    namespace, label_selector=label_selector
                )
            elif resource_class.is_namespaced() and namespace:
                result = self.custom_api.list_namespaced_custom_object(
                    resource_class.crd_group,
                    resource_class.crd_version,
                    namespace,
                    resource_class.crd_plural,
                    label_selector=label_selector,
                )
            else:
                result = self.custom_api.list_cluster_custom_object(
                    resource_class.crd_group,
                    resource_class.crd_version,
                    resource_class.crd_plural,
                    label_selector=label_selector,
                )
        items = self._to_dict(result).get("items", [])
        resources = []
        for item in items:
            item.setdefault("apiVersion", resource_class.api_version())
            item.setdefault("kind", resource_class.crd_kind)
            resources.append(resource_class.from_body(item))
        return resources

    def create(self, resource):
        body = resource.to_body()
        resource_class = type(resource)
        with translate_api_errors(resource.crd_kind, resource.name, resource.namespace):
            if self._is_core(resource_class):
                created = self.core_api.create_namespaced_persistent_volume_claim(
                    resource.namespace, body
                )
            elif resource_class.is_namespaced():
                created = self.custom_api.create_namespaced_custom_object(
                    resource.crd_group,
                    resource.crd_version,
                    resource.namespace,
                    resource.crd_plural,
                    body,
                )
            else:
                created = self.custom_api.create_cluster_custom_object(
                    resource.crd_group, resource.crd_version, resource.crd_plural, body
                )
        result = resource_class.from_body(self._to_dict(created))
        logger.debug(f"Created {result.crd_kind} {result.key}")
        return self.cache.set(result).deep_copy()

    def update(self, resource):
        body = resource.to_body()
        resource_class = type(resource)
        with translate_api_errors(resource.crd_kind, resource.name, resource.namespace):
            if self._is_core(resource_class):
                updated = self.core_api.replace_namespaced_persistent_volume_claim(
                    resource.name, resource.namespace, body
                )
            elif resource_class.is_namespaced():
                updated = self.custom_api.replace_namespaced_custom_object(
                    resource.crd_group,
                    resource.crd_version,
                    resource.namespace,
                    resource.crd_plural,
                    resource.name,
                    body,
                )
            else:
                updated = self.custom_api.replace_cluster_custom_object(
                    resource.crd_group,
                    resource.crd_version,
                    resource.crd_plural,
                    resource.name,
                    body,
                )
        result = resource_class.from_body(self._to_dict(updated))
        return self.cache.set(result).deep_copy()

    def update_status(self, resource):
        body = resource.to_body()
        resource_class = type(resource)
        with translate_api_errors(resource.crd_kind, resource.name, resource.namespace):
            if resource_class.is_namespaced():
                updated = self.custom_api.replace_namespaced_custom_object_status(
                    resource.crd_group,
                    resource.crd_version,
                    resource.namespace,
                    resource.crd_plural,
                    resource.name,
                    body,
                )
            else:
                updated = self.custom_api.replace_cluster_custom_object_status(
                    resource.crd_group,
                    resource.crd_version,
                    resource.crd_plural,
                    resource.name,
                    body,
                )
        result = resource_class.from_body(self._to_dict(updated))
        return self.cache.set(result).deep_copy()

    def delete(self, resource_class, name, namespace=None, uid=None):
        options = _delete_options(uid)
        with translate_api_errors(resource_class.crd_kind, name, namespace):
            if self._is_core(resource_class):
                self.core_api.delete_namespaced_persistent_volume_claim(
                    name, namespace, body=options
                )
            elif resource_class.is_namespaced():
                self.custom_api.delete_namespaced_custom_object(
                    resource_class.crd_group,
                    resource_class.crd_version,
                    namespace,
                    resource_class.crd_plural,
                    name,
                    body=options,
                )
            else:
                self.custom_api.delete_cluster_custom_object(
                    resource_class.crd_group,
                    resource_class.crd_version,
                    resource_class.crd_plural,
                    name,
                    body=options,
                )
        self.cache.remove(resource_class.crd_kind, name, namespace)
        logger.debug(f"Deleted {resource_class.crd_kind} {namespace}/{name}")
