"""kopf watch handlers feeding the operator's cache and work queues.

Reconciliation happens on the controllers' worker threads; these handlers
only record the event and enqueue.
"""

import logging

import kopf

from imagewright import operator
from imagewright.crd.registry import CRDRegistry
from imagewright.models.core import PersistentVolumeClaim

logger = logging.getLogger(__name__)


def observe(resource_class, event, body):
    context = operator.current()
    if context is None:
        logger.debug(f"Dropping {resource_class.crd_kind} event before startup")
        return
    context.observe(resource_class, event.get("type"), body)


def _handler_for(resource_class):
    def handler(event, body, **kwargs):
        observe(resource_class, event, body)

    handler.__name__ = f"on_{resource_class.crd_plural}_event"
    return handler


def watched_models():
    registry = CRDRegistry()
    registry.discover_models()
    return [info["model"] for info in registry.get_all_models().values()]


for _model in watched_models():
    kopf.on.event(
        _model.crd_group,
        _model.crd_version,
        _model.crd_plural,
        id=f"{_model.crd_plural}-watch",
    )(_handler_for(_model))


@kopf.on.event("persistentvolumeclaims")
def build_cache_event(event, body, **kwargs):
    """Cache claims owned by images; other claims are ignored."""
    owners = body.get("metadata", {}).get("ownerReferences") or []
    if not any(ref.get("kind") == "Image" and ref.get("controller") for ref in owners):
        return
    observe(PersistentVolumeClaim, event, body)
