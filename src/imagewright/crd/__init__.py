"""Resource model base classes, registry and CRD generation."""

from .registry import CRDRegistry
from .base import (
    CRDCondition,
    CRDMetadata,
    CRDResource,
    CRDSpec,
    CRDStatus,
    OwnerReference,
)

__all__ = [
    "CRDRegistry",
    "CRDCondition",
    "CRDMetadata",
    "CRDResource",
    "CRDSpec",
    "CRDStatus",
    "OwnerReference",
]
