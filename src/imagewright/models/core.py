"""Shared value types and the core PersistentVolumeClaim resource."""

from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from imagewright.crd.base import CRDResource, CRDSpec, CRDStatus

API_GROUP = "build.imagewright.io"
API_VERSION = "v1alpha1"


class EnvVar(CRDSpec):
    """Environment variable passed to a build."""

    name: str = Field(..., description="Environment variable name")
    value: str = Field(default="", description="Environment variable value")


class ResourceRequirements(CRDSpec):
    """Compute resource limits and requests, as quantity strings."""

    limits: Dict[str, str] = Field(default_factory=dict)
    requests: Dict[str, str] = Field(default_factory=dict)


class ObjectReference(CRDSpec):
    """Reference to another resource by kind and name."""

    kind: str = Field(default="", description="Kind of the referenced resource")
    name: str = Field(..., description="Name of the referenced resource")
    namespace: Optional[str] = Field(
        default=None, description="Namespace, for namespaced resources"
    )


class LocalObjectReference(CRDSpec):
    name: str


class ServiceAccountRef(CRDSpec):
    """Service account whose secrets provide registry credentials."""

    name: str
    namespace: str


class BuildpackInfo(CRDSpec):
    id: str
    version: str = ""


class BuildpackMetadata(CRDSpec):
    """A buildpack available in a builder or used by a build."""

    id: str
    version: str = ""
    homepage: str = ""


def buildpacks_include(buildpacks, candidate):
    """Whether ``buildpacks`` contains ``candidate`` with the same id and version."""
    return any(
        bp.id == candidate.id and bp.version == candidate.version for bp in buildpacks
    )


class BuildStack(CRDSpec):
    """Stack a builder was created from or a build ran on."""

    runImage: str = ""
    id: str = ""


class PersistentVolumeClaimSpec(BaseModel):
    accessModes: List[str] = Field(default_factory=lambda: ["ReadWriteOnce"])
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    storageClassName: Optional[str] = None

    class Config:
        extra = "allow"


class PersistentVolumeClaim(CRDResource):
    """Core v1 claim backing an image's build cache."""

    crd_group: ClassVar[str] = ""
    crd_version: ClassVar[str] = "v1"
    crd_kind: ClassVar[str] = "PersistentVolumeClaim"
    crd_plural: ClassVar[str] = "persistentvolumeclaims"

    spec: PersistentVolumeClaimSpec = Field(default_factory=PersistentVolumeClaimSpec)
    status: CRDStatus = Field(default_factory=CRDStatus)

    def storage_request(self):
        return self.spec.resources.requests.get("storage")
