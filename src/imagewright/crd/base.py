"""Base classes for custom resources and their status."""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

CONDITION_READY = "Ready"
CONDITION_SUCCEEDED = "Succeeded"

STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

# Ignored when comparing statuses; it changes on every reconcile.
VOLATILE_FIELDS = frozenset({"lastTransitionTime"})


class OwnerReference(BaseModel):
    """Reference from a child resource to the resource that owns it."""

    apiVersion: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    blockOwnerDeletion: bool = False


class CRDMetadata(BaseModel):
    """Standard Kubernetes object metadata."""

    name: str = ""
    generateName: Optional[str] = None
    namespace: Optional[str] = None
    uid: Optional[str] = None
    generation: int = 0
    resourceVersion: Optional[str] = None
    creationTimestamp: Optional[datetime] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    ownerReferences: List[OwnerReference] = Field(default_factory=list)

    class Config:
        extra = "allow"


class CRDCondition(BaseModel):
    """Custom Kubernetes condition."""

    type: str
    status: str = STATUS_UNKNOWN  # True, False, Unknown
    reason: str = ""
    message: str = ""
    lastTransitionTime: Optional[datetime] = None

    @classmethod
    def now(cls, type, status, reason="", message=""):
        return cls(
            type=type,
            status=status,
            reason=reason,
            message=message,
            lastTransitionTime=datetime.now(timezone.utc),
        )

    def is_true(self):
        return self.status == STATUS_TRUE

    def is_false(self):
        return self.status == STATUS_FALSE

    def is_unknown(self):
        return self.status == STATUS_UNKNOWN


def condition_status(condition):
    """Status of a possibly missing condition; missing reads as Unknown."""
    if condition is None:
        return STATUS_UNKNOWN
    return condition.status


class CRDStatus(BaseModel):
    """Base class for all CRD status objects."""

    conditions: List[CRDCondition] = Field(default_factory=list)
    observedGeneration: int = 0

    class Config:
        extra = "allow"

    def get_condition(self, condition_type) -> Optional[CRDCondition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def condition_is_true(self, condition_type):
        return condition_status(self.get_condition(condition_type)) == STATUS_TRUE

    @staticmethod
    def ready_conditions(error=None):
        """Single Ready condition reflecting the outcome of a reconcile."""
        if error is None:
            return [CRDCondition.now(CONDITION_READY, STATUS_TRUE)]
        return [
            CRDCondition.now(
                CONDITION_READY,
                STATUS_FALSE,
                reason="ReconcileFailed",
                message=str(error),
            )
        ]


class CRDSpec(BaseModel):
    """Base class for all CRD spec objects."""

    class Config:
        extra = "forbid"
        validate_assignment = True


class CRDResource(BaseModel):
    """A reconcilable resource: metadata, desired spec, observed status.

    Subclasses narrow ``spec`` and ``status`` and are registered with
    ``CRDRegistry.register`` which fills in the class level API coordinates.
    """

    crd_group: ClassVar[str] = ""
    crd_version: ClassVar[str] = "v1"
    crd_kind: ClassVar[str] = ""
    crd_plural: ClassVar[str] = ""
    crd_scope: ClassVar[str] = "Namespaced"

    apiVersion: str = ""
    kind: str = ""
    metadata: CRDMetadata = Field(default_factory=CRDMetadata)

    class Config:
        extra = "allow"

    def model_post_init(self, __context: Any) -> None:
        if not self.apiVersion:
            self.apiVersion = self.api_version()
        if not self.kind:
            self.kind = self.crd_kind

    @classmethod
    def api_version(cls):
        if cls.crd_group:
            return f"{cls.crd_group}/{cls.crd_version}"
        return cls.crd_version

    @classmethod
    def is_namespaced(cls):
        return cls.crd_scope == "Namespaced"

    @classmethod
    def from_body(cls, body):
        """Parse a raw API object (dict or kopf body) into this model."""
        return cls.model_validate(dict(body))

    def to_body(self):
        return self.model_dump(mode="json", exclude_none=True)

    @property
    def name(self):
        return self.metadata.name

    @property
    def namespace(self):
        return self.metadata.namespace

    @property
    def generation(self):
        return self.metadata.generation

    @property
    def key(self):
        """Work queue key: ``namespace/name`` or ``name`` when cluster scoped."""
        if self.metadata.namespace:
            return f"{self.metadata.namespace}/{self.metadata.name}"
        return self.metadata.name

    def deep_copy(self):
        """Owned copy that can be mutated without touching the cached value."""
        return self.model_copy(deep=True)

    def controller_ref(self):
        return OwnerReference(
            apiVersion=self.api_version(),
            kind=self.crd_kind,
            name=self.metadata.name,
            uid=self.metadata.uid or "",
            controller=True,
            blockOwnerDeletion=True,
        )

    def controller_of(self) -> Optional[OwnerReference]:
        for ref in self.metadata.ownerReferences:
            if ref.controller:
                return ref
        return None

    def is_controlled_by(self, owner):
        ref = self.controller_of()
        return ref is not None and ref.uid == owner.metadata.uid


def _strip_volatile(value):
    if isinstance(value, dict):
        return {
            k: _strip_volatile(v) for k, v in value.items() if k not in VOLATILE_FIELDS
        }
    if isinstance(value, list):
        return [_strip_volatile(v) for v in value]
    return value


def semantically_equal(left, right):
    """Deep equality of two models ignoring volatile timestamps."""
    if left is None or right is None:
        return left is right
    return _strip_volatile(left.model_dump(mode="json")) == _strip_volatile(
        right.model_dump(mode="json")
    )
