"""Builder composition resources: stores, stacks, lifecycles, buildpacks, builders."""

from typing import List, Optional

from pydantic import BaseModel, Field

from imagewright.crd.base import (
    CONDITION_READY,
    STATUS_FALSE,
    STATUS_TRUE,
    CRDCondition,
    CRDResource,
    CRDSpec,
    CRDStatus,
)
from imagewright.crd.registry import CRDRegistry

from .build import BuildBuilderSpec
from .core import (
    API_GROUP,
    API_VERSION,
    BuildpackMetadata,
    BuildStack,
    LocalObjectReference,
    ObjectReference,
    ServiceAccountRef,
)

CLUSTER = "Cluster"

CONDITION_UP_TO_DATE = "UpToDate"
RECONCILE_FAILED_REASON = "ReconcileFailed"
NO_LATEST_IMAGE_REASON = "NoLatestImage"
NO_LATEST_IMAGE_MESSAGE = "Builder has no latestImage"


class StoreImage(CRDSpec):
    image: str = Field(..., description="Buildpackage image reference")


class StoreBuildpack(CRDSpec):
    """A buildpack found inside a store or buildpack image."""

    id: str
    version: str = ""
    homepage: str = ""
    image: str = Field(default="", description="Image the buildpack was read from")
    digest: str = ""


class CompositionStatus(CRDStatus):
    """Status of a resource whose content is read from a registry."""

    def ready(self):
        return self.condition_is_true(CONDITION_READY)


class ClusterStoreSpec(CRDSpec):
    sources: List[StoreImage] = Field(default_factory=list)
    serviceAccountRef: Optional[ServiceAccountRef] = None


class ClusterStoreStatus(CompositionStatus):
    buildpacks: List[StoreBuildpack] = Field(default_factory=list)


@CRDRegistry.register(
    API_GROUP, API_VERSION, "ClusterStore", "clusterstores", scope=CLUSTER
)
class ClusterStore(CRDResource):
    spec: ClusterStoreSpec = Field(default_factory=ClusterStoreSpec)
    status: ClusterStoreStatus = Field(default_factory=ClusterStoreStatus)


class StackImage(CRDSpec):
    image: str


class ResolvedStackImage(CRDSpec):
    latestImage: str = ""
    image: str = ""


class ClusterStackSpec(CRDSpec):
    id: str = Field(..., description="Stack identifier")
    buildImage: StackImage
    runImage: StackImage
    serviceAccountRef: Optional[ServiceAccountRef] = None


class ResolvedClusterStack(CRDSpec):
    id: str = ""
    buildImage: ResolvedStackImage = Field(default_factory=ResolvedStackImage)
    runImage: ResolvedStackImage = Field(default_factory=ResolvedStackImage)
    mixins: List[str] = Field(default_factory=list)
    userId: int = 0
    groupId: int = 0


class ClusterStackStatus(CompositionStatus):
    id: str = ""
    buildImage: ResolvedStackImage = Field(default_factory=ResolvedStackImage)
    runImage: ResolvedStackImage = Field(default_factory=ResolvedStackImage)
    mixins: List[str] = Field(default_factory=list)
    userId: int = 0
    groupId: int = 0


@CRDRegistry.register(
    API_GROUP, API_VERSION, "ClusterStack", "clusterstacks", scope=CLUSTER
)
class ClusterStack(CRDResource):
    spec: ClusterStackSpec
    status: ClusterStackStatus = Field(default_factory=ClusterStackStatus)


class ClusterLifecycleSpec(CRDSpec):
    image: str = Field(..., description="Lifecycle image reference")
    serviceAccountRef: Optional[ServiceAccountRef] = None


class ResolvedClusterLifecycle(CRDSpec):
    image: ResolvedStackImage = Field(default_factory=ResolvedStackImage)
    version: str = ""
    buildpackApis: List[str] = Field(default_factory=list)
    platformApis: List[str] = Field(default_factory=list)


class ClusterLifecycleStatus(CompositionStatus):
    image: ResolvedStackImage = Field(default_factory=ResolvedStackImage)
    version: str = ""
    buildpackApis: List[str] = Field(default_factory=list)
    platformApis: List[str] = Field(default_factory=list)


@CRDRegistry.register(
    API_GROUP, API_VERSION, "ClusterLifecycle", "clusterlifecycles", scope=CLUSTER
)
class ClusterLifecycle(CRDResource):
    spec: ClusterLifecycleSpec
    status: ClusterLifecycleStatus = Field(default_factory=ClusterLifecycleStatus)


class ClusterBuildpackSpec(CRDSpec):
    image: str = Field(..., description="Buildpackage image reference")
    serviceAccountRef: Optional[ServiceAccountRef] = None


class ClusterBuildpackStatus(CompositionStatus):
    buildpacks: List[StoreBuildpack] = Field(default_factory=list)


@CRDRegistry.register(
    API_GROUP, API_VERSION, "ClusterBuildpack", "clusterbuildpacks", scope=CLUSTER
)
class ClusterBuildpack(CRDResource):
    spec: ClusterBuildpackSpec
    status: ClusterBuildpackStatus = Field(default_factory=ClusterBuildpackStatus)


class ExtensionSpec(CRDSpec):
    image: str = Field(..., description="Extension image reference")
    serviceAccountName: str = "default"


class ExtensionStatus(CompositionStatus):
    extensions: List[StoreBuildpack] = Field(default_factory=list)


@CRDRegistry.register(API_GROUP, API_VERSION, "Extension", "extensions")
class Extension(CRDResource):
    spec: ExtensionSpec
    status: ExtensionStatus = Field(default_factory=ExtensionStatus)


class BuildpackRef(CRDSpec):
    """One buildpack of an order group, by id or by resource."""

    id: Optional[str] = None
    version: Optional[str] = None
    kind: Optional[str] = None
    name: Optional[str] = None
    optional: bool = False


class OrderEntry(CRDSpec):
    group: List[BuildpackRef] = Field(default_factory=list)


class BuilderSpec(CRDSpec):
    tag: str = Field(..., description="Where the builder image is pushed")
    stack: ObjectReference
    store: Optional[ObjectReference] = None
    lifecycle: ObjectReference = Field(
        default_factory=lambda: ObjectReference(
            kind="ClusterLifecycle", name="default-lifecycle"
        )
    )
    order: List[OrderEntry] = Field(default_factory=list)


class NamespacedBuilderSpec(BuilderSpec):
    serviceAccountName: str = "default"


class ClusterBuilderSpec(BuilderSpec):
    serviceAccountRef: ServiceAccountRef


class BuilderRecord(BaseModel):
    """What the builder creator produced."""

    image: str
    stack: BuildStack = Field(default_factory=BuildStack)
    buildpacks: List[BuildpackMetadata] = Field(default_factory=list)
    order: List[OrderEntry] = Field(default_factory=list)
    observedStoreGeneration: int = 0
    observedStackGeneration: int = 0
    os: str = "linux"


class BuilderStatus(CRDStatus):
    builderMetadata: List[BuildpackMetadata] = Field(default_factory=list)
    order: List[OrderEntry] = Field(default_factory=list)
    stack: BuildStack = Field(default_factory=BuildStack)
    latestImage: str = ""
    observedStackGeneration: int = 0
    observedStoreGeneration: int = 0
    os: str = ""

    def apply_record(self, record):
        self.stack = record.stack
        self.builderMetadata = list(record.buildpacks)
        self.latestImage = record.image
        self.order = list(record.order)
        self.observedStoreGeneration = record.observedStoreGeneration
        self.observedStackGeneration = record.observedStackGeneration
        self.os = record.os
        self.conditions = [
            CRDCondition.now(CONDITION_READY, STATUS_TRUE),
            CRDCondition.now(CONDITION_UP_TO_DATE, STATUS_TRUE),
        ]

    def apply_error(self, error):
        """Record a failed rebuild; a previously built image stays usable."""
        ready = CRDCondition.now(CONDITION_READY, STATUS_TRUE)
        if not self.latestImage:
            ready = CRDCondition.now(
                CONDITION_READY,
                STATUS_FALSE,
                reason=NO_LATEST_IMAGE_REASON,
                message=NO_LATEST_IMAGE_MESSAGE,
            )
        self.conditions = [
            ready,
            CRDCondition.now(
                CONDITION_UP_TO_DATE,
                STATUS_FALSE,
                reason=RECONCILE_FAILED_REASON,
                message=str(error),
            ),
        ]


class BuilderResource(CRDResource):
    """Common behaviour of Builder and ClusterBuilder as seen by images."""

    status: BuilderStatus = Field(default_factory=BuilderStatus)

    def ready(self):
        return (
            self.status.condition_is_true(CONDITION_READY)
            and self.generation == self.status.observedGeneration
        )

    def build_builder_spec(self):
        return BuildBuilderSpec(
            image=self.status.latestImage,
            imagePullSecrets=self.image_pull_secrets(),
        )

    def image_pull_secrets(self) -> List[LocalObjectReference]:
        return []

    def buildpack_metadata(self):
        return self.status.builderMetadata

    def run_image(self):
        return self.status.stack.runImage

    def service_account_ref(self):
        raise NotImplementedError


@CRDRegistry.register(API_GROUP, API_VERSION, "Builder", "builders")
class Builder(BuilderResource):
    spec: NamespacedBuilderSpec

    def service_account_ref(self):
        return ServiceAccountRef(
            name=self.spec.serviceAccountName, namespace=self.namespace or ""
        )


@CRDRegistry.register(
    API_GROUP, API_VERSION, "ClusterBuilder", "clusterbuilders", scope=CLUSTER
)
class ClusterBuilder(BuilderResource):
    spec: ClusterBuilderSpec

    def service_account_ref(self):
        return self.spec.serviceAccountRef
