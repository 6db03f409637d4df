"""Image: the user facing request to keep a tag built from a source."""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import Field

from imagewright.crd.base import (
    CONDITION_READY,
    STATUS_FALSE,
    CRDCondition,
    CRDMetadata,
    CRDResource,
    CRDSpec,
    CRDStatus,
)
from imagewright.crd.registry import CRDRegistry
from imagewright.errors import InvalidSpecError

from .build import (
    BUILD_CHANGES_ANNOTATION,
    BUILD_NUMBER_LABEL,
    BUILD_REASON_ANNOTATION,
    IMAGE_GENERATION_LABEL,
    IMAGE_LABEL,
    Build,
    BuildCacheConfig,
    BuildSpec,
    LastBuild,
)
from .core import (
    API_GROUP,
    API_VERSION,
    EnvVar,
    ObjectReference,
    PersistentVolumeClaim,
    PersistentVolumeClaimSpec,
    ResourceRequirements,
)
from .source import SourceConfig
from .source_resolver import SourceResolver, SourceResolverSpec

CONDITION_BUILDER_READY = "BuilderReady"
BUILDER_NOT_FOUND = "BuilderNotFound"
BUILDER_NOT_READY = "BuilderNotReady"

DEFAULT_REGISTRY = "index.docker.io"


class ImageBuild(CRDSpec):
    env: List[EnvVar] = Field(default_factory=list)
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class ImageSpec(CRDSpec):
    tag: str = Field(..., description="Image reference the build is pushed to")
    builder: ObjectReference = Field(
        ..., description="Builder or ClusterBuilder used to build the image"
    )
    serviceAccountName: str = "default"
    source: SourceConfig
    build: Optional[ImageBuild] = None
    cacheSize: Optional[str] = Field(
        default=None, description="Size of the build cache volume, e.g. 2G"
    )
    cacheStorageClass: Optional[str] = None
    failedBuildHistoryLimit: int = 10
    successBuildHistoryLimit: int = 10
    imageTaggingStrategy: Literal["None", "BuildNumber"] = "BuildNumber"


class ImageStatus(CRDStatus):
    latestBuildRef: str = ""
    latestBuildReason: str = ""
    latestBuildImageGeneration: int = 0
    latestImage: str = ""
    latestStack: str = ""
    buildCounter: int = 0
    buildCacheName: str = ""


def parse_tag(reference):
    """Split an image reference into (registry, repository, tag).

    Returns None for digest references and malformed names.
    """
    if not reference or "@" in reference or reference != reference.strip():
        return None

    registry = DEFAULT_REGISTRY
    remainder = reference
    first, _, rest = reference.partition("/")
    if rest and ("." in first or ":" in first or first == "localhost"):
        registry, remainder = first, rest

    repository, tag = remainder, "latest"
    slash = remainder.rfind("/")
    colon = remainder.rfind(":")
    if colon > slash:
        repository, tag = remainder[:colon], remainder[colon + 1 :]

    if not repository or not tag:
        return None
    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"
    return registry, repository, tag


def child_labels(image, extra=None):
    labels = dict(image.metadata.labels)
    labels.update(extra or {})
    return labels


@CRDRegistry.register(API_GROUP, API_VERSION, "Image", "images")
class Image(CRDResource):
    spec: ImageSpec
    status: ImageStatus = Field(default_factory=ImageStatus)

    def validate_spec(self):
        """Raise ``InvalidSpecError`` for specs no build can satisfy."""
        if parse_tag(self.spec.tag) is None:
            raise InvalidSpecError(f"invalid image tag '{self.spec.tag}'")
        for field in ("failedBuildHistoryLimit", "successBuildHistoryLimit"):
            if getattr(self.spec, field) < 1:
                raise InvalidSpecError(f"{field} must be at least 1")

    def env(self):
        return list(self.spec.build.env) if self.spec.build else []

    def resources(self):
        if self.spec.build is None:
            return ResourceRequirements()
        return self.spec.build.resources

    def need_cache(self):
        return bool(self.spec.cacheSize)

    def source_resolver_name(self):
        return f"{self.name}-source"

    def cache_name(self):
        return f"{self.name}-cache"

    def source_resolver(self):
        """Desired SourceResolver child."""
        return SourceResolver(
            metadata=CRDMetadata(
                name=self.source_resolver_name(),
                namespace=self.namespace,
                ownerReferences=[self.controller_ref()],
                labels=child_labels(self),
            ),
            spec=SourceResolverSpec(
                serviceAccountName=self.spec.serviceAccountName,
                source=self.spec.source.model_copy(deep=True),
            ),
        )

    def build_cache(self):
        """Desired cache claim; only meaningful when a cache size is set."""
        return PersistentVolumeClaim(
            metadata=CRDMetadata(
                name=self.cache_name(),
                namespace=self.namespace,
                ownerReferences=[self.controller_ref()],
                labels=child_labels(self),
            ),
            spec=PersistentVolumeClaimSpec(
                accessModes=["ReadWriteOnce"],
                resources=ResourceRequirements(
                    requests={"storage": self.spec.cacheSize}
                ),
                storageClassName=self.spec.cacheStorageClass,
            ),
        )

    def builder_not_found(self):
        namespace = self.spec.builder.namespace or self.namespace or ""
        return [
            CRDCondition.now(
                CONDITION_READY,
                STATUS_FALSE,
                reason=BUILDER_NOT_FOUND,
                message=(
                    f"Error: Unable to find builder '{self.spec.builder.name}' "
                    f"in namespace '{namespace}'."
                ),
            )
        ]

    def latest_for_image(self, build):
        """Image digest to report: the build's output when it succeeded."""
        if build is not None and build.is_success():
            return build.built_image()
        return self.status.latestImage

    def generate_tags(self, build_number, now=None):
        if self.spec.imageTaggingStrategy == "None":
            return [self.spec.tag]

        parsed = parse_tag(self.spec.tag)
        if parsed is None:
            return []
        registry, repository, tag = parsed

        now = now or datetime.now(timezone.utc)
        prefix = "" if tag == "latest" else f"{tag}-"
        stamp = now.strftime("%Y%m%d.%H%M%S")
        return [
            self.spec.tag,
            f"{registry}/{repository}:{prefix}b{build_number}.{stamp}",
        ]

    def build(
        self,
        source_resolver,
        builder,
        latest_build,
        reasons,
        changes,
        build_number,
        now=None,
    ):
        """Desired Build for ``build_number``; the store fills in the name."""
        number = str(build_number)
        cache = None
        if self.need_cache():
            cache = BuildCacheConfig(persistentVolumeClaimName=self.cache_name())

        annotations = dict(self.metadata.annotations)
        annotations.update(
            {BUILD_REASON_ANNOTATION: reasons, BUILD_CHANGES_ANNOTATION: changes}
        )
        return Build(
            metadata=CRDMetadata(
                namespace=self.namespace,
                generateName=f"{self.name}-build-{number}-",
                ownerReferences=[self.controller_ref()],
                labels=child_labels(
                    self,
                    {
                        BUILD_NUMBER_LABEL: number,
                        IMAGE_LABEL: self.name,
                        IMAGE_GENERATION_LABEL: str(self.generation),
                    },
                ),
                annotations=annotations,
            ),
            spec=BuildSpec(
                tags=self.generate_tags(number, now=now),
                builder=builder.build_builder_spec(),
                serviceAccountName=self.spec.serviceAccountName,
                source=source_resolver.source_config(),
                cache=cache,
                env=self.env(),
                resources=self.resources(),
                lastBuild=last_build(latest_build),
            ),
        )


def last_build(latest_build):
    if latest_build is None:
        return None
    if latest_build.is_failure():
        return latest_build.spec.lastBuild
    return LastBuild(image=latest_build.built_image(), stackId=latest_build.stack())
