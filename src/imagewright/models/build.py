"""Build: one execution of a builder against a resolved source."""

from typing import Any, Dict, List, Optional

from pydantic import Field

from imagewright.crd.base import (
    CONDITION_SUCCEEDED,
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
    CRDResource,
    CRDSpec,
    CRDStatus,
    condition_status,
)
from imagewright.crd.registry import CRDRegistry

from .core import (
    API_GROUP,
    API_VERSION,
    BuildpackMetadata,
    BuildStack,
    EnvVar,
    LocalObjectReference,
    ResourceRequirements,
)
from .source import SourceConfig

BUILD_NUMBER_LABEL = f"{API_GROUP}/buildNumber"
IMAGE_LABEL = f"{API_GROUP}/image"
IMAGE_GENERATION_LABEL = f"{API_GROUP}/imageGeneration"

BUILD_REASON_ANNOTATION = f"{API_GROUP}/reason"
BUILD_CHANGES_ANNOTATION = f"{API_GROUP}/buildChanges"
BUILD_NEEDED_ANNOTATION = f"{API_GROUP}/additionalBuildNeeded"


class BuildBuilderSpec(CRDSpec):
    image: str = Field(default="", description="Builder image, pinned by digest")
    imagePullSecrets: List[LocalObjectReference] = Field(default_factory=list)


class BuildCacheConfig(CRDSpec):
    persistentVolumeClaimName: str = ""


class LastBuild(CRDSpec):
    """What the previous successful build produced, for layer reuse."""

    image: str = ""
    stackId: str = ""


class BuildSpec(CRDSpec):
    tags: List[str] = Field(default_factory=list)
    builder: BuildBuilderSpec = Field(default_factory=BuildBuilderSpec)
    serviceAccountName: str = "default"
    source: SourceConfig
    cache: Optional[BuildCacheConfig] = None
    env: List[EnvVar] = Field(default_factory=list)
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    lastBuild: Optional[LastBuild] = None


class BuildStatus(CRDStatus):
    buildMetadata: List[BuildpackMetadata] = Field(default_factory=list)
    stack: BuildStack = Field(default_factory=BuildStack)
    latestImage: str = ""
    podName: str = ""
    stepStates: List[Dict[str, Any]] = Field(default_factory=list)
    stepsCompleted: List[str] = Field(default_factory=list)


def parse_number(value):
    """Integer value of a numeric label, 0 when missing or malformed."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@CRDRegistry.register(API_GROUP, API_VERSION, "Build", "builds")
class Build(CRDResource):
    spec: BuildSpec
    status: BuildStatus = Field(default_factory=BuildStatus)

    def succeeded_status(self):
        return condition_status(self.status.get_condition(CONDITION_SUCCEEDED))

    def is_running(self):
        return self.succeeded_status() == STATUS_UNKNOWN

    def is_success(self):
        return self.succeeded_status() == STATUS_TRUE

    def is_failure(self):
        return self.succeeded_status() == STATUS_FALSE

    def finished(self):
        return not self.is_running()

    def build_number(self):
        return parse_number(self.metadata.labels.get(BUILD_NUMBER_LABEL))

    def image_generation(self):
        return parse_number(self.metadata.labels.get(IMAGE_GENERATION_LABEL))

    def reason(self):
        return self.metadata.annotations.get(BUILD_REASON_ANNOTATION, "")

    def changes(self):
        return self.metadata.annotations.get(BUILD_CHANGES_ANNOTATION, "")

    def additional_build_needed(self):
        return BUILD_NEEDED_ANNOTATION in self.metadata.annotations

    def tag(self):
        return self.spec.tags[0] if self.spec.tags else ""

    def built_image(self):
        """Digest reference of the pushed image; empty unless the build succeeded."""
        return self.status.latestImage if self.is_success() else ""

    def stack(self):
        return self.status.stack.id if self.is_success() else ""

    def run_image(self):
        return self.status.stack.runImage
