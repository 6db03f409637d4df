"""SourceResolver: the image child that pins a source to a revision."""

from typing import Optional

from pydantic import Field

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

from .core import API_GROUP, API_VERSION
from .source import ResolvedSourceConfig, SourceConfig

ACTIVE_POLLING = "ActivePolling"


class SourceResolverSpec(CRDSpec):
    serviceAccountName: str = Field(
        default="default", description="Service account used to fetch the source"
    )
    source: SourceConfig = Field(..., description="Source to resolve")


class SourceResolverStatus(CRDStatus):
    source: Optional[ResolvedSourceConfig] = None
    resolvedGeneration: int = Field(
        default=0, description="Generation the stored source was resolved for"
    )


@CRDRegistry.register(API_GROUP, API_VERSION, "SourceResolver", "sourceresolvers")
class SourceResolver(CRDResource):
    spec: SourceResolverSpec
    status: SourceResolverStatus = Field(default_factory=SourceResolverStatus)

    def apply_resolved_source(self, config):
        """Record a resolution outcome.

        An Unknown outcome is dropped once a source was resolved for this
        generation, so a transient lookup failure never overwrites the last
        known revision. Before that it is recorded as is.
        """
        if config.is_unknown() and self.resolved_current_generation():
            return

        self.status.source = config
        self.status.resolvedGeneration = self.generation
        self.status.conditions = [
            CRDCondition.now(CONDITION_READY, STATUS_TRUE),
            CRDCondition.now(
                ACTIVE_POLLING,
                STATUS_TRUE if config.is_pollable() else STATUS_FALSE,
            ),
        ]

    def resolved_current_generation(self):
        return (
            self.status.source is not None
            and self.status.resolvedGeneration == self.generation
        )

    def polling_ready(self):
        return self.status.condition_is_true(ACTIVE_POLLING)

    def ready(self):
        return (
            self.status.condition_is_true(CONDITION_READY)
            and self.generation == self.status.observedGeneration
        )

    def is_git(self):
        return self.spec.source.git is not None

    def is_blob(self):
        return self.spec.source.blob is not None

    def is_registry(self):
        return self.spec.source.registry is not None

    def source_config(self):
        """Resolved source in descriptor form, as copied into a Build."""
        if self.status.source is None:
            return SourceConfig()
        return self.status.source.source_config()
