"""Source descriptors and their resolved forms."""

from typing import List, Literal, Optional

from pydantic import Field

from imagewright.crd.base import CRDSpec

from .core import LocalObjectReference

UNKNOWN = "Unknown"
BRANCH = "Branch"
TAG = "Tag"
COMMIT = "Commit"

GitSourceKind = Literal["Unknown", "Branch", "Tag", "Commit"]


class GitSource(CRDSpec):
    url: str = Field(..., description="Repository URL")
    revision: str = Field(..., description="Branch, tag or commit to build")
    initializeSubmodules: bool = False


class BlobSource(CRDSpec):
    url: str = Field(..., description="URL of a source archive")
    auth: str = ""
    stripComponents: int = 0


class RegistrySource(CRDSpec):
    image: str = Field(..., description="Image holding the source code")
    imagePullSecrets: List[LocalObjectReference] = Field(default_factory=list)


class SourceConfig(CRDSpec):
    """Exactly one of git, blob or registry, plus an optional sub path."""

    git: Optional[GitSource] = None
    blob: Optional[BlobSource] = None
    registry: Optional[RegistrySource] = None
    subPath: str = ""

    def source(self):
        return self.git or self.blob or self.registry

    def kind(self):
        if self.git is not None:
            return "git"
        if self.blob is not None:
            return "blob"
        if self.registry is not None:
            return "registry"
        return None


class ResolvedGitSource(CRDSpec):
    url: str
    revision: str
    subPath: str = ""
    type: GitSourceKind = UNKNOWN
    initializeSubmodules: bool = False

    def is_unknown(self):
        return self.type == UNKNOWN

    def is_pollable(self):
        return self.type not in (COMMIT, UNKNOWN)

    def source_config(self):
        return SourceConfig(
            git=GitSource(
                url=self.url,
                revision=self.revision,
                initializeSubmodules=self.initializeSubmodules,
            ),
            subPath=self.subPath,
        )


class ResolvedBlobSource(CRDSpec):
    url: str
    auth: str = ""
    subPath: str = ""
    stripComponents: int = 0

    def is_unknown(self):
        return False

    def is_pollable(self):
        return False

    def source_config(self):
        return SourceConfig(
            blob=BlobSource(
                url=self.url, auth=self.auth, stripComponents=self.stripComponents
            ),
            subPath=self.subPath,
        )


class ResolvedRegistrySource(CRDSpec):
    image: str
    subPath: str = ""
    imagePullSecrets: List[LocalObjectReference] = Field(default_factory=list)

    def is_unknown(self):
        return False

    def is_pollable(self):
        return False

    def source_config(self):
        return SourceConfig(
            registry=RegistrySource(
                image=self.image, imagePullSecrets=list(self.imagePullSecrets)
            ),
            subPath=self.subPath,
        )


class ResolvedSourceConfig(CRDSpec):
    """Outcome of resolving a source: a pinned revision and its classification."""

    git: Optional[ResolvedGitSource] = None
    blob: Optional[ResolvedBlobSource] = None
    registry: Optional[ResolvedRegistrySource] = None

    def resolved_source(self):
        return self.git or self.blob or self.registry

    def is_unknown(self):
        resolved = self.resolved_source()
        return resolved is None or resolved.is_unknown()

    def is_pollable(self):
        resolved = self.resolved_source()
        return resolved is not None and resolved.is_pollable()

    def source_config(self):
        resolved = self.resolved_source()
        if resolved is None:
            return SourceConfig()
        return resolved.source_config()
