"""Decides whether an image needs a new build, and why."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, NamedTuple

from imagewright.crd.base import STATUS_FALSE, STATUS_TRUE, STATUS_UNKNOWN
from imagewright.models.core import buildpacks_include

logger = logging.getLogger(__name__)

CONFIG = "CONFIG"
COMMIT = "COMMIT"
BUILDPACK = "BUILDPACK"
STACK = "STACK"
TRIGGER = "TRIGGER"

REASON_ORDER = [CONFIG, COMMIT, BUILDPACK, STACK, TRIGGER]

REASON_SEPARATOR = ","


class Change(NamedTuple):
    reason: str
    old: Any
    new: Any

    def as_dict(self):
        return {"reason": self.reason, "old": self.old, "new": self.new}


class BuildDecision:
    """Outcome of comparing an image's desired build with its last build.

    ``status`` is True when a build is required, False when the last build
    is current and Unknown when the source or builder is not ready yet.
    """

    def __init__(self, status, changes=()):
        self.status = status
        self.changes: List[Change] = sorted(
            changes, key=lambda change: REASON_ORDER.index(change.reason)
        )

    @property
    def build_required(self):
        return self.status == STATUS_TRUE

    def reasons(self):
        return REASON_SEPARATOR.join(change.reason for change in self.changes)

    def changes_json(self):
        if not self.changes:
            return ""
        return json.dumps([change.as_dict() for change in self.changes])


def _dump_list(items):
    return [item.model_dump(mode="json") for item in items]


def _source_without_revision(source):
    source = dict(source)
    if source.get("git"):
        source["git"] = {**source["git"], "revision": ""}
    return source


def trigger_change(last_build, now=None):
    if last_build is None or not last_build.additional_build_needed():
        return None
    now = now or datetime.now(timezone.utc)
    return Change(TRIGGER, "", now.strftime("%a, %d %b %Y %H:%M:%S %z"))


def commit_change(last_build, source_resolver):
    resolved = source_resolver.status.source
    if last_build is None or last_build.spec.source.git is None:
        return None
    if resolved is None or resolved.git is None:
        return None

    old = last_build.spec.source.git.revision
    new = resolved.git.revision
    if old == new:
        return None
    return Change(COMMIT, old, new)


def config_change(image, last_build, source_resolver):
    """Anything but the source revision that shapes the build's inputs."""
    new = {
        "tag": image.spec.tag,
        "serviceAccountName": image.spec.serviceAccountName,
        "env": _dump_list(image.env()),
        "resources": image.resources().model_dump(mode="json"),
        "source": source_resolver.source_config().model_dump(mode="json"),
    }
    if last_build is None:
        return Change(CONFIG, None, new)

    old = {
        "tag": last_build.tag(),
        "serviceAccountName": last_build.spec.serviceAccountName,
        "env": _dump_list(last_build.spec.env),
        "resources": last_build.spec.resources.model_dump(mode="json"),
        "source": last_build.spec.source.model_dump(mode="json"),
    }
    if {**old, "source": _source_without_revision(old["source"])} == {
        **new,
        "source": _source_without_revision(new["source"]),
    }:
        return None
    return Change(CONFIG, old, new)


def buildpack_change(last_build, builder):
    if last_build is None or not last_build.is_success():
        return None

    available = builder.buildpack_metadata()
    removed = [
        {"id": bp.id, "version": bp.version}
        for bp in last_build.status.buildMetadata
        if not buildpacks_include(available, bp)
    ]
    if not removed:
        return None
    return Change(BUILDPACK, removed, [])


def reference_identifier(reference):
    """Digest of a reference when pinned, otherwise its tag."""
    if "@" in reference:
        return reference.rsplit("@", 1)[1]
    name = reference.rsplit("/", 1)[-1]
    return name.rsplit(":", 1)[1] if ":" in name else "latest"


def built_with_stack(last_build, run_image):
    built_on = last_build.status.stack.runImage
    if not built_on or not run_image:
        return False
    return reference_identifier(built_on) == reference_identifier(run_image)


def stack_change(last_build, builder):
    if last_build is None or not last_build.is_success():
        return None
    if built_with_stack(last_build, builder.run_image()):
        return None
    return Change(STACK, last_build.status.stack.runImage, builder.run_image())


def determine_build(image, last_build, source_resolver, builder, now=None):
    """Return the ``BuildDecision`` for an image's next reconcile."""
    if not source_resolver.ready() or not builder.ready():
        return BuildDecision(STATUS_UNKNOWN)

    changes = [
        change
        for change in (
            trigger_change(last_build, now),
            commit_change(last_build, source_resolver),
            config_change(image, last_build, source_resolver),
            buildpack_change(last_build, builder),
            stack_change(last_build, builder),
        )
        if change is not None
    ]
    if not changes:
        return BuildDecision(STATUS_FALSE)

    decision = BuildDecision(STATUS_TRUE, changes)
    logger.info(f"Image {image.key} needs a build: {decision.reasons()}")
    return decision
