"""Build reconciler: mirrors what the build runtime reports into status."""

import logging

from imagewright.crd.base import (
    CONDITION_SUCCEEDED,
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
    CRDCondition,
)
from imagewright.models.build import Build

from .base import StatusReconciler

logger = logging.getLogger(__name__)

PHASE_STATUS = {
    "Pending": STATUS_UNKNOWN,
    "Running": STATUS_UNKNOWN,
    "Succeeded": STATUS_TRUE,
    "Failed": STATUS_FALSE,
}


def apply_pod_state(status, state):
    """Copy an observed ``BuildPodState`` onto a build's status."""
    condition_status = PHASE_STATUS.get(state.phase, STATUS_UNKNOWN)
    reason = "" if condition_status == STATUS_TRUE else state.phase
    status.conditions = [
        CRDCondition.now(
            CONDITION_SUCCEEDED, condition_status, reason=reason, message=state.message
        )
    ]
    status.podName = state.pod_name
    status.stepStates = list(state.step_states)
    status.stepsCompleted = list(state.steps_completed)
    if condition_status == STATUS_TRUE:
        status.latestImage = state.latest_image
        status.buildMetadata = list(state.buildpacks)
        if state.stack is not None:
            status.stack = state.stack


class BuildReconciler(StatusReconciler):
    """Finished builds are immutable and never observed again."""

    resource_class = Build

    def __init__(self, store, observer):
        super().__init__(store)
        self.observer = observer

    def reconcile_resource(self, build, ctx):
        if build.finished():
            return
        try:
            state = self.observer.observe(build)
        except Exception as e:
            # Still running as far as anyone knows; only the message changes.
            build.status.conditions = [
                CRDCondition.now(
                    CONDITION_SUCCEEDED,
                    STATUS_UNKNOWN,
                    reason="ReconcileFailed",
                    message=str(e),
                )
            ]
            raise
        apply_pod_state(build.status, state)
        if build.finished():
            logger.info(f"Build {build.key} finished: {build.succeeded_status()}")
