"""Failure classification for release workloads.

Pure functions: given snapshots and a reference time they decide whether a
resource is healthy, still progressing, or in a state that will not recover
without intervention. Both the health watcher and the readiness poller use
the same rules.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from helmguard.config.constants import DEFAULT_CONSTANTS
from helmguard.infra.k8s.controller import (
    ContainerSnapshot,
    ContainerState,
    WorkloadKind,
    WorkloadSnapshot,
)

#: Waiting reasons a container will not recover from on its own.
TERMINAL_WAITING_REASONS = frozenset(
    {
        "ImagePullBackOff",
        "ErrImagePull",
        "CreateContainerConfigError",
        "InvalidImageName",
        "CrashLoopBackOff",
        "CreateContainerError",
    }
)

IMAGE_PULL_REASONS = frozenset({"ImagePullBackOff", "ErrImagePull"})

TERMINAL_EXIT_REASONS = frozenset({"Error", "ContainerCannotRun"})

_REPLICATED_KINDS = (
    WorkloadKind.DEPLOYMENT,
    WorkloadKind.STATEFULSET,
    WorkloadKind.DAEMONSET,
)


class VerdictKind(str, Enum):
    """Health classification of a resource or a set of resources."""

    HEALTHY = "healthy"
    PROGRESSING = "progressing"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class HealthVerdict:
    """Classification result.

    Attributes:
        kind: Healthy, progressing, or terminal
        resource: ``Kind/name`` the verdict is about (empty for an empty set)
        reason: Short machine-style reason (e.g. ``CrashLoopBackOff``)
        evidence: Human-readable detail, usually the container message
        container: Container the evidence came from, if any
    """

    kind: VerdictKind
    resource: str = ""
    reason: str = ""
    evidence: str = ""
    container: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.kind == VerdictKind.TERMINAL

    @property
    def is_healthy(self) -> bool:
        return self.kind == VerdictKind.HEALTHY

    def describe(self) -> str:
        """One-line description for logs and error messages."""
        subject = self.resource
        if self.container:
            subject = f"{subject} (container {self.container})"
        if self.evidence:
            return f"{subject}: {self.evidence}"
        if self.reason:
            return f"{subject}: {self.reason}"
        return f"{subject}: {self.kind.value}"


def _healthy(snapshot: WorkloadSnapshot) -> HealthVerdict:
    return HealthVerdict(VerdictKind.HEALTHY, resource=snapshot.ref)


def _progressing(snapshot: WorkloadSnapshot, reason: str) -> HealthVerdict:
    return HealthVerdict(VerdictKind.PROGRESSING, resource=snapshot.ref, reason=reason)


def _waiting_evidence(container: ContainerSnapshot) -> str:
    if container.message:
        return f"{container.reason}: {container.message}"
    return container.reason


def _terminated_evidence(container: ContainerSnapshot) -> str:
    evidence = f"{container.reason or 'Terminated'}: exit code {container.exit_code or 0}"
    if container.message:
        evidence += f" - {container.message}"
    return evidence


def _container_failure(
    snapshot: WorkloadSnapshot,
    container: ContainerSnapshot,
) -> HealthVerdict | None:
    if container.state == ContainerState.WAITING:
        if container.reason not in TERMINAL_WAITING_REASONS:
            return None
        # Init image pulls are only fatal once the pending grace has passed
        if container.init and container.reason in IMAGE_PULL_REASONS:
            return None
        return HealthVerdict(
            VerdictKind.TERMINAL,
            resource=snapshot.ref,
            reason=container.reason,
            evidence=_waiting_evidence(container),
            container=container.name,
        )

    if container.state == ContainerState.TERMINATED:
        if container.reason in TERMINAL_EXIT_REASONS or (container.exit_code or 0) != 0:
            return HealthVerdict(
                VerdictKind.TERMINAL,
                resource=snapshot.ref,
                reason=container.reason or "Terminated",
                evidence=_terminated_evidence(container),
                container=container.name,
            )
    return None


def _classify_pod(
    snapshot: WorkloadSnapshot,
    now: datetime,
    pending_grace: float,
) -> HealthVerdict:
    if snapshot.phase == "Succeeded":
        return _healthy(snapshot)

    for container in snapshot.containers:
        failure = _container_failure(snapshot, container)
        if failure is not None:
            return failure

    if snapshot.phase == "Failed":
        return HealthVerdict(
            VerdictKind.TERMINAL,
            resource=snapshot.ref,
            reason="PodFailed",
            evidence="pod phase is Failed",
        )

    if snapshot.phase == "Pending" and snapshot.created_at is not None:
        pending_for = (now - snapshot.created_at).total_seconds()
        if pending_for > pending_grace:
            for container in snapshot.containers:
                if (
                    container.state == ContainerState.WAITING
                    and container.reason in IMAGE_PULL_REASONS
                ):
                    return HealthVerdict(
                        VerdictKind.TERMINAL,
                        resource=snapshot.ref,
                        reason=container.reason,
                        evidence=(
                            f"pending for {int(pending_for)}s, "
                            f"{_waiting_evidence(container)}"
                        ),
                        container=container.name,
                    )

    if snapshot.phase == "Running" and snapshot.pod_ready:
        return _healthy(snapshot)

    for container in snapshot.containers:
        if container.state == ContainerState.WAITING and container.reason:
            return _progressing(snapshot, container.reason)
    return _progressing(snapshot, snapshot.phase or "Unknown")


def _classify_replicated(snapshot: WorkloadSnapshot) -> HealthVerdict:
    failure = snapshot.condition("ReplicaFailure")
    if snapshot.kind == WorkloadKind.DEPLOYMENT and failure and failure.is_true:
        return HealthVerdict(
            VerdictKind.TERMINAL,
            resource=snapshot.ref,
            reason=failure.reason or "ReplicaFailure",
            evidence=failure.message or failure.reason or "ReplicaFailure",
        )
    if snapshot.observed_generation < snapshot.generation:
        return _progressing(snapshot, "generation not yet observed")
    if snapshot.ready < snapshot.desired:
        return _progressing(snapshot, f"{snapshot.ready}/{snapshot.desired} ready")
    return _healthy(snapshot)


def _classify_job(snapshot: WorkloadSnapshot) -> HealthVerdict:
    if snapshot.failed > 0:
        failed = snapshot.condition("Failed")
        evidence = f"{snapshot.failed} pod(s) failed"
        if failed and failed.message:
            evidence = f"{evidence}: {failed.message}"
        return HealthVerdict(
            VerdictKind.TERMINAL,
            resource=snapshot.ref,
            reason=(failed.reason if failed and failed.reason else "JobFailed"),
            evidence=evidence,
        )
    if snapshot.succeeded == 0:
        return _progressing(snapshot, "not completed")
    return _healthy(snapshot)


def classify(
    snapshot: WorkloadSnapshot,
    *,
    now: datetime,
    pending_grace: float = DEFAULT_CONSTANTS.PENDING_GRACE_SECONDS,
) -> HealthVerdict:
    """Classify one resource.

    Args:
        snapshot: Resource to classify
        now: Reference time for age-based rules (timezone aware)
        pending_grace: Seconds a Pending pod may wait on an image pull

    Returns:
        The resource's verdict
    """
    if snapshot.kind == WorkloadKind.POD:
        return _classify_pod(snapshot, now, pending_grace)
    if snapshot.kind in _REPLICATED_KINDS:
        return _classify_replicated(snapshot)
    if snapshot.kind == WorkloadKind.JOB:
        return _classify_job(snapshot)
    # CronJobs are healthy once they exist
    return _healthy(snapshot)


def classify_all(
    snapshots: Iterable[WorkloadSnapshot],
    *,
    now: datetime,
    pending_grace: float = DEFAULT_CONSTANTS.PENDING_GRACE_SECONDS,
) -> HealthVerdict:
    """Classify a set of resources.

    The first terminal verdict wins. Otherwise the first progressing verdict
    is returned, and the set is healthy only when every member is (an empty
    set is healthy).
    """
    progressing: HealthVerdict | None = None
    for snapshot in snapshots:
        verdict = classify(snapshot, now=now, pending_grace=pending_grace)
        if verdict.is_terminal:
            return verdict
        if progressing is None and verdict.kind == VerdictKind.PROGRESSING:
            progressing = verdict
    return progressing or HealthVerdict(VerdictKind.HEALTHY)
