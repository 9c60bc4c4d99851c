"""Abstract cluster resource accessor.

Defines the read-mostly contract the release supervisor needs from a
Kubernetes backend, together with the snapshot types every backend
produces. Snapshots are frozen: each poll tick builds new ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# =============================================================================
# Data Types
# =============================================================================


class WorkloadKind(str, Enum):
    """Resource kinds tracked for a release."""

    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"
    DAEMONSET = "DaemonSet"
    JOB = "Job"
    CRONJOB = "CronJob"
    POD = "Pod"


#: Kinds the readiness poller evaluates, in report order.
READINESS_KINDS: tuple[WorkloadKind, ...] = (
    WorkloadKind.DEPLOYMENT,
    WorkloadKind.STATEFULSET,
    WorkloadKind.DAEMONSET,
    WorkloadKind.JOB,
    WorkloadKind.CRONJOB,
    WorkloadKind.POD,
)


class ContainerState(str, Enum):
    """Current state of a container."""

    WAITING = "Waiting"
    RUNNING = "Running"
    TERMINATED = "Terminated"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ContainerSnapshot:
    """Point-in-time state of one container in a pod."""

    name: str
    state: ContainerState
    reason: str = ""
    message: str = ""
    exit_code: int | None = None
    ready: bool = False
    restart_count: int = 0
    image: str = ""
    init: bool = False


@dataclass(frozen=True)
class ConditionSnapshot:
    """A status condition reported by a workload."""

    type: str
    status: str
    reason: str = ""
    message: str = ""

    @property
    def is_true(self) -> bool:
        return self.status == "True"


@dataclass(frozen=True)
class WorkloadSnapshot:
    """Point-in-time read of one resource belonging to a release.

    Count fields are interpreted per kind: ``desired``/``ready`` hold the
    replica counts for Deployments and StatefulSets and the scheduled/ready
    pod counts for DaemonSets. Jobs use ``succeeded``/``failed``. The
    pod-specific fields are only populated for ``WorkloadKind.POD``.
    """

    kind: WorkloadKind
    name: str
    desired: int = 0
    ready: int = 0
    generation: int = 0
    observed_generation: int = 0
    succeeded: int = 0
    failed: int = 0
    active: int = 0
    conditions: tuple[ConditionSnapshot, ...] = ()
    # Pod fields
    phase: str = ""
    pod_ready: bool = False
    created_at: datetime | None = None
    owner_kind: str = ""
    owner_name: str = ""
    node: str = ""
    containers: tuple[ContainerSnapshot, ...] = ()

    @property
    def ref(self) -> str:
        """Return the ``Kind/name`` reference used in reports."""
        return f"{self.kind.value}/{self.name}"

    @property
    def restarts(self) -> int:
        return sum(c.restart_count for c in self.containers)

    def condition(self, condition_type: str) -> ConditionSnapshot | None:
        for cond in self.conditions:
            if cond.type == condition_type:
                return cond
        return None


@dataclass(frozen=True)
class ReleaseSnapshot:
    """All resources of one release captured during a single poll tick."""

    namespace: str
    release: str
    resources: tuple[WorkloadSnapshot, ...] = field(default_factory=tuple)

    def of_kind(self, kind: WorkloadKind) -> tuple[WorkloadSnapshot, ...]:
        return tuple(r for r in self.resources if r.kind == kind)

    @property
    def pods(self) -> tuple[WorkloadSnapshot, ...]:
        return self.of_kind(WorkloadKind.POD)


@dataclass(frozen=True)
class EventInfo:
    """A Kubernetes event attached to an object."""

    type: str
    reason: str
    message: str
    count: int = 1
    last_seen: datetime | None = None


class ClusterAccessError(Exception):
    """Raised when the cluster API cannot be read or written."""


# =============================================================================
# Abstract Accessor
# =============================================================================


class ClusterAccessor(ABC):
    """Abstract base class for the cluster reads the supervisor performs.

    All methods are async. Use ``run_sync()`` to call them from synchronous
    code. Implementations raise ``ClusterAccessError`` on API failures
    instead of returning empty results, so callers can tell "nothing there"
    apart from "could not look".
    """

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    @abstractmethod
    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        ...

    @abstractmethod
    async def create_namespace(self, namespace: str) -> None:
        """Create a namespace. Creating an existing namespace is a no-op."""
        ...

    # =========================================================================
    # Release Records
    # =========================================================================

    @abstractmethod
    async def release_exists(self, namespace: str, release: str) -> bool:
        """Check whether a deployed release record exists.

        Args:
            namespace: Namespace the release lives in
            release: Release name

        Returns:
            True if the package manager has a deployed revision on record
        """
        ...

    # =========================================================================
    # Workload Operations
    # =========================================================================

    @abstractmethod
    async def list_workloads(
        self,
        kind: WorkloadKind,
        namespace: str,
        label_selector: str,
    ) -> list[WorkloadSnapshot]:
        """List resources of one kind matching a label selector.

        Args:
            kind: Resource kind to list
            namespace: Kubernetes namespace
            label_selector: Label selector (e.g. "app.kubernetes.io/instance=web")

        Returns:
            Fresh snapshots, one per resource
        """
        ...

    @abstractmethod
    async def list_events(
        self,
        namespace: str,
        kind: str,
        name: str,
    ) -> list[EventInfo]:
        """List events whose involved object is ``kind/name``.

        Returns:
            Events ordered oldest first
        """
        ...

    # =========================================================================
    # Composite Reads
    # =========================================================================

    async def snapshot_release(
        self,
        namespace: str,
        release: str,
        label_selector: str,
        kinds: tuple[WorkloadKind, ...] = READINESS_KINDS,
    ) -> ReleaseSnapshot:
        """Capture every resource of the given kinds for a release."""
        resources: list[WorkloadSnapshot] = []
        for kind in kinds:
            resources.extend(await self.list_workloads(kind, namespace, label_selector))
        return ReleaseSnapshot(
            namespace=namespace,
            release=release,
            resources=tuple(resources),
        )
