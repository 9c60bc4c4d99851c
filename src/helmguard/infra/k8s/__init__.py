"""Kubernetes access layer.

Provides the read-mostly ``ClusterAccessor`` contract used by the release
supervisor and its kr8s-backed implementation.

Example:
    from helmguard.infra.k8s import get_cluster_accessor, instance_selector, run_sync

    accessor = get_cluster_accessor()
    snapshot = run_sync(
        accessor.snapshot_release("prod", "web", instance_selector("web"))
    )
"""

from .controller import (
    READINESS_KINDS,
    ClusterAccessError,
    ClusterAccessor,
    ConditionSnapshot,
    ContainerSnapshot,
    ContainerState,
    EventInfo,
    ReleaseSnapshot,
    WorkloadKind,
    WorkloadSnapshot,
)
from .helpers import get_cluster_accessor, instance_selector
from .utils import run_sync

__all__ = [
    # Accessor
    "ClusterAccessor",
    "ClusterAccessError",
    "get_cluster_accessor",
    # Snapshot types
    "ConditionSnapshot",
    "ContainerSnapshot",
    "ContainerState",
    "EventInfo",
    "ReleaseSnapshot",
    "WorkloadKind",
    "WorkloadSnapshot",
    "READINESS_KINDS",
    # Utilities
    "instance_selector",
    "run_sync",
]
