"""In-memory cluster and package-manager doubles for release tests."""

from __future__ import annotations

import asyncio
from datetime import datetime

from helmguard.infra.k8s.controller import (
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
from helmguard.release.errors import PackageManagerError
from helmguard.release.models import ActionKind, ReleaseDescriptor, ReleaseRecord
from helmguard.release.package_manager import PackageManager

WEB_MANIFEST = """\
---
apiVersion: v1
kind: Service
metadata:
  name: web
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
"""


# =============================================================================
# Snapshot Builders
# =============================================================================


def deployment(
    name: str = "web",
    *,
    desired: int = 3,
    ready: int = 3,
    generation: int = 1,
    observed: int = 1,
    conditions: tuple[ConditionSnapshot, ...] = (),
) -> WorkloadSnapshot:
    return WorkloadSnapshot(
        kind=WorkloadKind.DEPLOYMENT,
        name=name,
        desired=desired,
        ready=ready,
        generation=generation,
        observed_generation=observed,
        conditions=conditions,
    )


def job(name: str = "migrate", *, succeeded: int = 1, failed: int = 0) -> WorkloadSnapshot:
    return WorkloadSnapshot(
        kind=WorkloadKind.JOB,
        name=name,
        desired=1,
        succeeded=succeeded,
        failed=failed,
    )


def running(name: str = "app") -> ContainerSnapshot:
    return ContainerSnapshot(name=name, state=ContainerState.RUNNING, ready=True)


def waiting(
    name: str = "app",
    reason: str = "ContainerCreating",
    message: str = "",
    *,
    init: bool = False,
) -> ContainerSnapshot:
    return ContainerSnapshot(
        name=name,
        state=ContainerState.WAITING,
        reason=reason,
        message=message,
        init=init,
    )


def terminated(
    name: str = "app",
    reason: str = "Error",
    exit_code: int = 1,
    message: str = "",
) -> ContainerSnapshot:
    return ContainerSnapshot(
        name=name,
        state=ContainerState.TERMINATED,
        reason=reason,
        exit_code=exit_code,
        message=message,
    )


def pod(
    name: str = "web-7d9f8b6c5-abcde",
    *,
    phase: str = "Running",
    ready: bool = True,
    containers: tuple[ContainerSnapshot, ...] | None = None,
    owner: tuple[str, str] = ("ReplicaSet", "web-7d9f8b6c5"),
    created_at: datetime | None = None,
) -> WorkloadSnapshot:
    if containers is None:
        containers = (running(),) if ready else (waiting(),)
    return WorkloadSnapshot(
        kind=WorkloadKind.POD,
        name=name,
        desired=len(containers),
        ready=sum(1 for c in containers if c.ready),
        phase=phase,
        pod_ready=ready,
        created_at=created_at,
        owner_kind=owner[0],
        owner_name=owner[1],
        containers=containers,
    )


def healthy_web(replicas: int = 3) -> list[WorkloadSnapshot]:
    """A fully rolled-out ``web`` deployment with its pods."""
    return [deployment("web", desired=replicas, ready=replicas)] + [
        pod(f"web-7d9f8b6c5-{i}") for i in range(replicas)
    ]


# =============================================================================
# Fakes
# =============================================================================


class FakeClusterAccessor(ClusterAccessor):
    """Scripted ClusterAccessor.

    ``frames`` is a list of resource lists. Each ``snapshot_release`` call
    serves the next frame and the last frame repeats forever. Plain
    ``list_workloads`` calls read the most recently served frame.
    """

    def __init__(
        self,
        frames: list[list[WorkloadSnapshot]] | None = None,
        *,
        namespaces: tuple[str, ...] = ("default", "prod"),
        releases: tuple[tuple[str, str], ...] = (),
        events: dict[str, list[EventInfo]] | None = None,
    ) -> None:
        self.frames = frames or [[]]
        self.namespaces = set(namespaces)
        self.releases = set(releases)
        self.events = events or {}
        self.snapshot_calls = 0
        self.created_namespaces: list[str] = []
        self.snapshot_error: ClusterAccessError | None = None
        self.list_error: ClusterAccessError | None = None
        self.events_error: ClusterAccessError | None = None

    def _frame(self) -> list[WorkloadSnapshot]:
        return self.frames[min(max(self.snapshot_calls - 1, 0), len(self.frames) - 1)]

    async def namespace_exists(self, namespace: str) -> bool:
        return namespace in self.namespaces

    async def create_namespace(self, namespace: str) -> None:
        self.created_namespaces.append(namespace)
        self.namespaces.add(namespace)

    async def release_exists(self, namespace: str, release: str) -> bool:
        return (namespace, release) in self.releases

    async def list_workloads(
        self,
        kind: WorkloadKind,
        namespace: str,
        label_selector: str,
    ) -> list[WorkloadSnapshot]:
        if self.list_error is not None:
            raise self.list_error
        return [r for r in self._frame() if r.kind == kind]

    async def list_events(self, namespace: str, kind: str, name: str) -> list[EventInfo]:
        if self.events_error is not None:
            raise self.events_error
        return list(self.events.get(name, []))

    async def snapshot_release(
        self,
        namespace: str,
        release: str,
        label_selector: str,
        kinds: tuple[WorkloadKind, ...] = READINESS_KINDS,
    ) -> ReleaseSnapshot:
        if self.snapshot_error is not None:
            raise self.snapshot_error
        self.snapshot_calls += 1
        return ReleaseSnapshot(
            namespace=namespace,
            release=release,
            resources=tuple(r for r in self._frame() if r.kind in kinds),
        )


class FakePackageManager(PackageManager):
    """Stand-in for HelmPackageManager that records calls.

    Takes ``delay`` seconds per action, then fails with ``error`` or
    registers the release as deployed on ``accessor``.
    """

    def __init__(
        self,
        accessor: FakeClusterAccessor | None = None,
        *,
        delay: float = 0.0,
        error: PackageManagerError | None = None,
    ) -> None:
        self.accessor = accessor
        self.delay = delay
        self.error = error
        self.calls: list[tuple[ActionKind, ReleaseDescriptor]] = []
        self.cancelled = False

    async def install(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        return await self._apply(ActionKind.INSTALL, descriptor)

    async def upgrade(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        return await self._apply(ActionKind.UPGRADE, descriptor)

    async def rollback(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        return await self._apply(ActionKind.ROLLBACK, descriptor)

    async def status(self, release: str, namespace: str) -> ReleaseRecord:
        if self.accessor is not None and (namespace, release) not in self.accessor.releases:
            raise PackageManagerError(
                f"helm status failed for release {release}",
                "Error: release: not found",
                stderr="Error: release: not found",
                release=release,
                namespace=namespace,
                reason="Error: release: not found",
            )
        return self._record(release, namespace)

    def _record(self, release: str, namespace: str) -> ReleaseRecord:
        return ReleaseRecord(
            name=release,
            namespace=namespace,
            revision=len(self.calls),
            status="deployed",
            chart_name="web",
            chart_version="1.0.0",
            manifest=WEB_MANIFEST,
        )

    async def _apply(self, action: ActionKind, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        self.calls.append((action, descriptor))
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        if self.accessor is not None:
            self.accessor.releases.add((descriptor.namespace, descriptor.name))
        return self._record(descriptor.name, descriptor.namespace)

    @property
    def actions(self) -> list[ActionKind]:
        return [action for action, _ in self.calls]
