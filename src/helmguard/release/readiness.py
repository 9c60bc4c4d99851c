"""Readiness evaluation and the readiness poller.

``evaluate_readiness`` is the pure core: one snapshot in, one report out.
``ReadinessPoller`` repeats it against the cluster until everything is
ready, a workload fails, or the deadline passes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from helmguard.config.constants import DEFAULT_CONSTANTS
from helmguard.infra.k8s.controller import (
    ClusterAccessError,
    ClusterAccessor,
    ReleaseSnapshot,
    WorkloadKind,
    WorkloadSnapshot,
)
from helmguard.infra.k8s.helpers import instance_selector

from .classifier import HealthVerdict, VerdictKind, classify
from .errors import ReadinessTimeout, WorkloadFailedError
from .models import WatchSettings


@dataclass(frozen=True)
class ResourceStatus:
    """Readiness of one resource with a printable status."""

    kind: WorkloadKind
    name: str
    ready: bool
    detail: str

    @property
    def line(self) -> str:
        return f"{self.kind.value}/{self.name}: {self.detail}"


@dataclass(frozen=True)
class ReadinessReport:
    """Readiness of every resource of a release at one instant."""

    statuses: tuple[ResourceStatus, ...]
    verdict: HealthVerdict

    @property
    def ready(self) -> bool:
        return all(s.ready for s in self.statuses) and not self.verdict.is_terminal

    @property
    def lines(self) -> list[str]:
        return [s.line for s in self.statuses]

    @property
    def pending_lines(self) -> list[str]:
        """Status lines of resources that are not ready."""
        return [s.line for s in self.statuses if not s.ready]


def _detail(snapshot: WorkloadSnapshot, verdict: HealthVerdict) -> str:
    kind = snapshot.kind
    if kind in (WorkloadKind.DEPLOYMENT, WorkloadKind.STATEFULSET, WorkloadKind.DAEMONSET):
        detail = f"{snapshot.ready}/{snapshot.desired} ready"
        if snapshot.observed_generation < snapshot.generation:
            detail += " (rollout not observed)"
    elif kind == WorkloadKind.JOB:
        detail = f"{snapshot.succeeded} succeeded, {snapshot.failed} failed"
        if snapshot.active:
            detail += f", {snapshot.active} active"
    elif kind == WorkloadKind.CRONJOB:
        detail = f"{snapshot.active} active" if snapshot.active else "exists"
    elif kind == WorkloadKind.POD:
        detail = f"{snapshot.phase} [{'Ready' if snapshot.pod_ready else 'Not Ready'}]"
        if not verdict.is_healthy and verdict.reason and verdict.reason != snapshot.phase:
            detail += f" ({verdict.reason})"
    else:
        detail = "exists"

    if verdict.is_terminal and kind != WorkloadKind.POD:
        detail += f" ({verdict.reason})"
    return detail


def evaluate_readiness(
    snapshot: ReleaseSnapshot,
    *,
    now: datetime | None = None,
    pending_grace: float = DEFAULT_CONSTANTS.PENDING_GRACE_SECONDS,
) -> ReadinessReport:
    """Evaluate whether every resource in a snapshot is ready.

    Args:
        snapshot: Resources of the release
        now: Reference time for age-based rules (defaults to the current time)
        pending_grace: Seconds a Pending pod may wait on an image pull

    Returns:
        ReadinessReport whose verdict is the first terminal one, else the
        first progressing one, else healthy
    """
    now = now or datetime.now(UTC)
    statuses: list[ResourceStatus] = []
    terminal: HealthVerdict | None = None
    progressing: HealthVerdict | None = None

    for resource in snapshot.resources:
        verdict = classify(resource, now=now, pending_grace=pending_grace)
        statuses.append(
            ResourceStatus(
                kind=resource.kind,
                name=resource.name,
                ready=verdict.is_healthy,
                detail=_detail(resource, verdict),
            )
        )
        if verdict.is_terminal and terminal is None:
            terminal = verdict
        elif verdict.kind == VerdictKind.PROGRESSING and progressing is None:
            progressing = verdict

    return ReadinessReport(
        statuses=tuple(statuses),
        verdict=terminal or progressing or HealthVerdict(VerdictKind.HEALTHY),
    )


class ReadinessPoller:
    """Polls a release until every workload is ready.

    A snapshot taken after the deadline is never accepted, so a resource
    that becomes ready one tick late still times out.
    """

    def __init__(
        self,
        accessor: ClusterAccessor,
        settings: WatchSettings | None = None,
    ) -> None:
        self.accessor = accessor
        self.settings = settings or WatchSettings()

    async def check(self, namespace: str, release: str) -> ReadinessReport:
        """Take one snapshot and evaluate it."""
        snapshot = await self.accessor.snapshot_release(
            namespace, release, instance_selector(release)
        )
        return evaluate_readiness(snapshot, pending_grace=self.settings.pending_grace)

    async def poll_until_ready(
        self,
        namespace: str,
        release: str,
        deadline: float,
    ) -> ReadinessReport:
        """Poll until ready.

        Args:
            namespace: Release namespace
            release: Release name
            deadline: Absolute deadline on the running loop's clock

        Returns:
            The report that showed every resource ready

        Raises:
            ReadinessTimeout: The deadline passed first; carries the last
                status lines
            WorkloadFailedError: A workload reached a terminal state
        """
        loop = asyncio.get_running_loop()
        last: ReadinessReport | None = None
        tick = 0

        while loop.time() < deadline:
            tick += 1
            try:
                report = await self.check(namespace, release)
            except ClusterAccessError as e:
                logger.warning(f"Readiness check failed, retrying: {e}")
            else:
                last = report
                logger.debug(
                    f"Readiness tick {tick}: {len(report.statuses)} resources, "
                    f"{len(report.pending_lines)} not ready"
                )
                if report.verdict.is_terminal:
                    raise WorkloadFailedError(
                        report.verdict.describe(),
                        release=release,
                        namespace=namespace,
                        reason=report.verdict.reason,
                        status_lines=report.lines,
                        verdict=report.verdict,
                    )
                if report.ready:
                    logger.info(f"All {len(report.statuses)} resources of {release} ready")
                    return report

            remaining = deadline - loop.time()
            if remaining < self.settings.poll_interval:
                # The next tick would land past the deadline
                await asyncio.sleep(max(remaining, 0))
                break
            await asyncio.sleep(self.settings.poll_interval)

        lines = last.pending_lines if last else []
        raise ReadinessTimeout(
            f"Timed out waiting for {release} to become ready",
            release=release,
            namespace=namespace,
            reason="Timeout",
            status_lines=lines,
        )
