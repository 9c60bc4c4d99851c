"""Diagnostic reporter.

Collects what a human needs to see after a failed release: the release's
pods grouped by the workload that owns them, each container's state, the
latest events, and the readiness lines that were still unmet. Read-only,
and never raises because the cluster could not be read; collection
problems are listed in the report instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from helmguard.infra.k8s.controller import (
    ClusterAccessError,
    ClusterAccessor,
    ContainerSnapshot,
    ContainerState,
    EventInfo,
    WorkloadKind,
    WorkloadSnapshot,
)
from helmguard.infra.k8s.helpers import instance_selector

from .models import WatchSettings


def workload_of(pod: WorkloadSnapshot) -> tuple[str, str]:
    """Return the ``(kind, name)`` of the workload that owns a pod.

    ReplicaSet owners map to their Deployment by dropping the pod-template
    hash suffix. StatefulSet, DaemonSet and Job owners are used as-is, and
    pods without an owner are their own workload.
    """
    if pod.owner_kind == "ReplicaSet" and pod.owner_name:
        return "Deployment", pod.owner_name.rsplit("-", 1)[0]
    if pod.owner_kind:
        return pod.owner_kind, pod.owner_name
    return "Pod", pod.name


def _container_line(container: ContainerSnapshot) -> str:
    label = "init container" if container.init else "container"
    line = f"{label} {container.name}"
    if container.image:
        line += f" ({container.image})"
    line += f": {container.state.value}"
    if container.state == ContainerState.TERMINATED:
        line += f" (exit code {container.exit_code or 0})"
    if container.reason:
        line += f" [{container.reason}]"
    if container.message:
        line += f" {container.message}"
    if container.restart_count:
        line += f" (restarts: {container.restart_count})"
    return line


def _event_line(event: EventInfo) -> str:
    line = f"{event.type} {event.reason}: {event.message}"
    if event.count > 1:
        line += f" (x{event.count})"
    return line


@dataclass
class PodDiagnostics:
    """What the report shows about one pod."""

    pod: WorkloadSnapshot
    events: list[EventInfo] = field(default_factory=list)

    @property
    def workload(self) -> tuple[str, str]:
        return workload_of(self.pod)


@dataclass
class DiagnosticReport:
    """Rendered explanation of a failed run."""

    release: str
    namespace: str
    chart: str = ""
    reason: str = ""
    pods: list[PodDiagnostics] = field(default_factory=list)
    status_lines: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    pods_listed: bool = True

    def groups(self) -> dict[tuple[str, str], list[PodDiagnostics]]:
        """Pods grouped by owning workload, in first-seen order."""
        grouped: dict[tuple[str, str], list[PodDiagnostics]] = {}
        for diag in self.pods:
            grouped.setdefault(diag.workload, []).append(diag)
        return grouped

    def render(self) -> str:
        """Render the report as plain text."""
        lines = [f"Release: {self.release}", f"Namespace: {self.namespace}"]
        if self.chart:
            lines.append(f"Chart: {self.chart}")
        if self.reason:
            lines.append(f"Reason: {self.reason}")

        lines.append("")
        if not self.pods_listed:
            lines.append("Pods could not be listed")
        elif not self.pods:
            lines.append(
                f"No pods found for release {self.release} "
                f"in namespace {self.namespace}"
            )
        for (kind, name), diags in self.groups().items():
            lines.append(f"{kind} {name}:")
            for diag in diags:
                pod = diag.pod
                header = (
                    f"  Pod {pod.name}: {pod.phase}, "
                    f"{'ready' if pod.pod_ready else 'not ready'}, "
                    f"restarts {pod.restarts}"
                )
                if pod.node:
                    header += f", node {pod.node}"
                lines.append(header)
                lines.extend(f"    {_container_line(c)}" for c in pod.containers)
                if diag.events:
                    lines.append("    recent events:")
                    lines.extend(f"      {_event_line(ev)}" for ev in diag.events)

        if self.status_lines:
            lines.append("")
            lines.append("Not ready:")
            lines.extend(f"  {line}" for line in self.status_lines)

        if self.notes:
            lines.append("")
            lines.append("Notes:")
            lines.extend(f"  {note}" for note in self.notes)

        return "\n".join(lines)


class DiagnosticReporter:
    """Builds DiagnosticReports from live cluster state."""

    def __init__(
        self,
        accessor: ClusterAccessor,
        settings: WatchSettings | None = None,
    ) -> None:
        self.accessor = accessor
        self.settings = settings or WatchSettings()

    async def report(
        self,
        namespace: str,
        release: str,
        *,
        chart: str = "",
        reason: str = "",
        status_lines: Sequence[str] = (),
    ) -> DiagnosticReport:
        """Collect a report for a release.

        Args:
            namespace: Release namespace
            release: Release name
            chart: Chart reference, shown in the header
            reason: Why the run failed
            status_lines: Readiness lines still unmet, for timeouts and
                failed confirmations

        Returns:
            The collected report
        """
        report = DiagnosticReport(
            release=release,
            namespace=namespace,
            chart=chart,
            reason=reason,
            status_lines=list(status_lines),
        )

        try:
            pods = await self.accessor.list_workloads(
                WorkloadKind.POD, namespace, instance_selector(release)
            )
        except ClusterAccessError as e:
            logger.warning(f"Could not list pods for diagnostics: {e}")
            report.pods_listed = False
            report.notes.append(f"could not list pods: {e}")
            return report

        for pod in pods:
            diag = PodDiagnostics(pod=pod)
            if self.settings.events_per_pod:
                try:
                    events = await self.accessor.list_events(namespace, "Pod", pod.name)
                except ClusterAccessError as e:
                    logger.warning(f"Could not list events for pod {pod.name}: {e}")
                    report.notes.append(f"could not list events for pod {pod.name}: {e}")
                else:
                    diag.events = events[-self.settings.events_per_pod :]
            report.pods.append(diag)

        return report
