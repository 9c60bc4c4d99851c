"""Kr8s-based implementation of ClusterAccessor.

Uses the kr8s library for native async Kubernetes reads. The manifest to
snapshot converters are plain functions over raw object dicts so they can
be exercised without a cluster.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import kr8s
from kr8s.asyncio.objects import (
    CronJob,
    DaemonSet,
    Deployment,
    Event,
    Job,
    Namespace,
    Pod,
    Secret,
    StatefulSet,
)

from .controller import (
    ClusterAccessError,
    ClusterAccessor,
    ConditionSnapshot,
    ContainerSnapshot,
    ContainerState,
    EventInfo,
    WorkloadKind,
    WorkloadSnapshot,
)

# =============================================================================
# Manifest Converters
# =============================================================================


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Kubernetes RFC 3339 timestamp."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _conditions(status: Mapping[str, Any]) -> tuple[ConditionSnapshot, ...]:
    return tuple(
        ConditionSnapshot(
            type=c.get("type", ""),
            status=c.get("status", ""),
            reason=c.get("reason", "") or "",
            message=c.get("message", "") or "",
        )
        for c in status.get("conditions") or []
    )


def _generations(raw: Mapping[str, Any]) -> tuple[int, int]:
    metadata = raw.get("metadata") or {}
    status = raw.get("status") or {}
    return (
        int(metadata.get("generation") or 0),
        int(status.get("observedGeneration") or 0),
    )


def deployment_snapshot(raw: Mapping[str, Any]) -> WorkloadSnapshot:
    """Build a snapshot from a Deployment manifest."""
    spec = raw.get("spec") or {}
    status = raw.get("status") or {}
    generation, observed = _generations(raw)
    replicas = spec.get("replicas")
    return WorkloadSnapshot(
        kind=WorkloadKind.DEPLOYMENT,
        name=(raw.get("metadata") or {}).get("name", ""),
        # The API server defaults an omitted replica count to 1
        desired=1 if replicas is None else int(replicas),
        ready=int(status.get("readyReplicas") or 0),
        generation=generation,
        observed_generation=observed,
        conditions=_conditions(status),
    )


def statefulset_snapshot(raw: Mapping[str, Any]) -> WorkloadSnapshot:
    """Build a snapshot from a StatefulSet manifest."""
    spec = raw.get("spec") or {}
    status = raw.get("status") or {}
    generation, observed = _generations(raw)
    replicas = spec.get("replicas")
    return WorkloadSnapshot(
        kind=WorkloadKind.STATEFULSET,
        name=(raw.get("metadata") or {}).get("name", ""),
        desired=1 if replicas is None else int(replicas),
        ready=int(status.get("readyReplicas") or 0),
        generation=generation,
        observed_generation=observed,
        conditions=_conditions(status),
    )


def daemonset_snapshot(raw: Mapping[str, Any]) -> WorkloadSnapshot:
    """Build a snapshot from a DaemonSet manifest."""
    status = raw.get("status") or {}
    generation, observed = _generations(raw)
    return WorkloadSnapshot(
        kind=WorkloadKind.DAEMONSET,
        name=(raw.get("metadata") or {}).get("name", ""),
        desired=int(status.get("desiredNumberScheduled") or 0),
        ready=int(status.get("numberReady") or 0),
        generation=generation,
        observed_generation=observed,
        conditions=_conditions(status),
    )


def job_snapshot(raw: Mapping[str, Any]) -> WorkloadSnapshot:
    """Build a snapshot from a Job manifest."""
    status = raw.get("status") or {}
    return WorkloadSnapshot(
        kind=WorkloadKind.JOB,
        name=(raw.get("metadata") or {}).get("name", ""),
        desired=int((raw.get("spec") or {}).get("completions") or 1),
        succeeded=int(status.get("succeeded") or 0),
        failed=int(status.get("failed") or 0),
        active=int(status.get("active") or 0),
        conditions=_conditions(status),
    )


def cronjob_snapshot(raw: Mapping[str, Any]) -> WorkloadSnapshot:
    """Build a snapshot from a CronJob manifest."""
    status = raw.get("status") or {}
    return WorkloadSnapshot(
        kind=WorkloadKind.CRONJOB,
        name=(raw.get("metadata") or {}).get("name", ""),
        active=len(status.get("active") or []),
    )


def _container_snapshot(cs: Mapping[str, Any], *, init: bool) -> ContainerSnapshot:
    state = cs.get("state") or {}
    if "waiting" in state:
        detail = state["waiting"] or {}
        return ContainerSnapshot(
            name=cs.get("name", ""),
            state=ContainerState.WAITING,
            reason=detail.get("reason", "") or "",
            message=detail.get("message", "") or "",
            ready=bool(cs.get("ready")),
            restart_count=int(cs.get("restartCount") or 0),
            image=cs.get("image", ""),
            init=init,
        )
    if "terminated" in state:
        detail = state["terminated"] or {}
        return ContainerSnapshot(
            name=cs.get("name", ""),
            state=ContainerState.TERMINATED,
            reason=detail.get("reason", "") or "",
            message=detail.get("message", "") or "",
            exit_code=int(detail.get("exitCode") or 0),
            ready=bool(cs.get("ready")),
            restart_count=int(cs.get("restartCount") or 0),
            image=cs.get("image", ""),
            init=init,
        )
    return ContainerSnapshot(
        name=cs.get("name", ""),
        state=ContainerState.RUNNING if "running" in state else ContainerState.UNKNOWN,
        ready=bool(cs.get("ready")),
        restart_count=int(cs.get("restartCount") or 0),
        image=cs.get("image", ""),
        init=init,
    )


def pod_snapshot(raw: Mapping[str, Any]) -> WorkloadSnapshot:
    """Build a snapshot from a Pod manifest, including container states."""
    metadata = raw.get("metadata") or {}
    spec = raw.get("spec") or {}
    status = raw.get("status") or {}

    owner_kind = ""
    owner_name = ""
    for owner_ref in metadata.get("ownerReferences") or []:
        if owner_ref.get("controller", True):
            owner_kind = owner_ref.get("kind", "")
            owner_name = owner_ref.get("name", "")
            break

    conditions = _conditions(status)
    pod_ready = any(c.type == "Ready" and c.is_true for c in conditions)

    containers = tuple(
        _container_snapshot(cs, init=True)
        for cs in status.get("initContainerStatuses") or []
    ) + tuple(
        _container_snapshot(cs, init=False)
        for cs in status.get("containerStatuses") or []
    )

    return WorkloadSnapshot(
        kind=WorkloadKind.POD,
        name=metadata.get("name", ""),
        desired=len(spec.get("containers") or []),
        ready=sum(1 for c in containers if c.ready and not c.init),
        conditions=conditions,
        phase=status.get("phase", "Unknown") or "Unknown",
        pod_ready=pod_ready,
        created_at=parse_timestamp(metadata.get("creationTimestamp")),
        owner_kind=owner_kind,
        owner_name=owner_name,
        node=spec.get("nodeName", "") or "",
        containers=containers,
    )


def event_info(raw: Mapping[str, Any]) -> EventInfo:
    """Build an EventInfo from an Event manifest."""
    last_seen = (
        raw.get("lastTimestamp")
        or raw.get("eventTime")
        or (raw.get("metadata") or {}).get("creationTimestamp")
    )
    return EventInfo(
        type=raw.get("type", "") or "",
        reason=raw.get("reason", "") or "",
        message=(raw.get("message", "") or "").strip(),
        count=int(raw.get("count") or 1),
        last_seen=parse_timestamp(last_seen),
    )


_WORKLOADS: dict[WorkloadKind, tuple[Any, Callable[[Mapping[str, Any]], WorkloadSnapshot]]] = {
    WorkloadKind.DEPLOYMENT: (Deployment, deployment_snapshot),
    WorkloadKind.STATEFULSET: (StatefulSet, statefulset_snapshot),
    WorkloadKind.DAEMONSET: (DaemonSet, daemonset_snapshot),
    WorkloadKind.JOB: (Job, job_snapshot),
    WorkloadKind.CRONJOB: (CronJob, cronjob_snapshot),
    WorkloadKind.POD: (Pod, pod_snapshot),
}


# =============================================================================
# Accessor
# =============================================================================


class Kr8sController(ClusterAccessor):
    """Cluster accessor using the kr8s library.

    Note: The kr8s API client is NOT cached because it's tied to the event loop
    that was running when created. When using run_sync() which calls asyncio.run(),
    each call creates a new event loop, making the cached API unusable.
    """

    async def _get_api(self) -> Any:  # Returns kr8s._api.Api
        """Create a kr8s API client bound to the running event loop."""
        return await kr8s.asyncio.api()

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        try:
            api = await self._get_api()
            ns = await Namespace.get(namespace, api=api)
            return ns is not None
        except kr8s.NotFoundError:
            return False
        except Exception as e:
            raise ClusterAccessError(
                f"failed to look up namespace {namespace}: {e}"
            ) from e

    async def create_namespace(self, namespace: str) -> None:
        """Create a namespace, tolerating a concurrent creation."""
        try:
            api = await self._get_api()
            ns = Namespace(
                {
                    "apiVersion": "v1",
                    "kind": "Namespace",
                    "metadata": {"name": namespace},
                },
                api=api,
            )
            await ns.create()
        except kr8s.ServerError as e:
            response = getattr(e, "response", None)
            if response is not None and response.status_code == 409:
                return
            raise ClusterAccessError(
                f"failed to create namespace {namespace}: {e}"
            ) from e
        except Exception as e:
            raise ClusterAccessError(
                f"failed to create namespace {namespace}: {e}"
            ) from e

    # =========================================================================
    # Release Records
    # =========================================================================

    async def release_exists(self, namespace: str, release: str) -> bool:
        """Check for a deployed Helm release record.

        Helm stores each revision as a Secret labelled
        ``owner=helm,name=<release>,status=<status>``.
        """
        selector = f"owner=helm,name={release},status=deployed"
        try:
            api = await self._get_api()
            async for _ in Secret.list(
                namespace=namespace,
                label_selector=selector,
                api=api,
            ):
                return True
            return False
        except Exception as e:
            raise ClusterAccessError(
                f"failed to read release records for {release}: {e}"
            ) from e

    # =========================================================================
    # Workload Operations
    # =========================================================================

    async def list_workloads(
        self,
        kind: WorkloadKind,
        namespace: str,
        label_selector: str,
    ) -> list[WorkloadSnapshot]:
        """List resources of one kind matching a label selector."""
        object_cls, convert = _WORKLOADS[kind]
        try:
            api = await self._get_api()
            return [
                convert(obj.raw)
                async for obj in object_cls.list(
                    namespace=namespace,
                    label_selector=label_selector,
                    api=api,
                )
            ]
        except Exception as e:
            raise ClusterAccessError(
                f"failed to list {kind.value} objects in {namespace}: {e}"
            ) from e

    async def list_events(
        self,
        namespace: str,
        kind: str,
        name: str,
    ) -> list[EventInfo]:
        """List events for one object, oldest first."""
        try:
            api = await self._get_api()
            events = [
                event_info(ev.raw)
                async for ev in Event.list(
                    namespace=namespace,
                    field_selector=(
                        f"involvedObject.name={name},involvedObject.kind={kind}"
                    ),
                    api=api,
                )
            ]
        except Exception as e:
            raise ClusterAccessError(
                f"failed to list events for {kind}/{name}: {e}"
            ) from e

        events.sort(key=lambda ev: ev.last_seen.timestamp() if ev.last_seen else 0.0)
        return events
