"""Tests for the manifest to snapshot converters."""

from datetime import UTC, datetime

from helmguard.infra.k8s.controller import ContainerState, WorkloadKind
from helmguard.infra.k8s.kr8s_controller import (
    daemonset_snapshot,
    deployment_snapshot,
    event_info,
    job_snapshot,
    parse_timestamp,
    pod_snapshot,
)


class TestParseTimestamp:
    def test_zulu_suffix(self) -> None:
        assert parse_timestamp("2024-05-01T12:00:00Z") == datetime(
            2024, 5, 1, 12, 0, tzinfo=UTC
        )

    def test_empty_and_invalid(self) -> None:
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("yesterday") is None


class TestDeploymentSnapshot:
    def test_counts_and_generations(self) -> None:
        snap = deployment_snapshot(
            {
                "metadata": {"name": "web", "generation": 4},
                "spec": {"replicas": 3},
                "status": {
                    "readyReplicas": 2,
                    "observedGeneration": 3,
                    "conditions": [
                        {"type": "ReplicaFailure", "status": "True", "reason": "FailedCreate"}
                    ],
                },
            }
        )

        assert snap.kind == WorkloadKind.DEPLOYMENT
        assert (snap.desired, snap.ready) == (3, 2)
        assert (snap.generation, snap.observed_generation) == (4, 3)
        cond = snap.condition("ReplicaFailure")
        assert cond is not None and cond.is_true
        assert cond.reason == "FailedCreate"

    def test_omitted_replicas_defaults_to_one(self) -> None:
        snap = deployment_snapshot({"metadata": {"name": "web"}, "spec": {}})
        assert snap.desired == 1
        assert snap.ready == 0

    def test_scaled_to_zero(self) -> None:
        snap = deployment_snapshot({"metadata": {"name": "web"}, "spec": {"replicas": 0}})
        assert snap.desired == 0


class TestOtherWorkloads:
    def test_daemonset_uses_scheduled_counts(self) -> None:
        snap = daemonset_snapshot(
            {
                "metadata": {"name": "agent"},
                "status": {"desiredNumberScheduled": 5, "numberReady": 4},
            }
        )
        assert (snap.desired, snap.ready) == (5, 4)

    def test_job_counts(self) -> None:
        snap = job_snapshot(
            {
                "metadata": {"name": "migrate"},
                "spec": {},
                "status": {"failed": 2, "active": 1},
            }
        )
        assert snap.kind == WorkloadKind.JOB
        assert (snap.succeeded, snap.failed, snap.active) == (0, 2, 1)


class TestPodSnapshot:
    RAW = {
        "metadata": {
            "name": "web-7d9f8b6c5-abcde",
            "creationTimestamp": "2024-05-01T12:00:00Z",
            "ownerReferences": [
                {"kind": "ReplicaSet", "name": "web-7d9f8b6c5", "controller": True}
            ],
        },
        "spec": {"nodeName": "node-1", "containers": [{"name": "app"}, {"name": "proxy"}]},
        "status": {
            "phase": "Running",
            "conditions": [{"type": "Ready", "status": "False"}],
            "initContainerStatuses": [
                {"name": "init", "state": {"terminated": {"reason": "Completed", "exitCode": 0}}}
            ],
            "containerStatuses": [
                {
                    "name": "app",
                    "image": "registry.local/web:1.4.0",
                    "restartCount": 4,
                    "state": {
                        "waiting": {
                            "reason": "CrashLoopBackOff",
                            "message": "back-off 40s restarting failed container",
                        }
                    },
                },
                {"name": "proxy", "ready": True, "state": {"running": {}}},
            ],
        },
    }

    def test_pod_fields(self) -> None:
        snap = pod_snapshot(self.RAW)

        assert snap.kind == WorkloadKind.POD
        assert snap.phase == "Running"
        assert not snap.pod_ready
        assert snap.owner_kind == "ReplicaSet"
        assert snap.owner_name == "web-7d9f8b6c5"
        assert snap.node == "node-1"
        assert snap.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        assert (snap.desired, snap.ready) == (2, 1)
        assert snap.restarts == 4

    def test_container_states(self) -> None:
        init, app, proxy = pod_snapshot(self.RAW).containers

        assert init.init and init.state == ContainerState.TERMINATED
        assert init.exit_code == 0
        assert app.state == ContainerState.WAITING
        assert app.reason == "CrashLoopBackOff"
        assert app.image == "registry.local/web:1.4.0"
        assert "back-off" in app.message
        assert proxy.state == ContainerState.RUNNING
        assert proxy.ready

    def test_bare_pod(self) -> None:
        snap = pod_snapshot({"metadata": {"name": "debug"}})
        assert snap.phase == "Unknown"
        assert snap.owner_kind == ""
        assert snap.containers == ()


class TestEventInfo:
    def test_prefers_last_timestamp(self) -> None:
        ev = event_info(
            {
                "type": "Warning",
                "reason": "Failed",
                "message": "Failed to pull image \"web:bad\"\n",
                "count": 3,
                "lastTimestamp": "2024-05-01T12:05:00Z",
                "metadata": {"creationTimestamp": "2024-05-01T12:00:00Z"},
            }
        )
        assert ev.message == "Failed to pull image \"web:bad\""
        assert ev.count == 3
        assert ev.last_seen == datetime(2024, 5, 1, 12, 5, tzinfo=UTC)

    def test_defaults(self) -> None:
        ev = event_info({"reason": "Scheduled"})
        assert ev.count == 1
        assert ev.last_seen is None
