"""Tests for the release execution supervisor."""

from __future__ import annotations

import asyncio
import time

import pytest

from helmguard.infra.k8s.controller import ClusterAccessError
from helmguard.release.errors import (
    ConfirmationFailure,
    NamespaceError,
    PackageManagerError,
    ReadinessTimeout,
    ReleaseError,
    WatcherTerminalFailure,
)
from helmguard.release.models import ActionKind, ReleaseDescriptor, WatchSettings
from helmguard.release.supervisor import ReleaseSupervisor
from tests.fixtures.cluster import (
    FakeClusterAccessor,
    FakePackageManager,
    deployment,
    healthy_web,
    pod,
    waiting,
)


def _descriptor(**overrides: object) -> ReleaseDescriptor:
    fields: dict[str, object] = {
        "name": "web",
        "namespace": "prod",
        "chart": "./charts/web",
        "timeout": 30,
    }
    fields.update(overrides)
    return ReleaseDescriptor(**fields)  # type: ignore[arg-type]


def _image_pull_pod():
    return pod(
        "web-7d9f8b6c5-abcde",
        phase="Pending",
        ready=False,
        containers=(
            waiting("app", "ErrImagePull", 'pull access denied for "registry.local/web:9.9"'),
        ),
    )


class TestActionResolution:
    """Tests for namespace handling and install/upgrade selection."""

    async def test_install_reaching_ready_returns_install(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor(
            [
                [deployment(ready=0)],
                [deployment(ready=1), pod("web-7d9f8b6c5-0")],
                [deployment(ready=2), pod("web-7d9f8b6c5-0"), pod("web-7d9f8b6c5-1")],
                healthy_web(3),
            ]
        )
        package_manager = FakePackageManager(accessor, delay=0.05)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        result = await supervisor.execute(_descriptor())

        assert result.action == ActionKind.INSTALL
        assert result.release == "web"
        assert result.namespace == "prod"
        assert result.revision == 1
        assert result.resources == {"Deployment": 1, "Service": 1}
        assert package_manager.actions == [ActionKind.INSTALL]

    async def test_second_identical_run_upgrades(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([healthy_web()])
        package_manager = FakePackageManager(accessor)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        first = await supervisor.execute(_descriptor())
        second = await supervisor.execute(_descriptor())

        assert first.action == ActionKind.INSTALL
        assert second.action == ActionKind.UPGRADE
        assert package_manager.actions == [ActionKind.INSTALL, ActionKind.UPGRADE]

    async def test_explicit_action_wins(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([healthy_web()], releases=(("prod", "web"),))
        package_manager = FakePackageManager(accessor)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        result = await supervisor.execute(_descriptor(chart="", revision=2), ActionKind.ROLLBACK)

        assert result.action == ActionKind.ROLLBACK
        assert package_manager.calls[0][1].revision == 2

    async def test_missing_namespace_without_creation(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor(namespaces=())
        package_manager = FakePackageManager(accessor)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        with pytest.raises(NamespaceError) as excinfo:
            await supervisor.execute(_descriptor())
        assert package_manager.calls == []
        assert excinfo.value.report is not None
        assert excinfo.value.details is not None
        assert excinfo.value.details.startswith("Create it first")
        assert "No pods found for release web in namespace prod" in excinfo.value.details

    async def test_missing_namespace_is_created(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([healthy_web()], namespaces=())
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        await supervisor.execute(_descriptor(create_namespace=True))

        assert accessor.created_namespaces == ["prod"]

    async def test_existing_namespace_is_not_recreated(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor([healthy_web()])
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        await supervisor.execute(_descriptor(create_namespace=True))

        assert accessor.created_namespaces == []

    async def test_chart_required_for_install(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor()
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        with pytest.raises(ReleaseError, match="chart is required") as excinfo:
            await supervisor.execute(_descriptor(chart=""))
        assert excinfo.value.report is not None

    async def test_release_lookup_failure(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor()

        async def broken(namespace: str, release: str) -> bool:
            raise ClusterAccessError("forbidden")

        accessor.release_exists = broken  # type: ignore[method-assign]
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        with pytest.raises(NamespaceError) as excinfo:
            await supervisor.execute(_descriptor())
        assert excinfo.value.reason == "ClusterAccess"
        assert excinfo.value.details is not None
        assert "No pods found" in excinfo.value.details


class TestRace:
    """Tests for the concurrent helm / watcher / deadline race."""

    async def test_image_pull_failure_fails_fast_with_report(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor([[deployment(ready=0), _image_pull_pod()]])
        package_manager = FakePackageManager(accessor, delay=60)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        started = time.monotonic()
        with pytest.raises(WatcherTerminalFailure) as excinfo:
            await supervisor.execute(_descriptor(timeout=600))
        elapsed = time.monotonic() - started

        assert elapsed < 5
        assert package_manager.cancelled
        error = excinfo.value
        assert error.reason == "ErrImagePull"
        assert error.report is not None
        assert error.details is not None
        assert "container app" in error.details
        assert 'pull access denied for "registry.local/web:9.9"' in error.details

    async def test_watcher_failure_beats_pending_helm_success(
        self, fast_settings: WatchSettings
    ) -> None:
        crash = pod(
            "web-7d9f8b6c5-abcde",
            ready=False,
            containers=(waiting("app", "CrashLoopBackOff", "back-off 10s"),),
        )
        accessor = FakeClusterAccessor([[crash]])
        package_manager = FakePackageManager(accessor, delay=0.5)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        with pytest.raises(WatcherTerminalFailure):
            await supervisor.execute(_descriptor())
        assert package_manager.cancelled
        assert ("prod", "web") not in accessor.releases

    async def test_terminal_state_at_helm_success_fails_closed(self) -> None:
        # The watcher never gets to sweep; only the final sweep sees the failure
        settings = WatchSettings(grace=60, interval=60, poll_interval=0.01)
        accessor = FakeClusterAccessor([[_image_pull_pod()]])
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), settings)

        with pytest.raises(WatcherTerminalFailure) as excinfo:
            await supervisor.execute(_descriptor())
        assert excinfo.value.reason == "ErrImagePull"

    async def test_package_manager_error_is_reported(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor([[deployment(ready=0)]])
        error = PackageManagerError(
            "helm install failed for release web",
            "Error: INSTALLATION FAILED: chart not found",
            stderr="Error: INSTALLATION FAILED: chart not found",
            reason="Error: INSTALLATION FAILED: chart not found",
        )
        supervisor = ReleaseSupervisor(
            accessor, FakePackageManager(accessor, error=error), fast_settings
        )

        with pytest.raises(PackageManagerError) as excinfo:
            await supervisor.execute(_descriptor())

        assert excinfo.value is error
        assert error.report is not None
        assert error.details is not None
        assert error.details.startswith("Error: INSTALLATION FAILED: chart not found")
        assert "No pods found for release web" in error.details

    async def test_deadline_gives_timeout_with_status_lines(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor([[deployment(ready=1)]])
        package_manager = FakePackageManager(accessor, delay=60)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        started = time.monotonic()
        with pytest.raises(ReadinessTimeout) as excinfo:
            await supervisor.execute(_descriptor(timeout=1))
        elapsed = time.monotonic() - started

        assert 0.9 <= elapsed < 1.5
        assert package_manager.cancelled
        assert excinfo.value.status_lines == ["Deployment/web: 1/3 ready"]
        assert excinfo.value.details is not None
        assert "Deployment/web: 1/3 ready" in excinfo.value.details

    async def test_confirmation_failure_after_helm_success(
        self, fast_settings: WatchSettings
    ) -> None:
        # Pods look fine to the watcher but the deployment never reaches 3/3
        accessor = FakeClusterAccessor([[deployment(ready=2), pod()]])
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        with pytest.raises(ConfirmationFailure) as excinfo:
            await supervisor.execute(_descriptor(timeout=1))

        assert excinfo.value.status_lines == ["Deployment/web: 2/3 ready"]
        assert isinstance(excinfo.value.__cause__, ReadinessTimeout)

    async def test_no_wait_skips_health_checks(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([[_image_pull_pod()]])
        package_manager = FakePackageManager(accessor)
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        result = await supervisor.execute(_descriptor(wait=False))

        assert result.action == ActionKind.INSTALL
        assert accessor.snapshot_calls == 0

    async def test_unexpected_task_error_propagates(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([healthy_web()])
        package_manager = FakePackageManager(accessor)

        async def explode(action: ActionKind, descriptor: ReleaseDescriptor) -> None:
            raise RuntimeError("bug")

        package_manager.run = explode  # type: ignore[method-assign,assignment]
        supervisor = ReleaseSupervisor(accessor, package_manager, fast_settings)

        with pytest.raises(RuntimeError, match="bug"):
            await asyncio.wait_for(supervisor.execute(_descriptor()), timeout=5)


class TestTimeBudget:
    """Tests that a run never outlives ``descriptor.timeout``."""

    @pytest.fixture
    def settings(self) -> WatchSettings:
        # Default termination grace and pending grace, fast polling
        return WatchSettings(grace=0.01, interval=0.01, poll_interval=0.05)

    async def test_confirmation_shares_the_timeout(self, settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([[deployment(ready=2), pod()]])
        package_manager = FakePackageManager(accessor, delay=0.3)
        supervisor = ReleaseSupervisor(accessor, package_manager, settings)

        started = time.monotonic()
        with pytest.raises(ConfirmationFailure) as excinfo:
            await supervisor.execute(_descriptor(timeout=1))
        elapsed = time.monotonic() - started

        assert elapsed < 1.25
        assert isinstance(excinfo.value.__cause__, ReadinessTimeout)

    async def test_slow_helm_times_out_at_the_timeout(self, settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([[deployment(ready=1)]])
        package_manager = FakePackageManager(accessor, delay=60)
        supervisor = ReleaseSupervisor(accessor, package_manager, settings)

        started = time.monotonic()
        with pytest.raises(ReadinessTimeout):
            await supervisor.execute(_descriptor(timeout=1))
        elapsed = time.monotonic() - started

        assert elapsed < 1.25
        assert package_manager.cancelled

    async def test_helm_timeout_is_reported_as_readiness_timeout(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor([[deployment(ready=1)]])
        error = PackageManagerError(
            "helm upgrade failed for release web",
            "Error: UPGRADE FAILED: context deadline exceeded",
            stderr="Error: UPGRADE FAILED: context deadline exceeded",
            reason="Error: UPGRADE FAILED: context deadline exceeded",
        )
        supervisor = ReleaseSupervisor(
            accessor, FakePackageManager(accessor, error=error), fast_settings
        )

        with pytest.raises(ReadinessTimeout) as excinfo:
            await supervisor.execute(_descriptor())

        timeout = excinfo.value
        assert timeout.status_lines == ["Deployment/web: 1/3 ready"]
        assert timeout.details is not None
        assert timeout.details.startswith("Error: UPGRADE FAILED: context deadline exceeded")
        assert "Deployment/web: 1/3 ready" in timeout.details


class TestStatus:
    """Tests for the read-only release status."""

    async def test_ready_release(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor([healthy_web()], releases=(("prod", "web"),))
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        status = await supervisor.status("web", "prod")

        assert status.ready
        assert status.record.status == "deployed"
        assert status.report is None
        assert "Deployment/web: 3/3 ready" in status.readiness.lines

    async def test_not_ready_release_carries_report(
        self, fast_settings: WatchSettings
    ) -> None:
        accessor = FakeClusterAccessor(
            [[deployment(ready=0), _image_pull_pod()]], releases=(("prod", "web"),)
        )
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        status = await supervisor.status("web", "prod")

        assert not status.ready
        assert status.report is not None
        assert status.report.reason == "ErrImagePull"
        text = status.report.render()
        assert "Deployment/web: 0/3 ready" in text
        assert 'pull access denied for "registry.local/web:9.9"' in text

    async def test_unknown_release(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor()
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        with pytest.raises(PackageManagerError, match="helm status failed"):
            await supervisor.status("web", "prod")

    async def test_unreadable_workloads(self, fast_settings: WatchSettings) -> None:
        accessor = FakeClusterAccessor(releases=(("prod", "web"),))
        accessor.snapshot_error = ClusterAccessError("forbidden")
        supervisor = ReleaseSupervisor(accessor, FakePackageManager(accessor), fast_settings)

        with pytest.raises(NamespaceError) as excinfo:
            await supervisor.status("web", "prod")
        assert excinfo.value.reason == "ClusterAccess"
