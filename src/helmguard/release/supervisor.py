"""Release execution supervisor.

Runs one helm action and decides whether the release really came up.

With ``wait`` enabled three tasks race for a single outcome slot:

- the helm action, which offers success or a package-manager error (or a
  timeout when helm gives up waiting first)
- the health watcher, which offers a terminal workload failure
- a deadline timer at ``timeout``, which offers a timeout

The first offer decides the run and every other task is cancelled (a
running helm process is terminated). A helm success must survive one last
watcher sweep and a readiness confirmation pass before it is reported.
Every failure carries a diagnostic report.

``status`` is the read-only counterpart: the current helm record plus one
readiness check, with a diagnostic report when something is not ready.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from helmguard.infra.k8s.controller import ClusterAccessError, ClusterAccessor

from .diagnostics import DiagnosticReport, DiagnosticReporter
from .errors import (
    ConfirmationFailure,
    NamespaceError,
    PackageManagerError,
    ReadinessTimeout,
    ReleaseError,
    WatcherTerminalFailure,
    WorkloadFailedError,
)
from .models import (
    ActionKind,
    ReleaseDescriptor,
    ReleaseRecord,
    ReleaseResult,
    WatchSettings,
)
from .package_manager import HelmPackageManager, PackageManager
from .readiness import ReadinessPoller, ReadinessReport
from .signals import OutcomeKind, OutcomeSignal, OutcomeSlot
from .watcher import HealthWatcher


@dataclass
class ReleaseStatus:
    """Current record and readiness of a release."""

    record: ReleaseRecord
    readiness: ReadinessReport
    report: DiagnosticReport | None = None

    @property
    def ready(self) -> bool:
        return self.readiness.ready


class ReleaseSupervisor:
    """Executes releases and verifies their health.

    Attributes:
        accessor: Cluster reads (and namespace creation)
        package_manager: Runs the helm actions
        settings: Watch timings
        reporter: Builds diagnostic reports for failures
    """

    def __init__(
        self,
        accessor: ClusterAccessor,
        package_manager: PackageManager | None = None,
        settings: WatchSettings | None = None,
        reporter: DiagnosticReporter | None = None,
    ) -> None:
        self.accessor = accessor
        self.settings = settings or WatchSettings()
        self.package_manager = package_manager or HelmPackageManager(settings=self.settings)
        self.reporter = reporter or DiagnosticReporter(accessor, self.settings)

    async def execute(
        self,
        descriptor: ReleaseDescriptor,
        action: ActionKind | None = None,
    ) -> ReleaseResult:
        """Run a release action and verify the result.

        Args:
            descriptor: What to release
            action: Force an action; by default a deployed release is
                upgraded and anything else is installed

        Returns:
            ReleaseResult of the successful run

        Raises:
            NamespaceError: Namespace missing and not creatable, or its
                release records cannot be read
            PackageManagerError: helm failed
            WatcherTerminalFailure: A workload failed while helm ran
            ReadinessTimeout: The deadline passed first
            ConfirmationFailure: helm succeeded but the workloads did not
                become ready
            ReleaseError: Anything else that stops the run
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + descriptor.timeout

        try:
            await self._ensure_namespace(descriptor)
            action = await self._resolve_action(descriptor, action)
            if action != ActionKind.ROLLBACK and not descriptor.chart:
                raise ReleaseError(
                    f"A chart is required to {action.value} release {descriptor.name}",
                    release=descriptor.name,
                    namespace=descriptor.namespace,
                    reason="MissingChart",
                )

            logger.info(
                f"Running {action.value} of {descriptor.name} in {descriptor.namespace} "
                f"(wait={descriptor.wait}, timeout={descriptor.timeout}s)"
            )

            if descriptor.wait:
                record = await self._race(descriptor, action, deadline)
                await self._confirm(descriptor, deadline)
            else:
                record = await self.package_manager.run(action, descriptor)
        except ReleaseError as e:
            await self._diagnose(e, descriptor)
            raise

        elapsed = loop.time() - started
        logger.info(f"{action.value} of {descriptor.name} succeeded in {elapsed:.1f}s")
        return ReleaseResult.from_record(record, action, elapsed)

    async def status(self, release: str, namespace: str) -> ReleaseStatus:
        """Read a release's record and check its workloads once.

        Never waits. When some resource is not ready the status carries a
        diagnostic report of the release's pods.

        Raises:
            PackageManagerError: helm cannot read the release
            NamespaceError: The release's workloads cannot be read
        """
        record = await self.package_manager.status(release, namespace)
        poller = ReadinessPoller(self.accessor, self.settings)
        try:
            readiness = await poller.check(namespace, release)
        except ClusterAccessError as e:
            raise NamespaceError(
                f"Could not read the workloads of release {release}",
                str(e),
                release=release,
                namespace=namespace,
                chart=record.chart_name,
                reason="ClusterAccess",
            ) from e

        if readiness.ready:
            logger.info(f"All {len(readiness.statuses)} resources of {release} ready")
            return ReleaseStatus(record, readiness)

        report = await self.reporter.report(
            namespace,
            release,
            chart=record.chart_name,
            reason=readiness.verdict.reason or "NotReady",
            status_lines=readiness.pending_lines,
        )
        return ReleaseStatus(record, readiness, report)

    # =========================================================================
    # Preparation
    # =========================================================================

    async def _ensure_namespace(self, descriptor: ReleaseDescriptor) -> None:
        namespace = descriptor.namespace
        try:
            if await self.accessor.namespace_exists(namespace):
                return
            if not descriptor.create_namespace:
                raise NamespaceError(
                    f"Namespace {namespace} does not exist",
                    "Create it first or enable namespace creation",
                    release=descriptor.name,
                    namespace=namespace,
                    chart=descriptor.chart,
                    reason="NamespaceNotFound",
                )
            logger.info(f"Creating namespace {namespace}")
            await self.accessor.create_namespace(namespace)
        except ClusterAccessError as e:
            raise NamespaceError(
                f"Could not prepare namespace {namespace}",
                str(e),
                release=descriptor.name,
                namespace=namespace,
                chart=descriptor.chart,
                reason="ClusterAccess",
            ) from e

    async def _resolve_action(
        self,
        descriptor: ReleaseDescriptor,
        action: ActionKind | None,
    ) -> ActionKind:
        if action is not None:
            return action
        try:
            exists = await self.accessor.release_exists(descriptor.namespace, descriptor.name)
        except ClusterAccessError as e:
            raise NamespaceError(
                f"Could not check whether release {descriptor.name} exists",
                str(e),
                release=descriptor.name,
                namespace=descriptor.namespace,
                chart=descriptor.chart,
                reason="ClusterAccess",
            ) from e
        resolved = ActionKind.UPGRADE if exists else ActionKind.INSTALL
        logger.debug(f"Release {descriptor.name} exists={exists}, using {resolved.value}")
        return resolved

    # =========================================================================
    # Race
    # =========================================================================

    async def _race(
        self,
        descriptor: ReleaseDescriptor,
        action: ActionKind,
        deadline: float,
    ) -> ReleaseRecord:
        slot = OutcomeSlot()
        cancelled = asyncio.Event()
        watcher = HealthWatcher(
            self.accessor, descriptor.namespace, descriptor.name, self.settings
        )
        tasks = [
            asyncio.create_task(
                self._run_action(action, descriptor, watcher, slot), name="helm-action"
            ),
            asyncio.create_task(watcher.run(slot, cancelled), name="health-watcher"),
            asyncio.create_task(self._run_deadline(slot, deadline), name="deadline"),
        ]

        try:
            outcome = await self._await_outcome(slot, tasks)
        finally:
            cancelled.set()
            for task in tasks:
                task.cancel()
            for task, result in zip(
                tasks, await asyncio.gather(*tasks, return_exceptions=True), strict=True
            ):
                if isinstance(result, Exception):
                    logger.debug(f"Task {task.get_name()} ended with {result!r}")

        return await self._settle(outcome, descriptor)

    @staticmethod
    async def _await_outcome(
        slot: OutcomeSlot,
        tasks: list[asyncio.Task[object]],
    ) -> OutcomeSignal:
        pending = set(tasks)
        while True:
            outcome = slot.peek()
            if outcome is not None:
                return outcome
            if not pending:
                raise RuntimeError("all release tasks finished without an outcome")
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if slot.decided:
                    break
                error = task.exception()
                if error is not None:
                    raise error

    async def _run_action(
        self,
        action: ActionKind,
        descriptor: ReleaseDescriptor,
        watcher: HealthWatcher,
        slot: OutcomeSlot,
    ) -> None:
        try:
            record = await self.package_manager.run(action, descriptor)
        except PackageManagerError as e:
            if e.is_timeout:
                logger.info(f"helm gave up waiting: {e.reason}")
                slot.offer(OutcomeSignal.timeout(e))
            else:
                slot.offer(OutcomeSignal.package_manager_error(e))
            return

        # A failure the watcher has not swept yet still wins over success
        try:
            verdict = await watcher.check_once()
        except ClusterAccessError as e:
            logger.warning(f"Final health sweep failed: {e}")
        else:
            if verdict.is_terminal:
                slot.offer(OutcomeSignal.watcher_failure(verdict))
                return
        slot.offer(OutcomeSignal.success(record))

    @staticmethod
    async def _run_deadline(slot: OutcomeSlot, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        await asyncio.sleep(max(deadline - loop.time(), 0))
        slot.offer(OutcomeSignal.timeout())

    async def _settle(
        self,
        outcome: OutcomeSignal,
        descriptor: ReleaseDescriptor,
    ) -> ReleaseRecord:
        if outcome.kind == OutcomeKind.SUCCESS and outcome.record is not None:
            return outcome.record

        if outcome.kind == OutcomeKind.PACKAGE_MANAGER_ERROR and outcome.error is not None:
            raise outcome.error

        if outcome.kind == OutcomeKind.WATCHER_TERMINAL_FAILURE and outcome.verdict is not None:
            verdict = outcome.verdict
            raise WatcherTerminalFailure(
                f"Release {descriptor.name} failed: {verdict.describe()}",
                release=descriptor.name,
                namespace=descriptor.namespace,
                chart=descriptor.chart,
                reason=verdict.reason,
                verdict=verdict,
            )

        raise ReadinessTimeout(
            f"Release {descriptor.name} did not become ready within {descriptor.timeout}s",
            outcome.error.details if outcome.error else None,
            release=descriptor.name,
            namespace=descriptor.namespace,
            chart=descriptor.chart,
            reason="Timeout",
            status_lines=await self._final_status_lines(descriptor),
        )

    async def _final_status_lines(self, descriptor: ReleaseDescriptor) -> list[str]:
        poller = ReadinessPoller(self.accessor, self.settings)
        try:
            report = await poller.check(descriptor.namespace, descriptor.name)
        except ClusterAccessError as e:
            logger.warning(f"Could not read final readiness state: {e}")
            return []
        return report.pending_lines

    # =========================================================================
    # Confirmation & Diagnostics
    # =========================================================================

    async def _confirm(self, descriptor: ReleaseDescriptor, deadline: float) -> None:
        poller = ReadinessPoller(self.accessor, self.settings)
        try:
            await poller.poll_until_ready(descriptor.namespace, descriptor.name, deadline)
        except (ReadinessTimeout, WorkloadFailedError) as e:
            raise ConfirmationFailure(
                f"Release {descriptor.name} was applied but did not become ready: "
                f"{e.message}",
                release=descriptor.name,
                namespace=descriptor.namespace,
                chart=descriptor.chart,
                reason=e.reason,
                status_lines=e.status_lines,
            ) from e

    async def _diagnose(self, error: ReleaseError, descriptor: ReleaseDescriptor) -> None:
        error.release = error.release or descriptor.name
        error.namespace = error.namespace or descriptor.namespace
        error.chart = error.chart or descriptor.chart
        report = await self.reporter.report(
            descriptor.namespace,
            descriptor.name,
            chart=descriptor.chart,
            reason=error.reason or error.message,
            status_lines=error.status_lines,
        )
        error.attach_report(report)
