"""Package-manager adapter.

Turns a ReleaseDescriptor into helm invocations and helm's JSON output
into ReleaseRecords. Every failure surfaces as a PackageManagerError
carrying helm's stderr.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable

from loguru import logger

from helmguard.infra.helm import CommandResult, CommandRunner, HelmCommands

from .errors import PackageManagerError
from .models import ActionKind, ReleaseDescriptor, ReleaseRecord, WatchSettings


def _coordinates(descriptor: ReleaseDescriptor) -> dict[str, str]:
    return {
        "release": descriptor.name,
        "namespace": descriptor.namespace,
        "chart": descriptor.chart,
    }


class PackageManager(ABC):
    """Release actions the supervisor can run.

    Implementations must be cancellable: cancelling the awaiting task stops
    the underlying operation.
    """

    @abstractmethod
    async def install(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        """Install a new release."""
        ...

    @abstractmethod
    async def upgrade(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        """Upgrade an existing release."""
        ...

    @abstractmethod
    async def rollback(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        """Roll a release back to ``descriptor.revision``."""
        ...

    @abstractmethod
    async def status(self, release: str, namespace: str) -> ReleaseRecord:
        """Read the current record of a release."""
        ...

    async def run(self, action: ActionKind, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        """Dispatch to the method for ``action``."""
        if action == ActionKind.INSTALL:
            return await self.install(descriptor)
        if action == ActionKind.UPGRADE:
            return await self.upgrade(descriptor)
        return await self.rollback(descriptor)


class HelmPackageManager(PackageManager):
    """PackageManager backed by the helm CLI."""

    def __init__(
        self,
        helm: HelmCommands | None = None,
        settings: WatchSettings | None = None,
    ) -> None:
        settings = settings or WatchSettings()
        self.helm = helm or HelmCommands(
            CommandRunner(termination_grace=settings.termination_grace)
        )

    async def install(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        result = await self._invoke(
            ActionKind.INSTALL.value,
            self.helm.install(
                descriptor.name,
                descriptor.chart,
                descriptor.namespace,
                value_files=descriptor.values_files,
                set_values=descriptor.set_values,
                set_literal_values=descriptor.set_literal_values,
                repo_url=descriptor.repo_url,
                version=descriptor.version,
                wait=descriptor.wait,
                atomic=descriptor.atomic,
                timeout=descriptor.timeout,
            ),
            **_coordinates(descriptor),
        )
        return self._parse_record(result, descriptor.name, descriptor.namespace)

    async def upgrade(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        result = await self._invoke(
            ActionKind.UPGRADE.value,
            self.helm.upgrade(
                descriptor.name,
                descriptor.chart,
                descriptor.namespace,
                value_files=descriptor.values_files,
                set_values=descriptor.set_values,
                set_literal_values=descriptor.set_literal_values,
                repo_url=descriptor.repo_url,
                version=descriptor.version,
                wait=descriptor.wait,
                atomic=descriptor.atomic,
                timeout=descriptor.timeout,
                history_max=descriptor.history_max,
                force=descriptor.force,
            ),
            **_coordinates(descriptor),
        )
        return self._parse_record(result, descriptor.name, descriptor.namespace)

    async def rollback(self, descriptor: ReleaseDescriptor) -> ReleaseRecord:
        await self._invoke(
            ActionKind.ROLLBACK.value,
            self.helm.rollback(
                descriptor.name,
                descriptor.namespace,
                descriptor.revision,
                wait=descriptor.wait,
                timeout=descriptor.timeout,
                history_max=descriptor.history_max,
                force=descriptor.force,
            ),
            **_coordinates(descriptor),
        )
        # helm rollback has no JSON output, read the new revision back
        return await self.status(descriptor.name, descriptor.namespace)

    async def status(self, release: str, namespace: str) -> ReleaseRecord:
        result = await self._invoke(
            "status",
            self.helm.status(release, namespace),
            release=release,
            namespace=namespace,
        )
        return self._parse_record(result, release, namespace)

    async def _invoke(
        self,
        verb: str,
        call: Awaitable[CommandResult],
        *,
        release: str,
        namespace: str,
        chart: str = "",
    ) -> CommandResult:
        try:
            result = await call
        except FileNotFoundError as e:
            raise PackageManagerError(
                "helm executable not found",
                str(e),
                release=release,
                namespace=namespace,
                chart=chart,
                reason="HelmNotFound",
            ) from e

        if not result.success:
            stderr = result.stderr.strip()
            raise PackageManagerError(
                f"helm {verb} failed for release {release}",
                stderr or None,
                release=release,
                namespace=namespace,
                chart=chart,
                reason=stderr.splitlines()[-1] if stderr else f"exit code {result.returncode}",
                stderr=stderr,
                returncode=result.returncode,
            )
        return result

    @staticmethod
    def _parse_record(result: CommandResult, release: str, namespace: str) -> ReleaseRecord:
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            logger.warning(f"helm returned no release JSON for {release}")
            return ReleaseRecord(name=release, namespace=namespace)
        if not isinstance(data, dict):
            return ReleaseRecord(name=release, namespace=namespace)

        record = ReleaseRecord.from_helm_json(data)
        record.name = record.name or release
        record.namespace = record.namespace or namespace
        return record
