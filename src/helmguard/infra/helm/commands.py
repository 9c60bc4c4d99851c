"""Helm command abstractions.

Builds ``helm`` argument vectors for the release actions the supervisor
drives and runs them through the async CommandRunner. Chart rendering and
value merging stay inside helm; overlays are passed through verbatim.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from helmguard.config.constants import DEFAULT_CONSTANTS

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


def _overlay_args(
    value_files: Sequence[str],
    set_values: Sequence[str],
    set_literal_values: Sequence[str],
) -> list[str]:
    args: list[str] = []
    for vf in value_files:
        args.extend(["-f", str(vf)])
    for sv in set_values:
        args.extend(["--set", sv])
    for sl in set_literal_values:
        args.extend(["--set-literal", sl])
    return args


def _wait_args(*, wait: bool, atomic: bool, timeout: int) -> list[str]:
    args: list[str] = []
    if wait:
        args.extend(["--wait", "--wait-for-jobs"])
    if atomic:
        args.append("--atomic")
    args.extend(["--timeout", f"{timeout}s"])
    return args


class HelmCommands:
    """Helm-related shell commands.

    Provides operations for:
    - Release actions (install, upgrade, rollback)
    - Status queries (release status as JSON)
    """

    def __init__(
        self,
        runner: CommandRunner,
        helm_binary: str = DEFAULT_CONSTANTS.HELM_BINARY,
    ) -> None:
        """Initialize Helm commands.

        Args:
            runner: Command runner for executing helm
            helm_binary: Name or path of the helm executable
        """
        self._runner = runner
        self._helm = helm_binary

    # =========================================================================
    # Release Actions
    # =========================================================================

    async def install(
        self,
        release_name: str,
        chart: str,
        namespace: str,
        *,
        value_files: Sequence[str] = (),
        set_values: Sequence[str] = (),
        set_literal_values: Sequence[str] = (),
        repo_url: str | None = None,
        version: str | None = None,
        wait: bool = True,
        atomic: bool = False,
        timeout: int = 600,
    ) -> CommandResult:
        """Install a chart as a new release.

        Args:
            release_name: Name for the Helm release (e.g., "web")
            chart: Chart reference (path, repo/name, or name with repo_url)
            namespace: Kubernetes namespace for deployment
            value_files: values.yaml overlays, applied in order
            set_values: ``key=value`` overrides, later wins
            set_literal_values: ``key=value`` overrides kept as strings
            repo_url: Chart repository URL
            version: Chart version constraint
            wait: Whether helm waits for resources and jobs
            atomic: Whether helm purges the release on failure
            timeout: Seconds helm may spend on the operation

        Returns:
            CommandResult whose stdout is the release JSON on success

        Example:
            >>> await helm.install(
            ...     "web",
            ...     "./charts/web",
            ...     "prod",
            ...     value_files=["./overrides.yaml"],
            ... )
        """
        cmd = [
            self._helm,
            "install",
            release_name,
            chart,
            "--namespace",
            namespace,
        ]
        cmd.extend(_wait_args(wait=wait, atomic=atomic, timeout=timeout))
        cmd.extend(_overlay_args(value_files, set_values, set_literal_values))
        if repo_url:
            cmd.extend(["--repo", repo_url])
        if version:
            cmd.extend(["--version", version])
        cmd.extend(["-o", "json"])
        return await self._runner.run(cmd)

    async def upgrade(
        self,
        release_name: str,
        chart: str,
        namespace: str,
        *,
        value_files: Sequence[str] = (),
        set_values: Sequence[str] = (),
        set_literal_values: Sequence[str] = (),
        repo_url: str | None = None,
        version: str | None = None,
        wait: bool = True,
        atomic: bool = False,
        timeout: int = 600,
        history_max: int = 10,
        force: bool = False,
    ) -> CommandResult:
        """Upgrade an existing release to a new chart or values.

        Failed upgrades clean up resources they created.

        Args:
            history_max: Revisions helm keeps for the release
            force: Replace resources instead of patching them

        Other arguments match ``install()``.

        Returns:
            CommandResult whose stdout is the release JSON on success
        """
        cmd = [
            self._helm,
            "upgrade",
            release_name,
            chart,
            "--namespace",
            namespace,
        ]
        cmd.extend(_wait_args(wait=wait, atomic=atomic, timeout=timeout))
        cmd.extend(["--history-max", str(history_max), "--cleanup-on-fail"])
        if force:
            cmd.append("--force")
        cmd.extend(_overlay_args(value_files, set_values, set_literal_values))
        if repo_url:
            cmd.extend(["--repo", repo_url])
        if version:
            cmd.extend(["--version", version])
        cmd.extend(["-o", "json"])
        return await self._runner.run(cmd)

    async def rollback(
        self,
        release_name: str,
        namespace: str,
        revision: int = 0,
        *,
        wait: bool = True,
        timeout: int = 600,
        history_max: int = 10,
        force: bool = False,
    ) -> CommandResult:
        """Roll a release back to an earlier revision.

        Args:
            release_name: Name of the release to roll back
            namespace: Kubernetes namespace
            revision: Target revision (0 means the previous one)
            wait: Whether helm waits for resources and jobs
            timeout: Seconds helm may spend on the operation
            history_max: Revisions helm keeps for the release
            force: Replace resources instead of patching them

        Returns:
            CommandResult with rollback status (helm prints no JSON here)
        """
        cmd = [self._helm, "rollback", release_name]
        if revision:
            cmd.append(str(revision))
        cmd.extend(["--namespace", namespace])
        if wait:
            cmd.extend(["--wait", "--wait-for-jobs"])
        cmd.extend(["--timeout", f"{timeout}s"])
        cmd.extend(["--history-max", str(history_max), "--cleanup-on-fail"])
        if force:
            cmd.append("--force")
        return await self._runner.run(cmd)

    # =========================================================================
    # Status Queries
    # =========================================================================

    async def status(self, release_name: str, namespace: str) -> CommandResult:
        """Get the current release record as JSON.

        Args:
            release_name: Name of the release
            namespace: Kubernetes namespace

        Returns:
            CommandResult whose stdout is the release JSON on success
        """
        cmd = [
            self._helm,
            "status",
            release_name,
            "--namespace",
            namespace,
            "-o",
            "json",
        ]
        return await self._runner.run(cmd)
