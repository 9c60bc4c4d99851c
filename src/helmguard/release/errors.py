"""Release error taxonomy.

Every error carries the release coordinates and, once the supervisor has
run the diagnostic reporter, the rendered report as ``details`` so the CLI
can print it below the message.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .classifier import HealthVerdict
    from .diagnostics import DiagnosticReport


class ReleaseError(Exception):
    """Raised when a release operation fails."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        *,
        release: str = "",
        namespace: str = "",
        chart: str = "",
        reason: str = "",
        status_lines: Sequence[str] = (),
    ):
        self.message = message
        self.details = details
        self.release = release
        self.namespace = namespace
        self.chart = chart
        self.reason = reason
        self.status_lines = list(status_lines)
        self.report: DiagnosticReport | None = None
        super().__init__(message)

    def attach_report(self, report: DiagnosticReport) -> None:
        """Attach a diagnostic report and append its text to the details."""
        self.report = report
        rendered = report.render()
        self.details = f"{self.details}\n\n{rendered}" if self.details else rendered


class NamespaceError(ReleaseError):
    """The target namespace cannot be prepared.

    Raised when the namespace is missing and may not be created, when
    creating it fails, or when the release records in it cannot be read.
    """


#: Fragments of helm stderr printed when its own --timeout expires
HELM_TIMEOUT_MARKERS: tuple[str, ...] = (
    "context deadline exceeded",
    "timed out waiting for the condition",
)


class PackageManagerError(ReleaseError):
    """The helm action returned an error."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        *,
        stderr: str = "",
        returncode: int | None = None,
        **kwargs,  # type: ignore[no-untyped-def]
    ):
        super().__init__(message, details, **kwargs)
        self.stderr = stderr
        self.returncode = returncode

    @property
    def is_timeout(self) -> bool:
        """True if helm gave up because its own timeout expired."""
        stderr = self.stderr.lower()
        return any(marker in stderr for marker in HELM_TIMEOUT_MARKERS)


class WatcherTerminalFailure(ReleaseError):
    """The health watcher saw a workload in an unrecoverable state."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        *,
        verdict: HealthVerdict | None = None,
        **kwargs,  # type: ignore[no-untyped-def]
    ):
        super().__init__(message, details, **kwargs)
        self.verdict = verdict


class ReadinessTimeout(ReleaseError):
    """The deadline passed before every workload was ready."""


class WorkloadFailedError(ReleaseError):
    """The readiness poller found a workload that cannot become ready."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        *,
        verdict: HealthVerdict | None = None,
        **kwargs,  # type: ignore[no-untyped-def]
    ):
        super().__init__(message, details, **kwargs)
        self.verdict = verdict


class ConfirmationFailure(ReleaseError):
    """Helm reported success but the confirmation pass did not."""
