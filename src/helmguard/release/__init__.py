"""Release execution and health verification.

Usage:
    from helmguard.infra.k8s import get_cluster_accessor, run_sync
    from helmguard.release import ReleaseDescriptor, ReleaseSupervisor

    supervisor = ReleaseSupervisor(get_cluster_accessor())
    result = run_sync(
        supervisor.execute(ReleaseDescriptor(name="web", namespace="prod", chart="./web"))
    )
"""

from .classifier import HealthVerdict, VerdictKind, classify, classify_all
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
from .readiness import ReadinessPoller, ReadinessReport, evaluate_readiness
from .signals import OutcomeKind, OutcomeSignal, OutcomeSlot
from .supervisor import ReleaseStatus, ReleaseSupervisor
from .watcher import HealthWatcher

__all__ = [
    # Supervisor
    "ReleaseSupervisor",
    "ReleaseStatus",
    "ActionKind",
    "ReleaseDescriptor",
    "ReleaseRecord",
    "ReleaseResult",
    "WatchSettings",
    # Components
    "DiagnosticReport",
    "DiagnosticReporter",
    "HealthWatcher",
    "HelmPackageManager",
    "PackageManager",
    "ReadinessPoller",
    "ReadinessReport",
    "evaluate_readiness",
    "HealthVerdict",
    "VerdictKind",
    "classify",
    "classify_all",
    "OutcomeKind",
    "OutcomeSignal",
    "OutcomeSlot",
    # Errors
    "ReleaseError",
    "NamespaceError",
    "PackageManagerError",
    "WatcherTerminalFailure",
    "ReadinessTimeout",
    "WorkloadFailedError",
    "ConfirmationFailure",
]
