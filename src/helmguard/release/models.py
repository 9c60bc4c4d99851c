"""Domain models for release execution."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import yaml  # type: ignore[import-untyped]
from loguru import logger

from helmguard.config.constants import DEFAULT_CONSTANTS


class ActionKind(str, Enum):
    """Package-manager action chosen for a run."""

    INSTALL = "install"
    UPGRADE = "upgrade"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Everything needed to run one release action.

    Value overlays are passed to helm untouched and in order, so later
    ``set_values`` entries win over earlier ones.

    Attributes:
        name: Release name, unique within the namespace
        namespace: Target namespace
        chart: Chart reference; may be empty for a rollback
        values_files: values.yaml overlays
        set_values: ``key=value`` overrides
        set_literal_values: ``key=value`` overrides kept as strings
        repo_url: Chart repository URL
        version: Chart version constraint
        atomic: Let helm undo a failed install or upgrade
        wait: Wait for workloads to become healthy
        timeout: Overall budget in seconds
        history_max: Revisions kept by helm on upgrade and rollback
        create_namespace: Create the namespace when it is missing
        force: Replace resources instead of patching them
        revision: Rollback target (0 means the previous revision)
    """

    name: str
    namespace: str = DEFAULT_CONSTANTS.DEFAULT_NAMESPACE
    chart: str = ""
    values_files: tuple[str, ...] = ()
    set_values: tuple[str, ...] = ()
    set_literal_values: tuple[str, ...] = ()
    repo_url: str | None = None
    version: str | None = None
    atomic: bool = False
    wait: bool = True
    timeout: int = DEFAULT_CONSTANTS.DEFAULT_TIMEOUT_SECONDS
    history_max: int = DEFAULT_CONSTANTS.DEFAULT_HISTORY_MAX
    create_namespace: bool = False
    force: bool = False
    revision: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("release name is required")
        if len(self.name) > DEFAULT_CONSTANTS.RELEASE_NAME_MAX_LENGTH:
            raise ValueError(
                f"release name {self.name!r} is longer than "
                f"{DEFAULT_CONSTANTS.RELEASE_NAME_MAX_LENGTH} characters"
            )
        if not DEFAULT_CONSTANTS.RELEASE_NAME_PATTERN.match(self.name):
            raise ValueError(
                f"release name {self.name!r} must be lowercase alphanumerics, "
                "'-' or '.', starting and ending with an alphanumeric"
            )
        if not self.namespace:
            raise ValueError("namespace is required")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.history_max < 0:
            raise ValueError("history_max cannot be negative")
        if self.revision < 0:
            raise ValueError("revision cannot be negative")


@dataclass(frozen=True)
class WatchSettings:
    """Timings for health verification, all in seconds."""

    grace: float = DEFAULT_CONSTANTS.WATCH_GRACE_SECONDS
    interval: float = DEFAULT_CONSTANTS.WATCH_INTERVAL_SECONDS
    poll_interval: float = DEFAULT_CONSTANTS.READINESS_POLL_SECONDS
    pending_grace: float = DEFAULT_CONSTANTS.PENDING_GRACE_SECONDS
    termination_grace: float = DEFAULT_CONSTANTS.HELM_TERMINATION_GRACE_SECONDS
    events_per_pod: int = DEFAULT_CONSTANTS.EVENTS_PER_POD


@dataclass
class ReleaseRecord:
    """Release record as reported by helm.

    Attributes:
        name: Release name
        namespace: Kubernetes namespace
        revision: Release revision number
        status: Release status (deployed, failed, pending-install, ...)
        chart_name: Chart name from the chart metadata
        chart_version: Chart version from the chart metadata
        app_version: Application version from the chart metadata
        manifest: Rendered manifest stream
        notes: Rendered NOTES.txt of the chart
    """

    name: str
    namespace: str
    revision: int = 0
    status: str = ""
    chart_name: str = ""
    chart_version: str = ""
    app_version: str = ""
    manifest: str = ""
    notes: str = ""

    @classmethod
    def from_helm_json(cls, data: dict[str, Any]) -> ReleaseRecord:
        """Build a record from ``helm ... -o json`` output."""
        info = data.get("info") or {}
        metadata = (data.get("chart") or {}).get("metadata") or {}
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            revision=int(data.get("version") or 0),
            status=info.get("status", ""),
            chart_name=metadata.get("name", ""),
            chart_version=metadata.get("version", ""),
            app_version=metadata.get("appVersion", "") or "",
            manifest=data.get("manifest", "") or "",
            notes=info.get("notes", "") or "",
        )


def count_manifest_resources(manifest: str) -> dict[str, int]:
    """Count rendered resources per kind.

    Args:
        manifest: Multi-document YAML as rendered by helm

    Returns:
        Mapping of kind to count, sorted by kind
    """
    counts: Counter[str] = Counter()
    try:
        for doc in yaml.safe_load_all(manifest):
            if isinstance(doc, dict) and doc.get("kind"):
                counts[doc["kind"]] += 1
    except yaml.YAMLError as e:
        logger.warning(f"Could not parse rendered manifest: {e}")
    return dict(sorted(counts.items()))


@dataclass
class ReleaseResult:
    """Outcome of a successful run."""

    release: str
    namespace: str
    action: ActionKind
    revision: int = 0
    status: str = ""
    chart_name: str = ""
    chart_version: str = ""
    resources: dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0

    @classmethod
    def from_record(
        cls,
        record: ReleaseRecord,
        action: ActionKind,
        elapsed: float,
    ) -> ReleaseResult:
        return cls(
            release=record.name,
            namespace=record.namespace,
            action=action,
            revision=record.revision,
            status=record.status,
            chart_name=record.chart_name,
            chart_version=record.chart_version,
            resources=count_manifest_resources(record.manifest),
            elapsed=elapsed,
        )
