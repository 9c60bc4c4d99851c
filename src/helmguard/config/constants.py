"""Deployment constants and defaults.

This module centralizes the magic strings and default values used across
release execution and health verification.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class DeploymentConstants:
    """Constants for Helm release execution.

    All attributes are class-level and immutable.
    """

    # Kubernetes/Helm identifiers
    DEFAULT_NAMESPACE: str = "default"
    INSTANCE_LABEL: str = "app.kubernetes.io/instance"
    HELM_BINARY: str = "helm"

    # Helm operation defaults
    DEFAULT_TIMEOUT_SECONDS: int = 600
    DEFAULT_HISTORY_MAX: int = 10

    # Health verification timings (seconds)
    WATCH_GRACE_SECONDS: float = 5.0
    WATCH_INTERVAL_SECONDS: float = 3.0
    READINESS_POLL_SECONDS: float = 5.0
    PENDING_GRACE_SECONDS: float = 300.0
    HELM_TERMINATION_GRACE_SECONDS: float = 30.0
    EVENTS_PER_POD: int = 5

    # Configuration file looked up in the working directory
    CONFIG_FILE_NAME: str = "helmguard.yaml"

    # DNS-1123 label, the rule helm applies to release names
    RELEASE_NAME_PATTERN: re.Pattern[str] = re.compile(
        r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
    )
    RELEASE_NAME_MAX_LENGTH: int = 53


DEFAULT_CONSTANTS = DeploymentConstants()
