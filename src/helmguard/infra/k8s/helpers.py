from __future__ import annotations

from cachetools.func import lru_cache  # type: ignore

from helmguard.config.constants import DEFAULT_CONSTANTS
from helmguard.infra.k8s.controller import ClusterAccessor


@lru_cache(maxsize=1)
def get_cluster_accessor() -> ClusterAccessor:
    """Get the shared ClusterAccessor instance.

    Returns:
        A kr8s-backed ClusterAccessor
    """
    from helmguard.infra.k8s.kr8s_controller import Kr8sController

    return Kr8sController()


def instance_selector(release: str) -> str:
    """Return the label selector matching every resource of a release."""
    return f"{DEFAULT_CONSTANTS.INSTANCE_LABEL}={release}"
