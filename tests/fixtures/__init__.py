"""Shared pytest fixtures and test doubles."""

import pytest

from helmguard.release.models import WatchSettings

from .cluster import FakeClusterAccessor, FakePackageManager


@pytest.fixture
def fast_settings() -> WatchSettings:
    """Watch timings scaled down to milliseconds."""
    return WatchSettings(
        grace=0.01,
        interval=0.01,
        poll_interval=0.01,
        pending_grace=300.0,
        termination_grace=0.5,
        events_per_pod=5,
    )


@pytest.fixture
def accessor() -> FakeClusterAccessor:
    return FakeClusterAccessor()


@pytest.fixture
def package_manager(accessor: FakeClusterAccessor) -> FakePackageManager:
    return FakePackageManager(accessor)


__all__ = [
    "accessor",
    "fast_settings",
    "package_manager",
]
