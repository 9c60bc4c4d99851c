"""Health watcher.

Runs alongside the helm action and fails the run as soon as a pod or
deployment of the release reaches a state it cannot recover from, instead
of waiting out helm's own timeout.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from loguru import logger

from helmguard.infra.k8s.controller import ClusterAccessError, ClusterAccessor, WorkloadKind
from helmguard.infra.k8s.helpers import instance_selector

from .classifier import HealthVerdict, classify_all
from .models import WatchSettings
from .signals import OutcomeSignal, OutcomeSlot

WATCHED_KINDS: tuple[WorkloadKind, ...] = (WorkloadKind.POD, WorkloadKind.DEPLOYMENT)


async def _wait_cancelled(cancelled: asyncio.Event, seconds: float) -> bool:
    """Sleep for ``seconds`` unless cancelled first. Returns True if cancelled."""
    try:
        await asyncio.wait_for(cancelled.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True


class HealthWatcher:
    """Watches the pods and deployments of one release for terminal failures."""

    def __init__(
        self,
        accessor: ClusterAccessor,
        namespace: str,
        release: str,
        settings: WatchSettings | None = None,
    ) -> None:
        self.accessor = accessor
        self.namespace = namespace
        self.release = release
        self.settings = settings or WatchSettings()

    async def check_once(self) -> HealthVerdict:
        """Run a single sweep and classify what it saw.

        Raises:
            ClusterAccessError: If the cluster could not be read
        """
        snapshot = await self.accessor.snapshot_release(
            self.namespace,
            self.release,
            instance_selector(self.release),
            kinds=WATCHED_KINDS,
        )
        return classify_all(
            snapshot.resources,
            now=datetime.now(UTC),
            pending_grace=self.settings.pending_grace,
        )

    async def run(self, slot: OutcomeSlot, cancelled: asyncio.Event) -> HealthVerdict | None:
        """Sweep until a terminal failure is found or the run is decided.

        Waits the grace delay first so freshly created pods get a chance to
        start. Cluster read errors are logged and the next sweep retries.

        Returns:
            The terminal verdict that was offered, or None if cancelled
        """
        logger.debug(
            f"Watching {self.namespace}/{self.release} "
            f"(grace {self.settings.grace}s, interval {self.settings.interval}s)"
        )
        if await _wait_cancelled(cancelled, self.settings.grace):
            return None

        sweep = 0
        while not (cancelled.is_set() or slot.decided):
            sweep += 1
            try:
                verdict = await self.check_once()
            except ClusterAccessError as e:
                logger.warning(f"Health sweep {sweep} failed: {e}")
            else:
                logger.debug(f"Health sweep {sweep}: {verdict.kind.value}")
                if verdict.is_terminal:
                    logger.info(f"Terminal failure detected: {verdict.describe()}")
                    slot.offer(OutcomeSignal.watcher_failure(verdict))
                    return verdict

            if await _wait_cancelled(cancelled, self.settings.interval):
                break
        return None
