"""Single-slot outcome carrier shared by the racing supervisor tasks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from .classifier import HealthVerdict
    from .errors import PackageManagerError
    from .models import ReleaseRecord


class OutcomeKind(str, Enum):
    """Which racer decided the run."""

    SUCCESS = "success"
    PACKAGE_MANAGER_ERROR = "package_manager_error"
    WATCHER_TERMINAL_FAILURE = "watcher_terminal_failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class OutcomeSignal:
    """The decided outcome of a run and its payload."""

    kind: OutcomeKind
    record: ReleaseRecord | None = None
    error: PackageManagerError | None = None
    verdict: HealthVerdict | None = None

    @classmethod
    def success(cls, record: ReleaseRecord) -> OutcomeSignal:
        return cls(OutcomeKind.SUCCESS, record=record)

    @classmethod
    def package_manager_error(cls, error: PackageManagerError) -> OutcomeSignal:
        return cls(OutcomeKind.PACKAGE_MANAGER_ERROR, error=error)

    @classmethod
    def watcher_failure(cls, verdict: HealthVerdict) -> OutcomeSignal:
        return cls(OutcomeKind.WATCHER_TERMINAL_FAILURE, verdict=verdict)

    @classmethod
    def timeout(cls, error: PackageManagerError | None = None) -> OutcomeSignal:
        """A deadline expired; ``error`` is set when helm hit its own timeout."""
        return cls(OutcomeKind.TIMEOUT, error=error)


class OutcomeSlot:
    """Holds at most one OutcomeSignal; the first offer wins.

    Must be created while an event loop is running.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[OutcomeSignal] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def decided(self) -> bool:
        return self._future.done()

    def offer(self, signal: OutcomeSignal) -> bool:
        """Offer an outcome.

        Returns:
            True if this offer decided the run, False if one already had
        """
        if self._future.done():
            logger.debug(f"Discarding late outcome {signal.kind.value}")
            return False
        self._future.set_result(signal)
        logger.debug(f"Outcome decided: {signal.kind.value}")
        return True

    def peek(self) -> OutcomeSignal | None:
        return self._future.result() if self._future.done() else None
