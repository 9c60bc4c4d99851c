"""Pydantic models for ``helmguard.yaml``.

Every release field is optional so command-line options can be layered on
top of whatever the file provides.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from helmguard.config.constants import DEFAULT_CONSTANTS
from helmguard.release.models import WatchSettings


class ReleaseSection(BaseModel):
    """Release defaults read from the ``release:`` section."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    release_name: str | None = Field(default=None, alias="releaseName")
    namespace: str | None = None
    chart_name: str | None = Field(default=None, alias="chartName")
    values: list[str] = Field(default_factory=list, description="values files")
    set_values: list[str] = Field(default_factory=list, alias="set")
    set_literal: list[str] = Field(default_factory=list, alias="setLiteral")
    repo: str | None = None
    version: str | None = None
    timeout: int | None = Field(default=None, gt=0, description="seconds")
    atomic: bool | None = None
    wait: bool | None = None
    create_namespace: bool | None = Field(default=None, alias="createNamespace")
    history_max: int | None = Field(default=None, ge=0, alias="historyMax")
    force: bool | None = None


class WatchSection(BaseModel):
    """Health verification timings read from the ``watch:`` section."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    grace_seconds: float = Field(
        default=DEFAULT_CONSTANTS.WATCH_GRACE_SECONDS, ge=0, alias="graceSeconds"
    )
    interval_seconds: float = Field(
        default=DEFAULT_CONSTANTS.WATCH_INTERVAL_SECONDS, gt=0, alias="intervalSeconds"
    )
    poll_seconds: float = Field(
        default=DEFAULT_CONSTANTS.READINESS_POLL_SECONDS, gt=0, alias="pollSeconds"
    )
    pending_grace_seconds: float = Field(
        default=DEFAULT_CONSTANTS.PENDING_GRACE_SECONDS,
        ge=0,
        alias="pendingGraceSeconds",
    )
    termination_grace_seconds: float = Field(
        default=DEFAULT_CONSTANTS.HELM_TERMINATION_GRACE_SECONDS,
        ge=0,
        alias="terminationGraceSeconds",
    )
    events_per_pod: int = Field(
        default=DEFAULT_CONSTANTS.EVENTS_PER_POD, ge=0, alias="eventsPerPod"
    )

    def to_settings(self) -> WatchSettings:
        return WatchSettings(
            grace=self.grace_seconds,
            interval=self.interval_seconds,
            poll_interval=self.poll_seconds,
            pending_grace=self.pending_grace_seconds,
            termination_grace=self.termination_grace_seconds,
            events_per_pod=self.events_per_pod,
        )


class ConfigData(BaseModel):
    """Root of ``helmguard.yaml``."""

    model_config = ConfigDict(extra="ignore")

    release: ReleaseSection = Field(default_factory=ReleaseSection)
    watch: WatchSection = Field(default_factory=WatchSection)
