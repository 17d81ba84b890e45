"""Pydantic models for deployments, their logs and summaries.

The JSON shape of ``Deployment`` is the on-disk record format, so field
aliases follow the persisted key names (``stackName``).
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dreadnot.lib.errors import DeploymentFrozenError


def now_ms() -> int:
    """Return the current time as milliseconds since the epoch."""
    return int(time.time() * 1000)


class RunArgs(BaseModel):
    """Arguments handed to every task function of a deployment."""

    model_config = ConfigDict(frozen=True)

    dry_run: bool = Field(default=False, description="Skip side-effecting commands")
    environment: str = Field(..., description="Environment name from settings")
    region: str = Field(..., description="Region being deployed")
    revision: str = Field(..., description="Revision being deployed")
    user: str = Field(..., description="User who requested the deployment")


class RevisionArgs(BaseModel):
    """Arguments handed to a stack module's revision lookups."""

    model_config = ConfigDict(frozen=True)

    environment: str
    region: str | None = None


class LogEntry(BaseModel):
    """A single structured log line of a deployment."""

    model_config = ConfigDict(frozen=True)

    lvl: int = Field(..., description="Python logging level number")
    msg: str = Field(..., description="Rendered log message")
    obj: dict[str, Any] = Field(default_factory=dict, description="Context")

    @property
    def level_name(self) -> str:
        """Return the level as a name such as ``INFO``."""
        return logging.getLevelName(self.lvl)


class DeploymentSummary(BaseModel):
    """Deployment identity and outcome without the log."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Deployment number within the region")
    stack_name: str = Field(..., alias="stackName")
    region: str
    environment: str
    from_revision: str | None = None
    to_revision: str
    time: int = Field(default_factory=now_ms, description="Start time, ms epoch")
    user: str
    finished: bool = False
    success: bool = False

    @property
    def number(self) -> int:
        """Return the deployment number as an integer."""
        return int(self.name)


class Deployment(DeploymentSummary):
    """A deployment record with its append-only log.

    The record is mutated only by the deployment runner while it executes.
    After ``finalize`` it is frozen and further mutation raises
    ``DeploymentFrozenError``.
    """

    log: list[LogEntry] = Field(default_factory=list)

    def append_log(self, entry: LogEntry) -> int:
        """Append a log entry and return its index."""
        if self.finished:
            raise DeploymentFrozenError(self.name)
        self.log.append(entry)
        return len(self.log) - 1

    def finalize(self, success: bool) -> None:
        """Mark the deployment finished with the given outcome."""
        if self.finished:
            raise DeploymentFrozenError(self.name)
        self.success = success
        self.finished = True

    def summary(self) -> DeploymentSummary:
        """Return a copy of this deployment without its log."""
        return DeploymentSummary.model_validate(self.model_dump(exclude={"log"}))

    def to_json(self) -> str:
        """Serialize to the persisted record format."""
        return self.model_dump_json(by_alias=True, indent=4)


class RegionSummary(BaseModel):
    """Deployed revision and newest deployment number for a region."""

    name: str
    deployed_revision: str | None = None
    latest_deployment: str | None = None


class StackSummary(BaseModel):
    """Latest available revision for a stack."""

    name: str
    latest_revision: str | None = None


class OrchestratorSummary(BaseModel):
    """Top-level summary of a Dreadnot instance."""

    name: str
    title: str
    warning: str = ""


class RunningStatus(BaseModel):
    """Whether a stack is currently running a deployment."""

    stack: str
    running: bool
    info: DeploymentSummary | None = None
