"""
Stage policy and per-epoch sync report.

Stages are either fatal or best-effort. A fatal stage failure aborts the
remaining stages for the epoch and is retried on the next epoch. A
best-effort failure is recorded and the orchestration completes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class StageKind(Enum):
    """Failure policy of a sync stage."""

    FATAL = auto()
    """Failure aborts the orchestration for this epoch."""

    BEST_EFFORT = auto()
    """Failure is logged and recorded. The orchestration continues."""


@dataclass(slots=True)
class StageResult:
    """Outcome of one stage within one orchestration."""

    name: str
    """Stage name, also used as the metrics label."""

    kind: StageKind
    """Failure policy the stage ran under."""

    duration: float
    """Wall time spent in the stage, in seconds."""

    result: Any = None
    """Stage-specific result object on success."""

    error: BaseException | None = None
    """Exception raised by the stage, if it failed."""

    @property
    def succeeded(self) -> bool:
        """Whether the stage completed without raising."""
        return self.error is None


@dataclass(slots=True)
class SyncReport:
    """Everything that happened during one epoch's orchestration."""

    epoch: int
    """Epoch the orchestration ran for."""

    stages: list[StageResult] = field(default_factory=list)
    """Stages in execution order. Stages after a fatal failure are absent."""

    @property
    def duration(self) -> float:
        """Total time spent across all stages."""
        return sum(stage.duration for stage in self.stages)

    @property
    def failed_stages(self) -> list[str]:
        """Names of stages that raised."""
        return [stage.name for stage in self.stages if not stage.succeeded]

    def stage(self, name: str) -> StageResult | None:
        """Look up a stage by name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None
