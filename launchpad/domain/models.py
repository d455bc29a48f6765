"""Outcome records produced by a provisioning run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class StepStatus(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"
    PLANNED = "planned"


STEP_ORDER: tuple[str, ...] = (
    "services",
    "iam",
    "bucket",
    "tpu",
    "workbench",
    "gke",
    "firewall",
)


@dataclass(frozen=True)
class TpuPlacement:
    """Zone and accelerator that a TPU VM landed on."""

    zone: str
    accelerator_type: str
    runtime_version: str
    attempts: int = 1
    rounds: int = 1


@dataclass(frozen=True)
class StepOutcome:
    """Result of a single provisioning step."""

    step: str
    status: StepStatus
    resource: str
    detail: str = ""
    placement: TpuPlacement | None = None

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "step": self.step,
            "status": self.status.value,
            "resource": self.resource,
            "detail": self.detail,
        }
        if self.placement is not None:
            payload["placement"] = {
                "zone": self.placement.zone,
                "accelerator_type": self.placement.accelerator_type,
                "runtime_version": self.placement.runtime_version,
                "attempts": self.placement.attempts,
                "rounds": self.placement.rounds,
            }
        return payload


@dataclass
class ProvisioningReport:
    """Aggregated outcome of a run, in execution order."""

    project_id: str
    profile_id: str
    dry_run: bool = False
    outcomes: list[StepOutcome] = field(default_factory=list)
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and all(outcome.ok for outcome in self.outcomes)

    def outcome(self, step: str) -> StepOutcome | None:
        for outcome in self.outcomes:
            if outcome.step == step:
                return outcome
        return None

    def finish(self, error: str | None = None) -> None:
        self.error = error
        self.finished_at = datetime.now(UTC)
