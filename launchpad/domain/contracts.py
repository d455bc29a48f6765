"""Pydantic contracts for the JSON run reports written after provisioning.

Reports are versioned so downstream tooling (dashboards, notebooks that look up
the TPU zone) can rely on a stable shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from launchpad.domain.models import STEP_ORDER, ProvisioningReport

CONTRACT_VERSION = "1.0.0"
SCHEMA_URI_BASE = "https://launchpad.dev/schemas/v1"


class TpuPlacementContract(BaseModel):
    zone: str = Field(..., min_length=1)
    accelerator_type: str = Field(..., min_length=1)
    runtime_version: str = Field(..., min_length=1)
    attempts: int = Field(..., ge=1, description="Create commands issued")
    rounds: int = Field(..., ge=1, description="Full passes over the zone list")


class StepOutcomeContract(BaseModel):
    step: str
    status: Literal["created", "skipped", "failed", "planned"]
    resource: str = Field(..., min_length=1)
    detail: str = ""
    placement: TpuPlacementContract | None = None

    @field_validator("step")
    @classmethod
    def validate_step(cls, v: str) -> str:
        if v not in STEP_ORDER:
            raise ValueError(f"Step must be one of {STEP_ORDER}, got {v!r}")
        return v


class ProvisioningReportContract(BaseModel):
    """Contract for a single ``launchpad up`` run."""

    project_id: str = Field(..., min_length=1)
    profile_id: str = Field(..., min_length=1)
    status: Literal["success", "failed"]
    dry_run: bool = False
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None
    steps: list[StepOutcomeContract] = Field(default_factory=list)
    contract: dict[str, str] = Field(
        default_factory=lambda: {
            "name": "ProvisioningReport",
            "version": CONTRACT_VERSION,
            "schema_uri": f"{SCHEMA_URI_BASE}/provisioning-report",
        }
    )

    model_config = {
        "json_schema_extra": {
            "version": CONTRACT_VERSION,
            "schema_uri": f"{SCHEMA_URI_BASE}/provisioning-report",
        }
    }


def report_to_contract(report: ProvisioningReport) -> ProvisioningReportContract:
    """Validate a :class:`ProvisioningReport` against the report contract."""

    payload = {
        "project_id": report.project_id,
        "profile_id": report.profile_id,
        "status": "success" if report.succeeded else "failed",
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "finished_at": report.finished_at,
        "error": report.error,
        "steps": [outcome.as_dict() for outcome in report.outcomes],
    }
    return ProvisioningReportContract.model_validate(payload)
