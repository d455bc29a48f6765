"""Spot TPU placement: walk accelerator tiers and zones until one create succeeds."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from structlog.typing import FilteringBoundLogger

from launchpad.application.progress import (
    NullProvisioningProgressListener,
    ProvisioningProgressListener,
)
from launchpad.application.steps import ProvisioningError
from launchpad.core.profiles import AcceleratorTier, TpuProfile
from launchpad.domain.models import StepOutcome, StepStatus, TpuPlacement
from launchpad.infrastructure import commands
from launchpad.infrastructure.gcloud import GcloudRunner


@dataclass
class TpuProvisioner:
    """Try every (tier, zone) candidate in priority order, round after round.

    A failed create is followed by a best-effort delete in the same zone, since
    a half-created spot VM can block the name. Rounds repeat after
    ``tpu.retry_delay_seconds`` until a create succeeds or, when
    ``tpu.max_rounds`` is set, the bound is reached.
    """

    runner: GcloudRunner
    project_id: str
    tpu: TpuProfile
    sleep: Callable[[float], None] = time.sleep
    listener: ProvisioningProgressListener = field(
        default_factory=NullProvisioningProgressListener
    )
    logger: FilteringBoundLogger = field(
        default_factory=lambda: structlog.get_logger(__name__)
    )

    def find_existing(self) -> str | None:
        """Return the zone already hosting a VM with this name, if any."""

        seen: set[str] = set()
        for _, zone in self.tpu.candidates():
            if zone in seen:
                continue
            seen.add(zone)
            if self.runner.exists(commands.describe_tpu(self.project_id, self.tpu, zone)):
                return zone
        return None

    def attempt(self, tier: AcceleratorTier, zone: str) -> bool:
        result = self.runner.run(
            commands.create_tpu(self.project_id, self.tpu, tier, zone)
        )
        if result.succeeded:
            return True
        self.logger.warning(
            "tpu.attempt_failed",
            zone=zone,
            accelerator_type=tier.accelerator_type,
            returncode=result.returncode,
        )
        # The cleanup outcome is irrelevant; the next candidate is tried either way.
        self.runner.run(
            commands.delete_tpu(self.project_id, self.tpu, zone), capture=True
        )
        return False

    def provision(self) -> StepOutcome:
        existing_zone = self.find_existing()
        if existing_zone is not None:
            self.logger.info(
                "provision.step_skipped", step="tpu", zone=existing_zone
            )
            return StepOutcome(
                step="tpu",
                status=StepStatus.SKIPPED,
                resource=f"{self.tpu.name} ({existing_zone})",
                detail="already exists",
            )

        candidates = self.tpu.candidates()
        if not candidates:
            raise ProvisioningError(
                "No TPU zones configured", step="tpu", resource=self.tpu.name
            )

        attempts = 0
        round_number = 0
        while True:
            round_number += 1
            for tier, zone in candidates:
                attempts += 1
                self.logger.info(
                    "tpu.attempt",
                    round=round_number,
                    zone=zone,
                    accelerator_type=tier.accelerator_type,
                )
                if self.attempt(tier, zone):
                    self.logger.info(
                        "provision.step_created",
                        step="tpu",
                        zone=zone,
                        accelerator_type=tier.accelerator_type,
                        attempts=attempts,
                    )
                    return StepOutcome(
                        step="tpu",
                        status=StepStatus.CREATED,
                        resource=f"{self.tpu.name} ({zone})",
                        detail=f"{tier.accelerator_type} after {attempts} attempt(s)",
                        placement=TpuPlacement(
                            zone=zone,
                            accelerator_type=tier.accelerator_type,
                            runtime_version=tier.runtime_version,
                            attempts=attempts,
                            rounds=round_number,
                        ),
                    )

            if self.tpu.max_rounds is not None and round_number >= self.tpu.max_rounds:
                raise ProvisioningError(
                    f"No TPU capacity after {round_number} round(s) over "
                    f"{len(candidates)} zone(s)",
                    step="tpu",
                    resource=self.tpu.name,
                )
            self.logger.warning(
                "tpu.round_exhausted",
                round=round_number,
                retry_in_seconds=self.tpu.retry_delay_seconds,
            )
            self.listener.on_tpu_round_failed(
                round_number, self.tpu.retry_delay_seconds
            )
            self.sleep(self.tpu.retry_delay_seconds)
