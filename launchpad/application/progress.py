"""Progress reporting hooks for provisioning runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from launchpad.domain.models import ProvisioningReport, StepOutcome


class ProvisioningProgressListener(Protocol):
    """Protocol for observing provisioning progress."""

    def on_step_started(self, step: str, resource: str) -> None: ...

    def on_step_finished(self, outcome: StepOutcome) -> None: ...

    def on_tpu_round_failed(self, round_number: int, delay_seconds: float) -> None: ...

    def on_complete(self, report: ProvisioningReport) -> None: ...


@dataclass(slots=True)
class NullProvisioningProgressListener(ProvisioningProgressListener):
    """No-op listener used when progress reporting is disabled."""

    def on_step_started(
        self, step: str, resource: str
    ) -> None:  # pragma: no cover - trivial
        return

    def on_step_finished(self, outcome: StepOutcome) -> None:  # pragma: no cover - trivial
        return

    def on_tpu_round_failed(
        self, round_number: int, delay_seconds: float
    ) -> None:  # pragma: no cover - trivial
        return

    def on_complete(
        self, report: ProvisioningReport
    ) -> None:  # pragma: no cover - trivial
        return
