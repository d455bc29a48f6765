"""Sequential orchestration of the provisioning steps."""

from __future__ import annotations

import time
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field, replace

import structlog
from structlog.typing import FilteringBoundLogger

from launchpad.application import steps
from launchpad.application.progress import (
    NullProvisioningProgressListener,
    ProvisioningProgressListener,
)
from launchpad.application.steps import ProvisioningError, StepContext
from launchpad.application.tpu import TpuProvisioner
from launchpad.core.config import LaunchpadSettings
from launchpad.core.profiles import ProvisioningProfile
from launchpad.domain.models import (
    STEP_ORDER,
    ProvisioningReport,
    StepOutcome,
    StepStatus,
)
from launchpad.infrastructure import commands
from launchpad.infrastructure.gcloud import GcloudCommand, GcloudError, GcloudRunner

PROJECT_NUMBER_PLACEHOLDER = "PROJECT_NUMBER"


def validate_skips(skip: Iterable[str]) -> frozenset[str]:
    """Normalise step names passed to ``--skip`` and reject unknown ones."""

    names = frozenset(name.strip().lower() for name in skip if name.strip())
    unknown = sorted(names - set(STEP_ORDER))
    if unknown:
        raise ValueError(
            f"Unknown step(s): {', '.join(unknown)}. "
            f"Choose from: {', '.join(STEP_ORDER)}."
        )
    return names


def resolve_project_id(runner: GcloudRunner, project_id: str | None = None) -> str:
    """Return ``project_id`` or fall back to the active gcloud configuration."""

    if project_id:
        return project_id
    try:
        return runner.value(commands.get_configured_project())
    except GcloudError as exc:
        raise GcloudError(
            "No project configured. Pass --project, set LAUNCHPAD_PROJECT or run "
            f"'gcloud config set project <id>' ({exc})"
        ) from exc


@dataclass(frozen=True)
class PlannedCommand:
    """A command a fresh run would issue, tagged with its step and role."""

    step: str
    role: str
    command: GcloudCommand


def build_plan(
    profile: ProvisioningProfile,
    project_id: str,
    *,
    project_number: str | None = None,
    skip: Collection[str] = (),
) -> list[PlannedCommand]:
    """List the commands a run against an empty project would issue, in order.

    TPU creates are listed once per candidate; a real run stops at the first
    success.
    """

    number = project_number or PROJECT_NUMBER_PLACEHOLDER
    plan: list[PlannedCommand] = []

    def add(step: str, role: str, command: GcloudCommand) -> None:
        if step not in skip:
            plan.append(PlannedCommand(step=step, role=role, command=command))

    add("services", "run", commands.enable_services(project_id, profile.services))
    add(
        "iam",
        "run",
        commands.grant_project_role(
            project_id,
            "serviceAccount:" + commands.default_compute_service_account(number),
            profile.iam.role,
        ),
    )
    add("bucket", "check", commands.describe_bucket(project_id))
    add("bucket", "create", commands.create_bucket(project_id, profile.bucket))
    for tier, zone in profile.tpu.candidates():
        add("tpu", "fallback", commands.create_tpu(project_id, profile.tpu, tier, zone))
    add("workbench", "check", commands.describe_workbench(project_id, profile.workbench))
    add("workbench", "create", commands.create_workbench(project_id, profile.workbench))
    add("gke", "check", commands.describe_cluster(project_id, profile.cluster))
    add("gke", "create", commands.create_cluster(project_id, profile.cluster))
    add("firewall", "check", commands.describe_firewall_rule(project_id, profile.firewall))
    add("firewall", "create", commands.create_firewall_rule(project_id, profile.firewall))
    return plan


@dataclass(frozen=True)
class ResourceStatus:
    step: str
    resource: str
    exists: bool
    location: str | None = None


def collect_status(
    runner: GcloudRunner, profile: ProvisioningProfile, project_id: str
) -> list[ResourceStatus]:
    """Run only the describe checks and report which resources exist."""

    statuses = [
        ResourceStatus(
            step="bucket",
            resource=commands.bucket_url(project_id),
            exists=runner.exists(commands.describe_bucket(project_id)),
            location=profile.bucket.location,
        )
    ]
    tpu_zone = TpuProvisioner(
        runner=runner, project_id=project_id, tpu=profile.tpu
    ).find_existing()
    statuses.append(
        ResourceStatus(
            step="tpu",
            resource=profile.tpu.name,
            exists=tpu_zone is not None,
            location=tpu_zone,
        )
    )
    statuses.append(
        ResourceStatus(
            step="workbench",
            resource=profile.workbench.name,
            exists=runner.exists(
                commands.describe_workbench(project_id, profile.workbench)
            ),
            location=profile.workbench.zone,
        )
    )
    statuses.append(
        ResourceStatus(
            step="gke",
            resource=profile.cluster.name,
            exists=runner.exists(commands.describe_cluster(project_id, profile.cluster)),
            location=profile.cluster.zone,
        )
    )
    statuses.append(
        ResourceStatus(
            step="firewall",
            resource=profile.firewall.name,
            exists=runner.exists(
                commands.describe_firewall_rule(project_id, profile.firewall)
            ),
            location=profile.firewall.network,
        )
    )
    return statuses


def _resource_label(profile: ProvisioningProfile, project_id: str, step: str) -> str:
    labels = {
        "services": f"{len(profile.services)} APIs",
        "iam": profile.iam.role,
        "bucket": commands.bucket_url(project_id),
        "tpu": profile.tpu.name,
        "workbench": profile.workbench.name,
        "gke": profile.cluster.name,
        "firewall": profile.firewall.name,
    }
    return labels[step]


@dataclass
class Provisioner:
    """Run every enabled step once, in order, stopping at the first failure."""

    settings: LaunchpadSettings
    runner: GcloudRunner
    skip: frozenset[str] = frozenset()
    sleep: Callable[[float], None] = time.sleep
    listener: ProvisioningProgressListener = field(
        default_factory=NullProvisioningProgressListener
    )
    logger: FilteringBoundLogger = field(
        default_factory=lambda: structlog.get_logger(__name__)
    )

    def run(self) -> ProvisioningReport:
        profile = self.settings.profile
        project_id = resolve_project_id(self.runner, self.settings.project_id)
        report = ProvisioningReport(
            project_id=project_id,
            profile_id=profile.identifier,
            dry_run=self.runner.dry_run,
        )
        ctx = StepContext(
            runner=self.runner,
            project_id=project_id,
            profile=profile,
            logger=self.logger,
        )
        handlers: dict[str, Callable[[], StepOutcome]] = {
            "services": lambda: steps.enable_services(ctx),
            "iam": lambda: steps.grant_storage_admin(ctx),
            "bucket": lambda: steps.ensure_bucket(ctx),
            "tpu": lambda: TpuProvisioner(
                runner=self.runner,
                project_id=project_id,
                tpu=profile.tpu,
                sleep=self.sleep,
                listener=self.listener,
                logger=self.logger,
            ).provision(),
            "workbench": lambda: steps.ensure_workbench(ctx),
            "gke": lambda: steps.ensure_cluster(ctx),
            "firewall": lambda: steps.ensure_firewall_rule(ctx),
        }

        self.logger.info(
            "provision.started",
            project=project_id,
            profile=profile.identifier,
            dry_run=self.runner.dry_run,
            skip=sorted(self.skip),
        )
        for step in STEP_ORDER:
            if step in self.skip:
                continue
            resource = _resource_label(profile, project_id, step)
            self.listener.on_step_started(step, resource)
            self.logger.info("provision.step_started", step=step, resource=resource)
            try:
                outcome = handlers[step]()
            except (ProvisioningError, GcloudError) as exc:
                failed = StepOutcome(
                    step=step,
                    status=StepStatus.FAILED,
                    resource=getattr(exc, "resource", resource),
                    detail=str(exc),
                )
                report.outcomes.append(failed)
                self.listener.on_step_finished(failed)
                report.finish(error=str(exc))
                self.listener.on_complete(report)
                self.logger.error("provision.aborted", step=step, error=str(exc))
                return report
            if self.runner.dry_run and outcome.status is StepStatus.CREATED:
                outcome = replace(outcome, status=StepStatus.PLANNED)
            report.outcomes.append(outcome)
            self.listener.on_step_finished(outcome)

        report.finish()
        self.listener.on_complete(report)
        self.logger.info(
            "provision.completed",
            project=project_id,
            created=[o.step for o in report.outcomes if o.status is StepStatus.CREATED],
            skipped=[o.step for o in report.outcomes if o.status is StepStatus.SKIPPED],
        )
        return report
