"""Idempotent provisioning steps: describe first, create only when absent."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from structlog.typing import FilteringBoundLogger

from launchpad.core.profiles import ProvisioningProfile
from launchpad.domain.models import StepOutcome, StepStatus
from launchpad.infrastructure import commands
from launchpad.infrastructure.gcloud import CommandResult, GcloudCommand, GcloudRunner


class ProvisioningError(RuntimeError):
    """Raised when a step fails and the run must stop."""

    def __init__(self, message: str, *, step: str, resource: str) -> None:
        super().__init__(message)
        self.step = step
        self.resource = resource


@dataclass
class StepContext:
    """Everything a step needs to talk to one project."""

    runner: GcloudRunner
    project_id: str
    profile: ProvisioningProfile
    project_number: str | None = None
    logger: FilteringBoundLogger = field(
        default_factory=lambda: structlog.get_logger(__name__)
    )

    def require_project_number(self) -> str:
        if self.project_number is None:
            self.project_number = self.runner.value(
                commands.describe_project_number(self.project_id)
            )
        return self.project_number


def _failure_detail(result: CommandResult) -> str:
    detail = result.stderr.strip() or result.stdout.strip()
    suffix = f": {detail.splitlines()[-1]}" if detail else ""
    return f"exit code {result.returncode}{suffix}"


def _run_or_abort(
    ctx: StepContext, command: GcloudCommand, *, step: str, resource: str
) -> CommandResult:
    result = ctx.runner.run(command)
    if not result.succeeded:
        ctx.logger.error(
            "provision.step_failed",
            step=step,
            resource=resource,
            returncode=result.returncode,
        )
        raise ProvisioningError(
            f"{command.description} failed ({_failure_detail(result)})",
            step=step,
            resource=resource,
        )
    return result


def ensure_resource(
    ctx: StepContext,
    *,
    step: str,
    resource: str,
    describe: GcloudCommand,
    create: GcloudCommand,
) -> StepOutcome:
    """Create ``resource`` unless ``describe`` shows it already exists."""

    if ctx.runner.exists(describe):
        ctx.logger.info("provision.step_skipped", step=step, resource=resource)
        return StepOutcome(
            step=step,
            status=StepStatus.SKIPPED,
            resource=resource,
            detail="already exists",
        )
    _run_or_abort(ctx, create, step=step, resource=resource)
    ctx.logger.info("provision.step_created", step=step, resource=resource)
    return StepOutcome(step=step, status=StepStatus.CREATED, resource=resource)


def enable_services(ctx: StepContext) -> StepOutcome:
    services = ctx.profile.services
    resource = ", ".join(services)
    _run_or_abort(
        ctx,
        commands.enable_services(ctx.project_id, services),
        step="services",
        resource=resource,
    )
    return StepOutcome(
        step="services",
        status=StepStatus.CREATED,
        resource=resource,
        detail=f"{len(services)} APIs enabled",
    )


def grant_storage_admin(ctx: StepContext) -> StepOutcome:
    """Bind the profile's role to the project's default compute service account."""

    member = "serviceAccount:" + commands.default_compute_service_account(
        ctx.require_project_number()
    )
    role = ctx.profile.iam.role
    _run_or_abort(
        ctx,
        commands.grant_project_role(ctx.project_id, member, role),
        step="iam",
        resource=member,
    )
    return StepOutcome(
        step="iam", status=StepStatus.CREATED, resource=member, detail=role
    )


def ensure_bucket(ctx: StepContext) -> StepOutcome:
    return ensure_resource(
        ctx,
        step="bucket",
        resource=commands.bucket_url(ctx.project_id),
        describe=commands.describe_bucket(ctx.project_id),
        create=commands.create_bucket(ctx.project_id, ctx.profile.bucket),
    )


def ensure_workbench(ctx: StepContext) -> StepOutcome:
    workbench = ctx.profile.workbench
    return ensure_resource(
        ctx,
        step="workbench",
        resource=f"{workbench.name} ({workbench.zone})",
        describe=commands.describe_workbench(ctx.project_id, workbench),
        create=commands.create_workbench(ctx.project_id, workbench),
    )


def ensure_cluster(ctx: StepContext) -> StepOutcome:
    cluster = ctx.profile.cluster
    return ensure_resource(
        ctx,
        step="gke",
        resource=f"{cluster.name} ({cluster.zone})",
        describe=commands.describe_cluster(ctx.project_id, cluster),
        create=commands.create_cluster(ctx.project_id, cluster),
    )


def ensure_firewall_rule(ctx: StepContext) -> StepOutcome:
    rule = ctx.profile.firewall
    return ensure_resource(
        ctx,
        step="firewall",
        resource=rule.name,
        describe=commands.describe_firewall_rule(ctx.project_id, rule),
        create=commands.create_firewall_rule(ctx.project_id, rule),
    )
