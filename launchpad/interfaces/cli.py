"""Command-line entry point for provisioning the TPU / notebook / GKE lab."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from launchpad.application.progress import ProvisioningProgressListener
from launchpad.application.provisioner import (
    Provisioner,
    build_plan,
    collect_status,
    resolve_project_id,
    validate_skips,
)
from launchpad.core import config
from launchpad.core.logging_config import configure_logging
from launchpad.core.profiles import ProfileError
from launchpad.domain.contracts import report_to_contract
from launchpad.domain.models import STEP_ORDER, ProvisioningReport, StepOutcome, StepStatus
from launchpad.infrastructure.gcloud import GcloudError, GcloudRunner
from launchpad.infrastructure.reports import write_report

RunnerFactory = Callable[[str, bool], GcloudRunner]

_STATUS_STYLES = {
    StepStatus.CREATED: "green",
    StepStatus.SKIPPED: "cyan",
    StepStatus.PLANNED: "yellow",
    StepStatus.FAILED: "red",
}


def _default_runner_factory(gcloud_bin: str, dry_run: bool) -> GcloudRunner:
    return GcloudRunner(gcloud_bin=gcloud_bin, dry_run=dry_run)


_RUNNER_FACTORY_STACK: list[RunnerFactory] = []


def _get_runner_factory() -> RunnerFactory:
    if _RUNNER_FACTORY_STACK:
        return _RUNNER_FACTORY_STACK[-1]
    return _default_runner_factory


@contextmanager
def override_runner_factory(factory: RunnerFactory) -> Iterator[None]:
    """Temporarily replace how the CLI builds its :class:`GcloudRunner`."""

    _RUNNER_FACTORY_STACK.append(factory)
    try:
        yield
    finally:
        _RUNNER_FACTORY_STACK.pop()


class RichProvisioningProgress(ProvisioningProgressListener):
    """Print one line per step as the run progresses."""

    def __init__(self, console: Console) -> None:
        self._console = console

    def on_step_started(self, step: str, resource: str) -> None:
        self._console.print(Text.assemble(("→", "cyan"), f" {step}: {resource}"))

    def on_step_finished(self, outcome: StepOutcome) -> None:
        style = _STATUS_STYLES[outcome.status]
        detail = f" ({outcome.detail})" if outcome.detail else ""
        self._console.print(
            Text.assemble(
                ("  ", ""),
                (outcome.status.value, style),
                f" {outcome.resource}{detail}",
            )
        )

    def on_tpu_round_failed(self, round_number: int, delay_seconds: float) -> None:
        self._console.print(
            Text.assemble(
                ("  all TPU zones failed", "yellow"),
                f" (round {round_number}); retrying in {delay_seconds:g}s…",
            )
        )

    def on_complete(self, report: ProvisioningReport) -> None:
        if report.succeeded:
            self._console.print(
                Text.assemble(
                    ("All done!", "bold green"),
                    " Bucket, TPU, Workbench, GKE and firewall are in place.",
                )
            )
        else:
            self._console.print(
                Text.assemble(("Provisioning stopped:", "bold red"), f" {report.error}")
            )


def _load_settings(
    profile_id: str | None, profile_path: Path | None, project_id: str | None
) -> config.LaunchpadSettings:
    try:
        return config.load_settings(
            profile_id=profile_id, profile_path=profile_path, project_id=project_id
        )
    except ProfileError as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_skips(skip: Sequence[str]) -> frozenset[str]:
    try:
        return validate_skips(skip)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--skip") from exc


def _render_summary(report: ProvisioningReport) -> Table:
    title = "Provisioning plan (dry-run)" if report.dry_run else "Provisioning summary"
    table = Table(title=f"{title}: {report.project_id}")
    table.add_column("Step", style="magenta", no_wrap=True)
    table.add_column("Resource", style="white")
    table.add_column("Status", style="cyan")
    table.add_column("Detail", style="dim")
    for outcome in report.outcomes:
        table.add_row(
            outcome.step,
            outcome.resource,
            Text(outcome.status.value, style=_STATUS_STYLES[outcome.status]),
            outcome.detail,
        )
    return table


_profile_option = click.option(
    "--profile",
    "profile_id",
    default=None,
    help="Profile identifier under profiles/ (defaults to LAUNCHPAD_PROFILE or 'default').",
)
_profile_path_option = click.option(
    "--profile-path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Explicit path to a provisioning profile YAML file.",
)
_project_option = click.option(
    "--project",
    "project_id",
    default=None,
    help="Target project id (defaults to LAUNCHPAD_PROJECT or the active gcloud project).",
)
_skip_option = click.option(
    "--skip",
    multiple=True,
    metavar="STEP",
    help=f"Skip a step; repeatable. One of: {', '.join(STEP_ORDER)}.",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Provision a spot TPU VM, a Workbench notebook and a GKE cluster on Google Cloud."""

    configure_logging(verbose)


@cli.command("plan")
@_profile_option
@_profile_path_option
@_project_option
@_skip_option
def plan_command(
    profile_id: str | None,
    profile_path: Path | None,
    project_id: str | None,
    skip: tuple[str, ...],
) -> None:
    """Show every gcloud command a run against an empty project would issue."""

    settings = _load_settings(profile_id, profile_path, project_id)
    skips = _parse_skips(skip)
    runner = _get_runner_factory()(settings.gcloud_bin, True)
    try:
        project = resolve_project_id(runner, settings.project_id)
    except GcloudError as exc:
        raise click.ClickException(str(exc)) from exc

    planned = build_plan(settings.profile, project, skip=skips)
    table = Table(title=f"Provisioning plan: {project} ({settings.profile.identifier})")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Step", style="magenta", no_wrap=True)
    table.add_column("Role", style="green", no_wrap=True)
    table.add_column("Command", style="white")
    for index, item in enumerate(planned, start=1):
        table.add_row(
            str(index), item.step, item.role, item.command.render(settings.gcloud_bin)
        )
    Console().print(table)


@cli.command("up")
@_profile_option
@_profile_path_option
@_project_option
@_skip_option
@click.option("--dry-run", is_flag=True, help="Log commands without executing them.")
@click.option(
    "--max-rounds",
    type=click.IntRange(min=1),
    default=None,
    help="Give up on the TPU after N passes over all zones (default: retry forever).",
)
@click.option(
    "--retry-delay",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait between TPU rounds.",
)
@click.option(
    "--report/--no-report",
    "write_run_report",
    default=True,
    show_default=True,
    help="Write a JSON run report under the reports directory.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
def up_command(
    profile_id: str | None,
    profile_path: Path | None,
    project_id: str | None,
    skip: tuple[str, ...],
    dry_run: bool,
    max_rounds: int | None,
    retry_delay: float | None,
    write_run_report: bool,
    output_format: str,
) -> None:
    """Create every missing resource; existing ones are left untouched."""

    settings = _load_settings(profile_id, profile_path, project_id)
    skips = _parse_skips(skip)
    if max_rounds is not None or retry_delay is not None:
        tpu = settings.profile.tpu
        settings = replace(
            settings,
            profile=replace(
                settings.profile,
                tpu=replace(
                    tpu,
                    max_rounds=max_rounds if max_rounds is not None else tpu.max_rounds,
                    retry_delay_seconds=(
                        retry_delay
                        if retry_delay is not None
                        else tpu.retry_delay_seconds
                    ),
                ),
            ),
        )

    console = Console(stderr=output_format == "json")
    runner = _get_runner_factory()(settings.gcloud_bin, dry_run)
    # stdout carries only the JSON document.
    runner.stdout_to_stderr = output_format == "json"
    provisioner = Provisioner(
        settings=settings,
        runner=runner,
        skip=skips,
        listener=RichProvisioningProgress(console),
    )
    try:
        report = provisioner.run()
    except GcloudError as exc:
        raise click.ClickException(str(exc)) from exc

    report_path: Path | None = None
    if write_run_report:
        report_path = write_report(report, settings.reports_dir)

    if output_format == "json":
        payload = report_to_contract(report).model_dump(mode="json")
        if report_path is not None:
            payload["report_path"] = str(report_path)
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
    else:
        console.print(_render_summary(report))
        if report_path is not None:
            console.print(Text.assemble(("Report → ", "green"), str(report_path)))

    if not report.succeeded:
        raise SystemExit(1)


@cli.command("status")
@_profile_option
@_profile_path_option
@_project_option
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
def status_command(
    profile_id: str | None,
    profile_path: Path | None,
    project_id: str | None,
    output_format: str,
) -> None:
    """Report which of the profile's resources already exist."""

    settings = _load_settings(profile_id, profile_path, project_id)
    runner = _get_runner_factory()(settings.gcloud_bin, False)
    try:
        project = resolve_project_id(runner, settings.project_id)
        statuses = collect_status(runner, settings.profile, project)
    except GcloudError as exc:
        raise click.ClickException(str(exc)) from exc

    if output_format == "json":
        click.echo(
            json.dumps(
                {
                    "project_id": project,
                    "resources": [
                        {
                            "step": status.step,
                            "resource": status.resource,
                            "exists": status.exists,
                            "location": status.location,
                        }
                        for status in statuses
                    ],
                },
                indent=2,
            )
        )
        return

    table = Table(title=f"Resource status: {project}")
    table.add_column("Step", style="magenta", no_wrap=True)
    table.add_column("Resource", style="white")
    table.add_column("Location", style="dim")
    table.add_column("State")
    for status in statuses:
        state = (
            Text("present", style="green")
            if status.exists
            else Text("missing", style="yellow")
        )
        table.add_row(status.step, status.resource, status.location or "-", state)
    Console().print(table)


@cli.command("profiles")
def profiles_command() -> None:
    """List provisioning profiles shipped under profiles/."""

    _, active_path = _active_profile_path()
    entries = config.list_profiles(active=active_path)
    if not entries:
        click.echo("No profiles found.")
        return
    table = Table(title="Provisioning profiles")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta")
    table.add_column("Description", style="white")
    table.add_column("Active", style="green")
    for entry in entries:
        table.add_row(
            str(entry["id"]),
            str(entry["name"]),
            str(entry["description"]),
            "yes" if entry["active"] else "",
        )
    Console().print(table)


def _active_profile_path() -> tuple[str | None, Path | None]:
    try:
        profile, path = config.resolve_profile()
    except ProfileError:
        return None, None
    return profile.identifier, path


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    cli()
