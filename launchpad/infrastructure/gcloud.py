"""Thin subprocess wrapper around the ``gcloud`` command-line tool."""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass, field

from launchpad.core.config import DEFAULT_GCLOUD_BIN


class GcloudError(RuntimeError):
    """Raised when ``gcloud`` cannot be invoked or returns unusable output."""


@dataclass(frozen=True)
class GcloudCommand:
    """A single ``gcloud`` invocation, without the executable itself."""

    description: str
    args: tuple[str, ...]

    def argv(self, gcloud_bin: str = DEFAULT_GCLOUD_BIN) -> tuple[str, ...]:
        return (gcloud_bin, *self.args)

    def render(self, gcloud_bin: str = DEFAULT_GCLOUD_BIN) -> str:
        return shlex.join(self.argv(gcloud_bin))


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured output of a finished command."""

    command: GcloudCommand
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


@dataclass
class GcloudRunner:
    """Execute :class:`GcloudCommand` objects one at a time.

    Commands are judged purely by exit status. ``run`` lets output stream to the
    terminal unless ``capture`` is set; ``exists`` always captures so describe
    noise stays hidden. In ``dry_run`` mode mutating commands are recorded but
    not executed: creates report success and describes report "absent".
    ``value`` is a read-only query and executes even during a dry run.

    With ``stdout_to_stderr`` set, the standard output of uncaptured commands
    is collected and re-emitted on stderr so the caller owns stdout.
    """

    gcloud_bin: str = DEFAULT_GCLOUD_BIN
    dry_run: bool = False
    stdout_to_stderr: bool = False
    history: list[GcloudCommand] = field(default_factory=list)
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("launchpad.gcloud")
    )

    def run(self, command: GcloudCommand, *, capture: bool = False) -> CommandResult:
        self.history.append(command)
        rendered = command.render(self.gcloud_bin)
        if self.dry_run:
            self.logger.info("[dry-run] %s: $ %s", command.description, rendered)
            return CommandResult(command=command, returncode=0)
        self.logger.debug("%s: $ %s", command.description, rendered)
        completed = self._execute(command, capture=capture)
        result = CommandResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if not result.succeeded:
            self.logger.debug(
                "%s exited with %s", command.description, result.returncode
            )
        return result

    def exists(self, command: GcloudCommand) -> bool:
        """Run a describe command and report whether the resource exists."""

        if self.dry_run:
            self.history.append(command)
            self.logger.info(
                "[dry-run] %s: $ %s", command.description, command.render(self.gcloud_bin)
            )
            return False
        return self.run(command, capture=True).succeeded

    def value(self, command: GcloudCommand) -> str:
        """Run a query and return its trimmed standard output."""

        self.history.append(command)
        completed = self._execute(command, capture=True)
        output = (completed.stdout or "").strip()
        if completed.returncode != 0:
            detail = (completed.stderr or "").strip() or output
            raise GcloudError(
                f"'{command.render(self.gcloud_bin)}' failed with exit code "
                f"{completed.returncode}: {detail}"
            )
        if not output or output == "(unset)":
            raise GcloudError(f"{command.description} returned no value")
        return output

    def _execute(
        self, command: GcloudCommand, *, capture: bool
    ) -> subprocess.CompletedProcess[str]:
        redirect = self.stdout_to_stderr and not capture
        try:
            completed = subprocess.run(
                command.argv(self.gcloud_bin),
                check=False,
                capture_output=capture,
                stdout=subprocess.PIPE if redirect else None,
                text=True,
            )
        except FileNotFoundError as exc:
            raise GcloudError(
                f"'{self.gcloud_bin}' executable not found; install the Google Cloud "
                "CLI or set LAUNCHPAD_GCLOUD_BIN."
            ) from exc
        if redirect and completed.stdout:
            sys.stderr.write(completed.stdout)
            sys.stderr.flush()
        return completed
