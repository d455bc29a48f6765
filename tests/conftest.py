from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from launchpad.core import config
from launchpad.core.profiles import ProvisioningProfile, load_profile
from launchpad.infrastructure.gcloud import GcloudCommand, GcloudRunner

DEFAULT_PROFILE_PATH = config.PROJECT_ROOT / "profiles" / "default.yaml"


def _flag(args: tuple[str, ...], name: str) -> str | None:
    prefix = f"--{name}="
    for arg in args:
        if arg.startswith(prefix):
            return arg[len(prefix) :]
    return None


@dataclass
class FakeCloud:
    """In-memory stand-in for the gcloud control plane.

    ``existing`` holds resource keys (``bucket``, ``workbench``, ``gke``,
    ``firewall``, ``tpu:<zone>``); ``tpu_capacity`` lists zones where a TPU
    create succeeds; ``failing`` names steps whose mutating command fails;
    ``failing_deletes`` lists zones where TPU cleanup fails.
    """

    project: str = "demo-project"
    project_number: str = "123456789"
    existing: set[str] = field(default_factory=set)
    tpu_capacity: set[str] = field(default_factory=set)
    failing: set[str] = field(default_factory=set)
    failing_deletes: set[str] = field(default_factory=set)

    def __call__(self, args: tuple[str, ...]) -> tuple[int, str, str]:
        if args[:3] == ("config", "get-value", "project"):
            return 0, f"{self.project}\n", ""
        if args[:2] == ("projects", "describe"):
            return 0, f"{self.project_number}\n", ""
        if args[:2] == ("services", "enable"):
            return self._mutate("services")
        if args[:2] == ("projects", "add-iam-policy-binding"):
            return self._mutate("iam")
        if args[:2] == ("storage", "buckets"):
            return self._resource("bucket", args[2])
        if args[:3] == ("compute", "tpus", "tpu-vm"):
            zone = _flag(args, "zone")
            verb = args[3]
            if verb == "describe":
                return (0, "", "") if f"tpu:{zone}" in self.existing else (1, "", "NOT_FOUND")
            if verb == "create":
                if zone in self.tpu_capacity:
                    self.existing.add(f"tpu:{zone}")
                    return 0, "", ""
                return 1, "", "RESOURCE_EXHAUSTED"
            if zone in self.failing_deletes:
                return 1, "", "NOT_FOUND"
            return 0, "", ""
        if args[:2] == ("workbench", "instances"):
            return self._resource("workbench", args[2])
        if args[:2] == ("container", "clusters"):
            return self._resource("gke", args[2])
        if "firewall-rules" in args:
            verb = args[args.index("firewall-rules") + 1]
            return self._resource("firewall", verb)
        raise AssertionError(f"unexpected gcloud call: {args}")

    def _mutate(self, step: str) -> tuple[int, str, str]:
        if step in self.failing:
            return 1, "", f"{step} denied"
        return 0, "", ""

    def _resource(self, key: str, verb: str) -> tuple[int, str, str]:
        if verb == "describe":
            return (0, "", "") if key in self.existing else (1, "", "NOT_FOUND")
        if key in self.failing:
            return 1, "", f"{key} quota exceeded"
        self.existing.add(key)
        return 0, "", ""


class ScriptedRunner(GcloudRunner):
    """GcloudRunner whose subprocess layer is answered by a handler."""

    def __init__(
        self,
        handler: Callable[[tuple[str, ...]], tuple[int, str, str]],
        *,
        dry_run: bool = False,
    ) -> None:
        super().__init__(dry_run=dry_run)
        self.handler = handler
        self.calls: list[tuple[str, ...]] = []

    def _execute(
        self, command: GcloudCommand, *, capture: bool
    ) -> subprocess.CompletedProcess[str]:
        self.calls.append(command.args)
        returncode, stdout, stderr = self.handler(command.args)
        return subprocess.CompletedProcess(
            command.argv(self.gcloud_bin), returncode, stdout, stderr
        )

    def verbs(self, *prefix: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[: len(prefix)] == prefix]


@pytest.fixture
def default_profile() -> ProvisioningProfile:
    return load_profile(DEFAULT_PROFILE_PATH)


@pytest.fixture
def fake_cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Strip LAUNCHPAD_* overrides and point reports at a temp directory."""

    for name in (
        "LAUNCHPAD_PROFILE",
        "LAUNCHPAD_PROFILE_PATH",
        "LAUNCHPAD_PROJECT",
        "LAUNCHPAD_GCLOUD_BIN",
        "LAUNCHPAD_TPU_MAX_ROUNDS",
        "LAUNCHPAD_TPU_RETRY_DELAY_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    reports_dir = tmp_path / "reports"
    monkeypatch.setenv("LAUNCHPAD_REPORTS_DIR", str(reports_dir))
    return reports_dir


@pytest.fixture
def make_runner() -> Callable[..., ScriptedRunner]:
    return ScriptedRunner
