from __future__ import annotations

from types import SimpleNamespace

import pytest

from launchpad.infrastructure import gcloud
from launchpad.infrastructure.gcloud import GcloudCommand, GcloudError, GcloudRunner

DESCRIBE = GcloudCommand(
    description="Check bucket", args=("storage", "buckets", "describe", "gs://p")
)
CREATE = GcloudCommand(
    description="Create bucket", args=("storage", "buckets", "create", "gs://p")
)


def test_render_quotes_arguments() -> None:
    command = GcloudCommand(
        description="Query",
        args=("projects", "describe", "p", "--format=value(projectNumber)"),
    )

    assert command.render() == "gcloud projects describe p '--format=value(projectNumber)'"
    assert command.argv("/usr/bin/gcloud")[0] == "/usr/bin/gcloud"


def test_run_streams_output_and_reports_exit_code(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: dict[str, object] = {}

    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        captured["argv"] = args[0]
        captured.update(kwargs)
        return SimpleNamespace(returncode=2, stdout=None, stderr=None)

    monkeypatch.setattr(gcloud.subprocess, "run", fake_run)
    runner = GcloudRunner()

    result = runner.run(CREATE)

    assert captured["argv"] == ("gcloud", "storage", "buckets", "create", "gs://p")
    assert captured["capture_output"] is False
    assert captured["check"] is False
    assert result.returncode == 2
    assert result.succeeded is False
    assert result.stdout == ""
    assert runner.history == [CREATE]


def test_exists_captures_describe_output(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        calls.append(kwargs)
        return SimpleNamespace(returncode=0, stdout="name: p\n", stderr="")

    monkeypatch.setattr(gcloud.subprocess, "run", fake_run)

    assert GcloudRunner().exists(DESCRIBE) is True
    assert calls[0]["capture_output"] is True


def test_value_strips_output(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        gcloud.subprocess,
        "run",
        lambda *args, **kwargs: SimpleNamespace(
            returncode=0, stdout="my-project\n", stderr=""
        ),
    )

    assert GcloudRunner().value(DESCRIBE) == "my-project"


@pytest.mark.parametrize(
    "returncode,stdout,stderr,message",
    [
        (0, "(unset)\n", "", "returned no value"),
        (0, "", "", "returned no value"),
        (1, "", "PERMISSION_DENIED", "PERMISSION_DENIED"),
    ],
)
def test_value_raises_when_unusable(
    monkeypatch: pytest.MonkeyPatch,
    returncode: int,
    stdout: str,
    stderr: str,
    message: str,
) -> None:
    monkeypatch.setattr(
        gcloud.subprocess,
        "run",
        lambda *args, **kwargs: SimpleNamespace(
            returncode=returncode, stdout=stdout, stderr=stderr
        ),
    )

    with pytest.raises(GcloudError) as excinfo:
        GcloudRunner().value(DESCRIBE)

    assert message in str(excinfo.value)


def test_missing_binary_raises_gcloud_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        raise FileNotFoundError("gcloud")

    monkeypatch.setattr(gcloud.subprocess, "run", fake_run)

    with pytest.raises(GcloudError, match="LAUNCHPAD_GCLOUD_BIN"):
        GcloudRunner(gcloud_bin="missing-gcloud").run(CREATE)


def test_dry_run_never_executes(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        raise AssertionError("subprocess must not run during a dry run")

    monkeypatch.setattr(gcloud.subprocess, "run", fake_run)
    runner = GcloudRunner(dry_run=True)

    assert runner.exists(DESCRIBE) is False
    assert runner.run(CREATE).succeeded is True
    assert runner.history == [DESCRIBE, CREATE]


def test_stdout_can_be_moved_to_stderr(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured: dict[str, object] = {}

    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        captured.update(kwargs)
        return SimpleNamespace(
            returncode=0, stdout="NAME     STATUS\ncluster  RUNNING\n", stderr=None
        )

    monkeypatch.setattr(gcloud.subprocess, "run", fake_run)
    runner = GcloudRunner(stdout_to_stderr=True)

    result = runner.run(CREATE)

    assert result.succeeded
    assert captured["stdout"] is gcloud.subprocess.PIPE
    streams = capsys.readouterr()
    assert streams.out == ""
    assert "cluster  RUNNING" in streams.err


def test_captured_commands_ignore_stdout_redirect(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: dict[str, object] = {}

    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        captured.update(kwargs)
        return SimpleNamespace(returncode=0, stdout="name: p\n", stderr="")

    monkeypatch.setattr(gcloud.subprocess, "run", fake_run)

    assert GcloudRunner(stdout_to_stderr=True).exists(DESCRIBE) is True
    assert captured["capture_output"] is True
    assert captured["stdout"] is None
