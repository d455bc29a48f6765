from __future__ import annotations

from dataclasses import replace

import pytest

from launchpad.application.steps import ProvisioningError
from launchpad.application.tpu import TpuProvisioner
from launchpad.domain.models import StepStatus


class RecordingListener:
    def __init__(self) -> None:
        self.rounds: list[tuple[int, float]] = []

    def on_step_started(self, step, resource) -> None:
        pass

    def on_step_finished(self, outcome) -> None:
        pass

    def on_tpu_round_failed(self, round_number, delay_seconds) -> None:
        self.rounds.append((round_number, delay_seconds))

    def on_complete(self, report) -> None:
        pass


def _provisioner(runner, profile, sleeps, listener=None, **tpu_overrides):
    tpu = replace(profile.tpu, **tpu_overrides) if tpu_overrides else profile.tpu
    kwargs = {"listener": listener} if listener is not None else {}
    return TpuProvisioner(
        runner=runner,
        project_id="demo-project",
        tpu=tpu,
        sleep=sleeps.append,
        **kwargs,
    )


def test_first_zone_with_capacity_wins(default_profile, fake_cloud, make_runner) -> None:
    fake_cloud.tpu_capacity = {"us-central1-b"}
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []

    outcome = _provisioner(runner, default_profile, sleeps).provision()

    assert outcome.status is StepStatus.CREATED
    assert outcome.resource == "my-tpu-spot-vm (us-central1-b)"
    assert outcome.placement is not None
    assert outcome.placement.accelerator_type == "v6e-1"
    assert outcome.placement.attempts == 1
    assert runner.verbs("compute", "tpus", "tpu-vm", "delete") == []
    assert sleeps == []


def test_falls_back_to_v5e_and_cleans_up_each_failure(
    default_profile, fake_cloud, make_runner
) -> None:
    fake_cloud.tpu_capacity = {"us-south1-a"}
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []

    outcome = _provisioner(runner, default_profile, sleeps).provision()

    assert outcome.placement is not None
    assert outcome.placement.zone == "us-south1-a"
    assert outcome.placement.accelerator_type == "v5e-1"
    assert outcome.placement.runtime_version == "v2-alpha-tpuv5-lite"
    # Seven v6e zones plus us-central1-a failed before us-south1-a.
    assert outcome.placement.attempts == 9
    assert outcome.detail == "v5e-1 after 9 attempt(s)"
    creates = runner.verbs("compute", "tpus", "tpu-vm", "create")
    deletes = runner.verbs("compute", "tpus", "tpu-vm", "delete")
    assert len(creates) == 9
    assert len(deletes) == 8
    assert [call[5] for call in deletes] == [call[5] for call in creates[:8]]


def test_waits_between_rounds(default_profile, fake_cloud, make_runner) -> None:
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []
    listener = RecordingListener()

    provisioner = _provisioner(runner, default_profile, sleeps, listener=listener)

    def grant_capacity(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 2:
            fake_cloud.tpu_capacity.add("us-east5-a")

    provisioner.sleep = grant_capacity
    outcome = provisioner.provision()

    assert sleeps == [10, 10]
    assert listener.rounds == [(1, 10), (2, 10)]
    assert outcome.placement is not None
    assert outcome.placement.rounds == 3
    assert outcome.placement.attempts == 12 * 2 + 3


def test_max_rounds_bounds_the_search(default_profile, fake_cloud, make_runner) -> None:
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []

    provisioner = _provisioner(
        runner, default_profile, sleeps, max_rounds=2, retry_delay_seconds=0.0
    )

    with pytest.raises(ProvisioningError) as excinfo:
        provisioner.provision()

    assert "No TPU capacity after 2 round(s) over 12 zone(s)" in str(excinfo.value)
    assert excinfo.value.step == "tpu"
    assert sleeps == [0.0]
    assert len(runner.verbs("compute", "tpus", "tpu-vm", "create")) == 24


def test_existing_vm_is_left_alone(default_profile, fake_cloud, make_runner) -> None:
    fake_cloud.existing = {"tpu:us-east1-d"}
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []

    outcome = _provisioner(runner, default_profile, sleeps).provision()

    assert outcome.status is StepStatus.SKIPPED
    assert outcome.resource == "my-tpu-spot-vm (us-east1-d)"
    assert runner.verbs("compute", "tpus", "tpu-vm", "create") == []
    assert runner.verbs("compute", "tpus", "tpu-vm", "delete") == []
    assert len(runner.verbs("compute", "tpus", "tpu-vm", "describe")) == 2


def test_find_existing_checks_each_zone_once(
    default_profile, fake_cloud, make_runner
) -> None:
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []

    assert _provisioner(runner, default_profile, sleeps).find_existing() is None
    assert len(runner.verbs("compute", "tpus", "tpu-vm", "describe")) == 12


def test_failed_cleanup_does_not_stop_the_search(
    default_profile, fake_cloud, make_runner
) -> None:
    fake_cloud.tpu_capacity = {"us-east5-a"}
    fake_cloud.failing_deletes = {"us-central1-b", "us-east1-d"}
    runner = make_runner(fake_cloud)
    sleeps: list[float] = []

    outcome = _provisioner(runner, default_profile, sleeps).provision()

    assert outcome.status is StepStatus.CREATED
    assert outcome.placement is not None
    assert outcome.placement.zone == "us-east5-a"
    assert outcome.placement.attempts == 3
    deletes = runner.verbs("compute", "tpus", "tpu-vm", "delete")
    assert [call[5] for call in deletes] == ["--zone=us-central1-b", "--zone=us-east1-d"]
    assert sleeps == []
