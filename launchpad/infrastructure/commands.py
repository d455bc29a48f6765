"""Builders for every ``gcloud`` invocation issued during provisioning."""

from __future__ import annotations

from collections.abc import Sequence

from launchpad.core.profiles import (
    AcceleratorTier,
    BucketProfile,
    ClusterProfile,
    FirewallProfile,
    TpuProfile,
    WorkbenchProfile,
)
from launchpad.infrastructure.gcloud import GcloudCommand


def bucket_url(project_id: str) -> str:
    return f"gs://{project_id}"


def default_compute_service_account(project_number: str) -> str:
    return f"{project_number}-compute@developer.gserviceaccount.com"


# Project ---------------------------------------------------------------------
def get_configured_project() -> GcloudCommand:
    return GcloudCommand(
        description="Read active gcloud project",
        args=("config", "get-value", "project"),
    )


def describe_project_number(project_id: str) -> GcloudCommand:
    return GcloudCommand(
        description=f"Look up project number for {project_id}",
        args=(
            "projects",
            "describe",
            project_id,
            "--format=value(projectNumber)",
        ),
    )


def enable_services(project_id: str, services: Sequence[str]) -> GcloudCommand:
    return GcloudCommand(
        description="Enable required Google Cloud APIs",
        args=("services", "enable", *services, f"--project={project_id}"),
    )


def grant_project_role(project_id: str, member: str, role: str) -> GcloudCommand:
    return GcloudCommand(
        description=f"Grant {role} to {member}",
        args=(
            "projects",
            "add-iam-policy-binding",
            project_id,
            f"--member={member}",
            f"--role={role}",
            "--condition=None",
            "--quiet",
        ),
    )


# Cloud Storage ---------------------------------------------------------------
def describe_bucket(project_id: str) -> GcloudCommand:
    return GcloudCommand(
        description=f"Check bucket {bucket_url(project_id)}",
        args=(
            "storage",
            "buckets",
            "describe",
            bucket_url(project_id),
            f"--project={project_id}",
        ),
    )


def create_bucket(project_id: str, bucket: BucketProfile) -> GcloudCommand:
    args = [
        "storage",
        "buckets",
        "create",
        bucket_url(project_id),
        f"--project={project_id}",
        f"--location={bucket.location}",
    ]
    if bucket.uniform_access:
        args.append("--uniform-bucket-level-access")
    args.append("--quiet")
    return GcloudCommand(
        description=f"Create bucket {bucket_url(project_id)}",
        args=tuple(args),
    )


# Cloud TPU -------------------------------------------------------------------
def describe_tpu(project_id: str, tpu: TpuProfile, zone: str) -> GcloudCommand:
    return GcloudCommand(
        description=f"Check TPU VM {tpu.name} in {zone}",
        args=(
            "compute",
            "tpus",
            "tpu-vm",
            "describe",
            tpu.name,
            f"--zone={zone}",
            f"--project={project_id}",
        ),
    )


def create_tpu(
    project_id: str, tpu: TpuProfile, tier: AcceleratorTier, zone: str
) -> GcloudCommand:
    args = [
        "compute",
        "tpus",
        "tpu-vm",
        "create",
        tpu.name,
        f"--zone={zone}",
        f"--accelerator-type={tier.accelerator_type}",
        f"--version={tier.runtime_version}",
    ]
    if tpu.spot:
        args.append("--spot")
    args.extend(
        (
            f"--scopes={tpu.scopes}",
            f"--project={project_id}",
            "--quiet",
        )
    )
    return GcloudCommand(
        description=f"Create TPU VM {tpu.name} in {zone} ({tier.accelerator_type})",
        args=tuple(args),
    )


def delete_tpu(project_id: str, tpu: TpuProfile, zone: str) -> GcloudCommand:
    return GcloudCommand(
        description=f"Clean up TPU VM {tpu.name} in {zone}",
        args=(
            "compute",
            "tpus",
            "tpu-vm",
            "delete",
            tpu.name,
            f"--zone={zone}",
            f"--project={project_id}",
            "--quiet",
        ),
    )


# Vertex AI Workbench ---------------------------------------------------------
def describe_workbench(project_id: str, workbench: WorkbenchProfile) -> GcloudCommand:
    return GcloudCommand(
        description=f"Check Workbench instance {workbench.name}",
        args=(
            "workbench",
            "instances",
            "describe",
            workbench.name,
            f"--location={workbench.zone}",
            f"--project={project_id}",
        ),
    )


def create_workbench(project_id: str, workbench: WorkbenchProfile) -> GcloudCommand:
    args = [
        "workbench",
        "instances",
        "create",
        workbench.name,
        f"--project={project_id}",
        f"--location={workbench.zone}",
        f"--machine-type={workbench.machine_type}",
        f"--boot-disk-type={workbench.boot_disk_type}",
        f"--boot-disk-size={workbench.boot_disk_size_gb}",
        f"--data-disk-size={workbench.data_disk_size_gb}",
        f"--data-disk-type={workbench.data_disk_type}",
    ]
    if workbench.install_gpu_driver:
        args.append("--install-gpu-driver")
    args.append("--quiet")
    return GcloudCommand(
        description=f"Create Workbench instance {workbench.name}",
        args=tuple(args),
    )


# GKE -------------------------------------------------------------------------
def describe_cluster(project_id: str, cluster: ClusterProfile) -> GcloudCommand:
    return GcloudCommand(
        description=f"Check GKE cluster {cluster.name}",
        args=(
            "container",
            "clusters",
            "describe",
            cluster.name,
            f"--zone={cluster.zone}",
            f"--project={project_id}",
        ),
    )


def create_cluster(project_id: str, cluster: ClusterProfile) -> GcloudCommand:
    return GcloudCommand(
        description=f"Create GKE cluster {cluster.name}",
        args=(
            "container",
            "clusters",
            "create",
            cluster.name,
            f"--project={project_id}",
            f"--zone={cluster.zone}",
            f"--machine-type={cluster.machine_type}",
            f"--accelerator={cluster.accelerator}",
            f"--num-nodes={cluster.num_nodes}",
            "--quiet",
        ),
    )


# Firewall --------------------------------------------------------------------
def describe_firewall_rule(project_id: str, rule: FirewallProfile) -> GcloudCommand:
    return GcloudCommand(
        description=f"Check firewall rule {rule.name}",
        args=(
            "compute",
            "firewall-rules",
            "describe",
            rule.name,
            f"--project={project_id}",
        ),
    )


def create_firewall_rule(project_id: str, rule: FirewallProfile) -> GcloudCommand:
    return GcloudCommand(
        description=f"Create firewall rule {rule.name}",
        args=(
            "compute",
            f"--project={project_id}",
            "firewall-rules",
            "create",
            rule.name,
            f"--direction={rule.direction}",
            f"--priority={rule.priority}",
            f"--network={rule.network}",
            f"--action={rule.action}",
            f"--rules={rule.rules}",
            f"--source-ranges={','.join(rule.source_ranges)}",
        ),
    )
