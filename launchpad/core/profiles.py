"""Profile loading utilities for provisioning runs."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SERVICES: tuple[str, ...] = (
    "tpu.googleapis.com",
    "notebooks.googleapis.com",
    "compute.googleapis.com",
    "aiplatform.googleapis.com",
    "iam.googleapis.com",
    "container.googleapis.com",
)
TPU_SCOPES = "https://www.googleapis.com/auth/cloud-platform"
PROFILE_SUFFIXES: tuple[str, ...] = (".yaml", ".yml")


class ProfileError(RuntimeError):
    """Raised when a provisioning profile fails validation."""


@dataclass(frozen=True)
class AcceleratorTier:
    """One priority tier of the TPU fallback search."""

    accelerator_type: str
    runtime_version: str
    zones: tuple[str, ...]


DEFAULT_TIERS: tuple[AcceleratorTier, ...] = (
    AcceleratorTier(
        accelerator_type="v6e-1",
        runtime_version="v2-alpha-tpuv6e",
        zones=(
            "us-central1-b",
            "us-east1-d",
            "us-east5-a",
            "us-east5-b",
            "europe-west4-a",
            "asia-northeast1-b",
            "southamerica-west1-a",
        ),
    ),
    AcceleratorTier(
        accelerator_type="v5e-1",
        runtime_version="v2-alpha-tpuv5-lite",
        zones=(
            "us-central1-a",
            "us-south1-a",
            "us-west1-c",
            "us-west4-a",
            "europe-west4-b",
        ),
    ),
)


@dataclass(frozen=True)
class BucketProfile:
    """Object storage bucket settings; the bucket is named after the project."""

    location: str = "us-central1"
    uniform_access: bool = True


@dataclass(frozen=True)
class TpuProfile:
    """Spot TPU VM settings and its zone search order."""

    name: str = "my-tpu-spot-vm"
    tiers: tuple[AcceleratorTier, ...] = DEFAULT_TIERS
    spot: bool = True
    scopes: str = TPU_SCOPES
    retry_delay_seconds: float = 10.0
    max_rounds: int | None = None

    def candidates(self) -> list[tuple[AcceleratorTier, str]]:
        """Return every (tier, zone) pair in the order they are attempted."""

        return [(tier, zone) for tier in self.tiers for zone in tier.zones]


@dataclass(frozen=True)
class WorkbenchProfile:
    """Vertex AI Workbench instance settings."""

    name: str = "my-workbench-g2"
    zone: str = "us-central1-a"
    machine_type: str = "g2-standard-4"
    boot_disk_type: str = "PD_BALANCED"
    boot_disk_size_gb: int = 150
    data_disk_type: str = "PD_BALANCED"
    data_disk_size_gb: int = 100
    install_gpu_driver: bool = True


@dataclass(frozen=True)
class ClusterProfile:
    """GKE cluster settings for the model-serving node pool."""

    name: str = "vllm-cluster"
    zone: str = "us-central1-a"
    machine_type: str = "g2-standard-16"
    accelerator: str = "type=nvidia-l4,count=1,gpu-driver-version=LATEST"
    num_nodes: int = 1


@dataclass(frozen=True)
class FirewallProfile:
    """Ingress rule exposing the notebook port."""

    name: str = "jupyter"
    network: str = "default"
    direction: str = "INGRESS"
    priority: int = 1000
    action: str = "ALLOW"
    rules: str = "tcp:8080"
    source_ranges: tuple[str, ...] = ("0.0.0.0/0",)


@dataclass(frozen=True)
class IamProfile:
    """Role granted to the default compute service account."""

    role: str = "roles/storage.admin"


@dataclass(frozen=True)
class ProvisioningProfile:
    """Complete profile definition."""

    identifier: str
    name: str
    description: str = ""
    services: tuple[str, ...] = DEFAULT_SERVICES
    iam: IamProfile = field(default_factory=IamProfile)
    bucket: BucketProfile = field(default_factory=BucketProfile)
    tpu: TpuProfile = field(default_factory=TpuProfile)
    workbench: WorkbenchProfile = field(default_factory=WorkbenchProfile)
    cluster: ClusterProfile = field(default_factory=ClusterProfile)
    firewall: FirewallProfile = field(default_factory=FirewallProfile)


def _require_mapping(payload: Any, section: str) -> Mapping[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ProfileError(f"'{section}' must be a mapping")
    return payload


def _integer(
    value: Any, section: str, *, minimum: int = 1, maximum: int | None = None
) -> int:
    if isinstance(value, (bool, float)):
        raise ProfileError(f"{section} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ProfileError(f"{section} must be an integer, got {value!r}") from exc
    if maximum is not None and not minimum <= number <= maximum:
        raise ProfileError(f"{section} must be between {minimum} and {maximum}")
    if number < minimum:
        raise ProfileError(f"{section} must be at least {minimum}")
    return number


def _flag(value: Any, section: str) -> bool:
    if not isinstance(value, bool):
        raise ProfileError(f"{section} must be true or false, got {value!r}")
    return value


def _string_list(value: Any, section: str) -> tuple[str, ...]:
    # A bare YAML string would otherwise be split into characters.
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ProfileError(f"{section} must be a list, got {value!r}")
    return tuple(str(item) for item in value)


def _load_tier(payload: Mapping[str, Any]) -> AcceleratorTier:
    accelerator_type = payload.get("accelerator_type")
    runtime_version = payload.get("runtime_version")
    if not accelerator_type or not runtime_version:
        raise ProfileError(
            "TPU tiers require both 'accelerator_type' and 'runtime_version'"
        )
    zones = _string_list(
        payload.get("zones", ()), f"TPU tier '{accelerator_type}' zones"
    )
    if not zones:
        raise ProfileError(f"TPU tier '{accelerator_type}' lists no zones")
    return AcceleratorTier(
        accelerator_type=str(accelerator_type),
        runtime_version=str(runtime_version),
        zones=zones,
    )


def _load_tpu(payload: Mapping[str, Any]) -> TpuProfile:
    defaults = TpuProfile()
    tiers_payload = payload.get("tiers")
    if tiers_payload is None:
        tiers = defaults.tiers
    else:
        if isinstance(tiers_payload, (str, bytes)) or not isinstance(
            tiers_payload, Sequence
        ):
            raise ProfileError("tpu.tiers must be a list of accelerator tiers")
        tiers = tuple(
            _load_tier(_require_mapping(tier, "tpu.tiers[]")) for tier in tiers_payload
        )
        if not tiers:
            raise ProfileError("tpu.tiers must list at least one accelerator tier")
    retry_raw = payload.get("retry_delay_seconds", defaults.retry_delay_seconds)
    try:
        retry_delay = float(retry_raw)
    except (TypeError, ValueError) as exc:
        raise ProfileError(
            f"tpu.retry_delay_seconds must be a number, got {retry_raw!r}"
        ) from exc
    if not math.isfinite(retry_delay) or retry_delay < 0:
        raise ProfileError("tpu.retry_delay_seconds must be non-negative")
    max_rounds_raw = payload.get("max_rounds")
    max_rounds = (
        _integer(max_rounds_raw, "tpu.max_rounds")
        if max_rounds_raw is not None
        else None
    )
    return TpuProfile(
        name=str(payload.get("name", defaults.name)),
        tiers=tiers,
        spot=_flag(payload.get("spot", defaults.spot), "tpu.spot"),
        scopes=str(payload.get("scopes", defaults.scopes)),
        retry_delay_seconds=retry_delay,
        max_rounds=max_rounds,
    )


def _load_bucket(payload: Mapping[str, Any]) -> BucketProfile:
    defaults = BucketProfile()
    return BucketProfile(
        location=str(payload.get("location", defaults.location)),
        uniform_access=_flag(
            payload.get("uniform_access", defaults.uniform_access),
            "bucket.uniform_access",
        ),
    )


def _load_workbench(payload: Mapping[str, Any]) -> WorkbenchProfile:
    defaults = WorkbenchProfile()
    boot_disk = _require_mapping(payload.get("boot_disk"), "workbench.boot_disk")
    data_disk = _require_mapping(payload.get("data_disk"), "workbench.data_disk")
    return WorkbenchProfile(
        name=str(payload.get("name", defaults.name)),
        zone=str(payload.get("zone", defaults.zone)),
        machine_type=str(payload.get("machine_type", defaults.machine_type)),
        boot_disk_type=str(boot_disk.get("type", defaults.boot_disk_type)),
        boot_disk_size_gb=_integer(
            boot_disk.get("size_gb", defaults.boot_disk_size_gb),
            "workbench.boot_disk.size_gb",
        ),
        data_disk_type=str(data_disk.get("type", defaults.data_disk_type)),
        data_disk_size_gb=_integer(
            data_disk.get("size_gb", defaults.data_disk_size_gb),
            "workbench.data_disk.size_gb",
        ),
        install_gpu_driver=_flag(
            payload.get("install_gpu_driver", defaults.install_gpu_driver),
            "workbench.install_gpu_driver",
        ),
    )


def _load_cluster(payload: Mapping[str, Any]) -> ClusterProfile:
    defaults = ClusterProfile()
    return ClusterProfile(
        name=str(payload.get("name", defaults.name)),
        zone=str(payload.get("zone", defaults.zone)),
        machine_type=str(payload.get("machine_type", defaults.machine_type)),
        accelerator=str(payload.get("accelerator", defaults.accelerator)),
        num_nodes=_integer(
            payload.get("num_nodes", defaults.num_nodes), "cluster.num_nodes"
        ),
    )


def _load_firewall(payload: Mapping[str, Any]) -> FirewallProfile:
    defaults = FirewallProfile()
    direction = str(payload.get("direction", defaults.direction)).upper()
    if direction not in {"INGRESS", "EGRESS"}:
        raise ProfileError("firewall.direction must be INGRESS or EGRESS")
    action = str(payload.get("action", defaults.action)).upper()
    if action not in {"ALLOW", "DENY"}:
        raise ProfileError("firewall.action must be ALLOW or DENY")
    source_ranges = _string_list(
        payload.get("source_ranges", defaults.source_ranges), "firewall.source_ranges"
    )
    if not source_ranges:
        raise ProfileError("firewall.source_ranges must list at least one range")
    return FirewallProfile(
        name=str(payload.get("name", defaults.name)),
        network=str(payload.get("network", defaults.network)),
        direction=direction,
        priority=_integer(
            payload.get("priority", defaults.priority),
            "firewall.priority",
            minimum=0,
            maximum=65535,
        ),
        action=action,
        rules=str(payload.get("rules", defaults.rules)),
        source_ranges=source_ranges,
    )


def load_profile(profile_path: Path) -> ProvisioningProfile:
    """Load a provisioning profile from disk."""

    if not profile_path.exists():
        raise ProfileError(f"Profile file not found: {profile_path}")
    with profile_path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, Mapping):
        raise ProfileError(f"Profile {profile_path} must contain a mapping")

    identifier = payload.get("id")
    name = payload.get("name")
    if not identifier or not name:
        raise ProfileError("Profiles require both 'id' and 'name'")
    services = _string_list(payload.get("services", DEFAULT_SERVICES), "services")
    if not services:
        raise ProfileError("services must list at least one API")
    iam_payload = _require_mapping(payload.get("iam"), "iam")
    return ProvisioningProfile(
        identifier=str(identifier),
        name=str(name),
        description=str(payload.get("description", "")),
        services=services,
        iam=IamProfile(role=str(iam_payload.get("role", IamProfile.role))),
        bucket=_load_bucket(_require_mapping(payload.get("bucket"), "bucket")),
        tpu=_load_tpu(_require_mapping(payload.get("tpu"), "tpu")),
        workbench=_load_workbench(
            _require_mapping(payload.get("workbench"), "workbench")
        ),
        cluster=_load_cluster(_require_mapping(payload.get("cluster"), "cluster")),
        firewall=_load_firewall(_require_mapping(payload.get("firewall"), "firewall")),
    )


def iter_profile_paths(profiles_dir: Path) -> list[Path]:
    """Return every profile file under ``profiles_dir``, sorted by name."""

    if not profiles_dir.is_dir():
        return []
    return sorted(
        path
        for path in profiles_dir.iterdir()
        if path.is_file() and path.suffix in PROFILE_SUFFIXES
    )


def discover_profile(project_root: Path, profile_id: str) -> Path:
    """Resolve profile file path from an identifier."""

    profiles_dir = project_root / "profiles"
    for suffix in PROFILE_SUFFIXES:
        candidate = profiles_dir / f"{profile_id}{suffix}"
        if candidate.is_file():
            return candidate
    raise ProfileError(f"Unable to locate profile '{profile_id}' in {profiles_dir}")
