"""Central configuration for provisioning runs."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from launchpad.core.profiles import (
    ProfileError,
    ProvisioningProfile,
    discover_profile,
    iter_profile_paths,
    load_profile,
)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT = PACKAGE_ROOT.parent

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()


# Base paths ----------------------------------------------------------------
PROFILES_DIR = PROJECT_ROOT / "profiles"
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
REPORTS_DIR = ARTIFACTS_DIR / "reports"

DEFAULT_PROFILE_ID = "default"
DEFAULT_GCLOUD_BIN = "gcloud"


@dataclass(frozen=True)
class LaunchpadSettings:
    """Resolved settings for a single provisioning run."""

    profile: ProvisioningProfile
    profile_path: Path
    project_id: str | None = None
    gcloud_bin: str = DEFAULT_GCLOUD_BIN
    reports_dir: Path = REPORTS_DIR


def _get_value(name: str, default: str | None, environ: Mapping[str, str]) -> str | None:
    value = environ.get(name)
    return value if value else default


def _env_int(name: str, default: int | None, environ: Mapping[str, str]) -> int | None:
    value = _get_value(name, None, environ)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float, environ: Mapping[str, str]) -> float:
    value = _get_value(name, None, environ)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_path(name: str, environ: Mapping[str, str]) -> Path | None:
    value = _get_value(name, None, environ)
    if not value:
        return None
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def resolve_profile(
    *,
    profile_id: str | None = None,
    profile_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[ProvisioningProfile, Path]:
    """Locate and load the active profile.

    Explicit arguments win over ``LAUNCHPAD_PROFILE_PATH`` and
    ``LAUNCHPAD_PROFILE``, which in turn win over the bundled default.
    """

    env = os.environ if environ is None else environ
    if profile_path is None and profile_id is None:
        profile_path = _env_path("LAUNCHPAD_PROFILE_PATH", env)
    if profile_path is not None:
        resolved = Path(profile_path).expanduser().resolve()
    else:
        identifier = profile_id or _get_value(
            "LAUNCHPAD_PROFILE", DEFAULT_PROFILE_ID, env
        )
        resolved = discover_profile(PROJECT_ROOT, str(identifier))
    return load_profile(resolved), resolved


def load_settings(
    *,
    profile_id: str | None = None,
    profile_path: Path | None = None,
    project_id: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LaunchpadSettings:
    """Build :class:`LaunchpadSettings` from a profile plus environment overrides."""

    env = os.environ if environ is None else environ
    profile, resolved_path = resolve_profile(
        profile_id=profile_id, profile_path=profile_path, environ=env
    )

    tpu = profile.tpu
    max_rounds = _env_int("LAUNCHPAD_TPU_MAX_ROUNDS", tpu.max_rounds, env)
    if max_rounds is not None and max_rounds < 1:
        raise ProfileError("LAUNCHPAD_TPU_MAX_ROUNDS must be at least 1")
    retry_delay = _env_float(
        "LAUNCHPAD_TPU_RETRY_DELAY_SECONDS", tpu.retry_delay_seconds, env
    )
    if not math.isfinite(retry_delay) or retry_delay < 0:
        raise ProfileError(
            "LAUNCHPAD_TPU_RETRY_DELAY_SECONDS must be a finite, non-negative number"
        )
    if max_rounds != tpu.max_rounds or retry_delay != tpu.retry_delay_seconds:
        profile = replace(
            profile,
            tpu=replace(tpu, max_rounds=max_rounds, retry_delay_seconds=retry_delay),
        )

    return LaunchpadSettings(
        profile=profile,
        profile_path=resolved_path,
        project_id=project_id or _get_value("LAUNCHPAD_PROJECT", None, env),
        gcloud_bin=_get_value("LAUNCHPAD_GCLOUD_BIN", DEFAULT_GCLOUD_BIN, env)
        or DEFAULT_GCLOUD_BIN,
        reports_dir=_env_path("LAUNCHPAD_REPORTS_DIR", env) or REPORTS_DIR,
    )


def list_profiles(active: Path | None = None) -> list[dict[str, object]]:
    """Return available profiles with metadata."""

    profiles: list[dict[str, object]] = []
    for path in iter_profile_paths(PROFILES_DIR):
        try:
            profile = load_profile(path)
        except ProfileError:
            continue
        profiles.append(
            {
                "id": profile.identifier,
                "name": profile.name,
                "description": profile.description,
                "path": str(path),
                "active": active is not None and path.resolve() == active.resolve(),
            }
        )
    return profiles
