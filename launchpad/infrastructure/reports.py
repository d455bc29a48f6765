"""Persist provisioning run reports as JSON artefacts."""

from __future__ import annotations

import json
from pathlib import Path

from launchpad.domain.contracts import report_to_contract
from launchpad.domain.models import ProvisioningReport


def _ensure_unique_path(path: Path) -> Path:
    candidate = path
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        counter += 1
    return candidate


def write_report(report: ProvisioningReport, reports_dir: Path) -> Path:
    """Validate ``report`` and write it under ``reports_dir``.

    Returns the path of the written file. Existing reports are never
    overwritten; a numeric suffix is appended instead.
    """

    payload = report_to_contract(report).model_dump(mode="json")
    reports_dir.mkdir(parents=True, exist_ok=True)
    filename = f"provision_{report.started_at.strftime('%Y%m%dT%H%M%SZ')}.json"
    report_path = _ensure_unique_path(reports_dir / filename)
    report_path.write_text(
        json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8"
    )
    return report_path
