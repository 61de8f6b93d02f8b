"""Run-manifest utilities for scrape reproducibility and week-over-week diffs."""
from __future__ import annotations

import hashlib
import subprocess
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from authref.authref_types import ServiceAuthorizationReference
from authref.io_utils import load_json, save_json

MANIFEST_VERSION = "1.0"
MANIFEST_FILENAME = "run_manifest.json"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(UTC).isoformat()


def generate_run_id(prefix: str = "scrape") -> str:
    """Generate a compact run id suitable for artifact naming."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}_{ts}_{uuid4().hex[:8]}"


def default_manifest_path(output_path: Path) -> Path:
    """Return canonical sidecar manifest path for a reference file."""
    return output_path.parent / MANIFEST_FILENAME


def git_commit_hash(*, search_from: Path | None = None) -> str | None:
    """Best-effort current git commit hash for reproducibility metadata."""
    cwd = (search_from or Path.cwd())
    if cwd.is_file():
        cwd = cwd.parent
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    if proc.returncode != 0:
        return None
    out = proc.stdout.strip()
    return out if out else None


def file_sha256(path: Path) -> str | None:
    """SHA-256 of *path*, or None if it does not exist."""
    if not path.exists():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()


def record_counts(
    references: Sequence[ServiceAuthorizationReference],
) -> dict[str, int]:
    """Totals per record kind across all services."""
    counts = {
        "services": len(references),
        "actions": 0,
        "action_resource_types": 0,
        "resource_types": 0,
        "condition_keys": 0,
    }
    for ref in references:
        for kind, n in ref.counts().items():
            counts[kind] += n
        counts["action_resource_types"] += sum(
            len(a.resource_types) for a in ref.actions
        )
    return counts


def build_manifest(
    *,
    run_id: str,
    output_path: Path,
    input_source: dict[str, Any],
    references: Sequence[ServiceAuthorizationReference],
    timings_sec: dict[str, float],
    git_commit: str | None = None,
    notes: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build canonical manifest payload for a written reference file."""
    return {
        "manifest_version": MANIFEST_VERSION,
        "created_at": utc_now_iso(),
        "run_id": run_id,
        "output_path": str(output_path),
        "output_sha256": file_sha256(output_path),
        "git_commit": git_commit,
        "input_source": input_source,
        "record_counts": record_counts(references),
        "timings_sec": timings_sec,
        "notes": notes or {},
    }


def write_manifest(output_path: Path, manifest: dict[str, Any]) -> Path:
    """Write the manifest next to the reference file."""
    path = default_manifest_path(output_path)
    save_json(manifest, path, pretty=True, sort_keys=True)
    return path


def load_manifest(path: Path) -> dict[str, Any]:
    """Load a manifest from JSON."""
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid manifest payload in {path}")
    return data


def compare_manifests(
    current: dict[str, Any],
    previous: dict[str, Any],
) -> dict[str, Any]:
    """Compare two manifest payloads and produce deterministic deltas."""
    curr_counts = current.get("record_counts", {})
    prev_counts = previous.get("record_counts", {})
    curr_counts = curr_counts if isinstance(curr_counts, dict) else {}
    prev_counts = prev_counts if isinstance(prev_counts, dict) else {}

    keys = sorted(set(curr_counts.keys()) | set(prev_counts.keys()))
    count_delta: dict[str, int] = {}
    for key in keys:
        curr_val = int(curr_counts.get(key, 0) or 0)
        prev_val = int(prev_counts.get(key, 0) or 0)
        count_delta[key] = curr_val - prev_val

    curr_sha = current.get("output_sha256")
    prev_sha = previous.get("output_sha256")

    return {
        "current_run_id": current.get("run_id"),
        "previous_run_id": previous.get("run_id"),
        "output_changed": curr_sha != prev_sha,
        "record_count_delta": count_delta,
    }
