"""
JSON exporter — machine-readable summary of one remediation run.
Written beside the ledger artifacts; not published to the watcher's container.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .. import __version__
from ..models import RunSummary


def export_json(
    summary: RunSummary,
    filepath: Path,
    guardian_audit: Optional[dict] = None,
    graph_stats: Optional[dict] = None,
) -> Path:
    """
    Write the run summary to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)

    payload: dict[str, Any] = {
        "metadata": {
            "engine": "M365 Public Group Remediation",
            "version": __version__,
            "run_id": summary.run_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "DRY-RUN" if summary.dry_run else "REMEDIATE",
        },
        "run": summary.to_dict(),
        "safety": (guardian_audit or {}).get("safety_guardian", {}),
        "graph": graph_stats or {},
    }

    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
