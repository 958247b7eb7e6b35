"""
Safety Guardian — Restricts tenant writes to label assignment.
Validates all HTTP methods, blocks any other write, and logs safety events.
In dry-run mode allowed writes are recorded but never sent.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("m365_group_remediation.safety")

# ─── Write Allow-List ────────────────────────────────────────────────────────

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# The only writes this job is allowed to perform. Anything below the group or
# site itself (members, owners, drive, lists, permissions) never matches.
ALLOWED_WRITE_ENDPOINTS = [
    ("PATCH", re.compile(r"/(?:v1\.0|beta)/groups/[^/?:]+/?$")),        # assignedLabels
    ("PATCH", re.compile(r"/(?:v1\.0|beta)/sites/[^/?:]+:/[^:?]*$")),   # sites/{host}:/{path}
    ("PATCH", re.compile(r"/(?:v1\.0|beta)/sites/[^/?:]+/?$")),         # sites/{site-id}
]


class SafetyViolation(Exception):
    """Raised when a write outside the allow-list is attempted."""
    pass


class SafetyGuardian:
    """
    Validates every outbound Graph request.
    Maintains an audit log of checks, allowed writes and violations.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.violations: list[dict] = []
        self.writes: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """
        Validate a request against the allow-list.

        Returns True if the request should be sent, False if it is an allowed
        write suppressed by dry-run. Raises SafetyViolation otherwise.
        """
        self.checks_performed += 1
        method_upper = method.upper()

        if method_upper in ("GET", "HEAD", "OPTIONS"):
            return True

        for allowed_method, pattern in ALLOWED_WRITE_ENDPOINTS:
            if method_upper == allowed_method and pattern.search(url):
                self._record_write(method_upper, url, body)
                if self.dry_run:
                    logger.info(f"DRY-RUN: suppressed {method_upper} {url}")
                    return False
                return True

        if method_upper in WRITE_METHODS:
            self._record_violation(method_upper, url, "Write outside allow-list")
            raise SafetyViolation(
                f"SAFETY VIOLATION: Write method blocked: {method_upper} {url}"
            )

        return True

    def _record_write(self, method: str, url: str, body: Optional[dict]):
        self.writes.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "body": body,
            "sent": not self.dry_run,
        })

    def _record_violation(self, method: str, url: str, reason: str):
        """Record a safety violation for audit."""
        violation = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        }
        self.violations.append(violation)
        logger.critical(f"SAFETY VIOLATION: {reason} — {method} {url}")

    def get_audit_record(self) -> dict:
        """Return the full safety audit record."""
        return {
            "safety_guardian": {
                "mode": "DRY-RUN" if self.dry_run else "REMEDIATE",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "writes_allowed": len(self.writes),
                "writes": self.writes,
                "violations_detected": len(self.violations),
                "violations": self.violations,
                "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
            }
        }

    def print_banner(self):
        """Print the run-mode banner."""
        print("=" * 75)
        if self.dry_run:
            print("  DRY-RUN -- PUBLIC GROUPS WILL BE REPORTED BUT NOT CHANGED")
            print("  * Label writes are validated and logged, never sent")
        else:
            print("  REMEDIATION RUN -- PUBLIC GROUPS WILL BE LABELLED")
            print("  * Only sensitivity-label writes are permitted")
        print("  * Safety Guardian validates every request before execution")
        print("=" * 75)
