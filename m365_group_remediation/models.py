"""
Remediation data models — the per-run types passed between components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Visibility(str, Enum):
    PUBLIC = "Public"
    PRIVATE = "Private"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Visibility":
        v = (value or "").strip().lower()
        if v == "public":
            return cls.PUBLIC
        if v == "private":
            return cls.PRIVATE
        return cls.UNKNOWN


class GroupKind(str, Enum):
    UNIFIED = "Unified"
    OTHER = "Other"


class TargetKind(str, Enum):
    SITE = "Site"
    GROUP_ONLY = "GroupOnly"


class OutcomeStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass(frozen=True)
class GroupRecord:
    """Read-only snapshot of a group under evaluation."""
    id: str
    display_name: str
    visibility: Visibility
    kind: GroupKind = GroupKind.UNIFIED
    raw_visibility: str = ""
    resource_provisioning_options: tuple[str, ...] = ()

    @classmethod
    def from_graph(cls, item: dict) -> "GroupRecord":
        group_types = item.get("groupTypes") or []
        raw_vis = item.get("visibility") or ""
        return cls(
            id=item["id"],
            display_name=item.get("displayName") or "",
            visibility=Visibility.parse(raw_vis),
            kind=GroupKind.UNIFIED if "Unified" in group_types else GroupKind.OTHER,
            raw_visibility=raw_vis,
            resource_provisioning_options=tuple(
                item.get("resourceProvisioningOptions") or ()
            ),
        )

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    @property
    def is_team(self) -> bool:
        return "Team" in self.resource_provisioning_options


@dataclass(frozen=True)
class RemediationTarget:
    """The resource a label is actually applied to."""
    group_id: str
    display_name: str
    target_kind: TargetKind
    site_url: Optional[str] = None


@dataclass(frozen=True)
class RemediationOutcome:
    """Result of one apply attempt. Exactly one per processed group."""
    group_id: str
    status: OutcomeStatus
    label_id: Optional[str] = None
    error_detail: Optional[str] = None
    target_kind: Optional[TargetKind] = None
    dry_run: bool = False

    @classmethod
    def success(
        cls,
        target: RemediationTarget,
        label_id: str,
        dry_run: bool = False,
    ) -> "RemediationOutcome":
        return cls(
            group_id=target.group_id,
            status=OutcomeStatus.SUCCESS,
            label_id=label_id,
            target_kind=target.target_kind,
            dry_run=dry_run,
        )

    @classmethod
    def failed(
        cls,
        group_id: str,
        error_detail: str,
        target_kind: Optional[TargetKind] = None,
    ) -> "RemediationOutcome":
        return cls(
            group_id=group_id,
            status=OutcomeStatus.FAILED,
            error_detail=error_detail or "Unknown error",
            target_kind=target_kind,
        )

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "status": self.status.value,
            "label_id": self.label_id,
            "error_detail": self.error_detail,
            "target_kind": self.target_kind.value if self.target_kind else None,
            "dry_run": self.dry_run,
        }


@dataclass
class RunCounters:
    """Aggregates accumulated across the per-item loop."""
    scanned: int = 0
    public: int = 0
    remediated: int = 0
    failed: int = 0
    site_targets: int = 0
    group_targets: int = 0

    def record(self, outcome: RemediationOutcome):
        if outcome.ok:
            self.remediated += 1
        else:
            self.failed += 1
        if outcome.target_kind is TargetKind.SITE:
            self.site_targets += 1
        elif outcome.target_kind is TargetKind.GROUP_ONLY:
            self.group_targets += 1

    def to_dict(self) -> dict:
        return {
            "total_scanned": self.scanned,
            "total_public": self.public,
            "total_remediated": self.remediated,
            "total_failed": self.failed,
            "site_targets": self.site_targets,
            "group_targets": self.group_targets,
        }


@dataclass
class RunSummary:
    """Everything one run produced, for the JSON export and exit code."""
    run_id: str
    label_id: str
    dry_run: bool = False
    started_at: str = ""
    completed_at: str = ""
    counters: RunCounters = field(default_factory=RunCounters)
    outcomes: list[RemediationOutcome] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    publish: Optional[Any] = None

    @property
    def has_failures(self) -> bool:
        return self.counters.failed > 0

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "label_id": self.label_id,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "counters": self.counters.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "artifacts": self.artifacts,
            "publish": self.publish.to_dict() if self.publish else None,
        }
