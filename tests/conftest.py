"""
Shared fixtures: stand-in collaborators so the workflow can be tested
without a tenant or network.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from m365_group_remediation.graph.labels import SiteInfo
from m365_group_remediation.ledger import ActionLedger
from m365_group_remediation.models import GroupRecord, Visibility


FIXED_NOW = datetime(2024, 5, 1, 6, 0, 3, tzinfo=timezone.utc)
FIXED_STAMP = "2024-05-01 06:00:03"
LABEL_ID = "c0ffee00-0000-4000-8000-000000000001"


def make_group(gid: str, name: str = "", visibility: str = "Public") -> GroupRecord:
    return GroupRecord(
        id=gid,
        display_name=name or f"Group {gid}",
        visibility=Visibility.parse(visibility),
        raw_visibility=visibility,
    )


def graph_group(gid: str, name: str = "", visibility: str = "Public") -> dict:
    return {
        "id": gid,
        "displayName": name or f"Group {gid}",
        "visibility": visibility,
        "groupTypes": ["Unified"],
        "resourceProvisioningOptions": ["Team"],
    }


class FakeLabelClient:
    """
    Records every call. ``sites`` maps group id -> site url; ``fail_*`` sets
    hold ids/urls whose setter raises; ``lookup_errors`` hold ids whose lookup
    raises.
    """

    def __init__(
        self,
        sites: Optional[dict] = None,
        fail_site: Optional[set] = None,
        fail_group: Optional[set] = None,
        lookup_errors: Optional[set] = None,
        dry_run: bool = False,
    ):
        self.sites = sites or {}
        self.fail_site = fail_site or set()
        self.fail_group = fail_group or set()
        self.lookup_errors = lookup_errors or set()
        self.dry_run = dry_run
        self.calls: list[tuple] = []

    async def lookup_site(self, group_id: str) -> Optional[SiteInfo]:
        self.calls.append(("lookup_site", group_id))
        if group_id in self.lookup_errors:
            raise RuntimeError("sites endpoint unavailable")
        url = self.sites.get(group_id)
        return SiteInfo(id=f"site-{group_id}", web_url=url) if url else None

    async def set_site_label(self, site_url: str, label_id: str) -> dict:
        self.calls.append(("set_site_label", site_url, label_id))
        if site_url in self.fail_site:
            raise RuntimeError("site label rejected")
        return {"_dry_run": True} if self.dry_run else {}

    async def set_group_label(self, group_id: str, label_id: str) -> dict:
        self.calls.append(("set_group_label", group_id, label_id))
        if group_id in self.fail_group:
            raise RuntimeError("group label rejected")
        return {"_dry_run": True} if self.dry_run else {}

    def setter_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0].startswith("set_")]


class FakeDirectory:
    def __init__(self, groups: list[GroupRecord], error: Optional[Exception] = None):
        self.groups = groups
        self.error = error
        self.scanned_count = 0
        self.calls = 0

    async def list_unified_public_groups(self) -> list[GroupRecord]:
        self.calls += 1
        if self.error:
            raise self.error
        self.scanned_count = len(self.groups)
        return [g for g in self.groups if g.is_public]


class RecordingSink:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.published: list[tuple[Path, str]] = []
        # snapshot of file contents at publish time
        self.contents: dict[str, str] = {}

    async def publish(self, local_path: Path, destination: str) -> str:
        if self.error:
            raise self.error
        self.published.append((local_path, destination))
        self.contents[local_path.name] = local_path.read_text(encoding="utf-8")
        return f"{destination}/{local_path.name}"


@pytest.fixture
def ledger(tmp_path):
    led = ActionLedger(
        tmp_path / "GroupRemediation_Log_20240501T060000Z.txt",
        tmp_path / "GroupRemediation_Report_20240501T060000Z.txt",
        clock=lambda: FIXED_NOW,
    )
    led.open()
    yield led
    led.close()


def read_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()
