"""Tests for target resolution and label application."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from m365_group_remediation.labels import LabelApplicator
from m365_group_remediation.ledger import parse_remediation_events
from m365_group_remediation.models import (
    OutcomeStatus,
    RemediationTarget,
    TargetKind,
)
from m365_group_remediation.resolver import TargetResolver

from conftest import FakeLabelClient, LABEL_ID, make_group, read_lines

SITE = "https://contoso.sharepoint.com/sites/Sales"


class TestTargetResolver:

    @pytest.mark.asyncio
    async def test_site_found(self, ledger):
        labels = FakeLabelClient(sites={"g-1": SITE})
        target = await TargetResolver(labels, ledger).resolve(make_group("g-1", "Sales"))
        assert target.target_kind is TargetKind.SITE
        assert target.site_url == SITE
        assert target.group_id == "g-1"
        assert target.display_name == "Sales"

    @pytest.mark.asyncio
    async def test_no_site_degrades_to_group(self, ledger):
        labels = FakeLabelClient()
        target = await TargetResolver(labels, ledger).resolve(make_group("g-1"))
        assert target.target_kind is TargetKind.GROUP_ONLY
        assert target.site_url is None
        line = read_lines(ledger.log_path)[-1]
        assert "INFO:" in line and "group level" in line
        assert "ERROR" not in line

    @pytest.mark.asyncio
    async def test_lookup_error_never_raises(self, ledger):
        labels = FakeLabelClient(lookup_errors={"g-1"})
        target = await TargetResolver(labels, ledger).resolve(make_group("g-1"))
        assert target.target_kind is TargetKind.GROUP_ONLY
        assert "site lookup failed" in read_lines(ledger.log_path)[-1]

    @pytest.mark.asyncio
    async def test_unusable_site_url_degrades(self, ledger):
        labels = FakeLabelClient(sites={"g-1": "not-a-url"})
        target = await TargetResolver(labels, ledger).resolve(make_group("g-1"))
        assert target.target_kind is TargetKind.GROUP_ONLY


class TestLabelApplicator:

    @pytest.mark.asyncio
    async def test_site_target_uses_site_setter_only(self, ledger):
        labels = FakeLabelClient()
        target = RemediationTarget("g-1", "Sales", TargetKind.SITE, SITE)
        outcome = await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
        assert outcome.status is OutcomeStatus.SUCCESS
        assert labels.setter_calls() == [("set_site_label", SITE, LABEL_ID)]

    @pytest.mark.asyncio
    async def test_group_target_uses_group_setter_only(self, ledger):
        labels = FakeLabelClient()
        target = RemediationTarget("g-1", "Sales", TargetKind.GROUP_ONLY)
        outcome = await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
        assert outcome.ok
        assert labels.setter_calls() == [("set_group_label", "g-1", LABEL_ID)]

    @pytest.mark.asyncio
    async def test_site_failure_is_not_retried_at_group_level(self, ledger):
        labels = FakeLabelClient(fail_site={SITE})
        target = RemediationTarget("g-1", "Sales", TargetKind.SITE, SITE)
        outcome = await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
        assert outcome.status is OutcomeStatus.FAILED
        assert "site label rejected" in outcome.error_detail
        assert outcome.label_id is None
        assert labels.setter_calls() == [("set_site_label", SITE, LABEL_ID)]
        assert parse_remediation_events(read_lines(ledger.log_path)) == []

    @pytest.mark.asyncio
    async def test_success_writes_two_parseable_lines(self, ledger):
        labels = FakeLabelClient()
        target = RemediationTarget("g-9", "Finance", TargetKind.GROUP_ONLY)
        await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
        lines = read_lines(ledger.log_path)
        assert len(lines) == 2
        event = parse_remediation_events(lines)[0]
        assert (event.group_id, event.display_name, event.label_id) == ("g-9", "Finance", LABEL_ID)

    @pytest.mark.asyncio
    async def test_applying_twice_succeeds_both_times(self, ledger):
        labels = FakeLabelClient()
        applicator = LabelApplicator(labels, ledger)
        target = RemediationTarget("g-1", "Sales", TargetKind.GROUP_ONLY)
        first = await applicator.apply(target, LABEL_ID)
        second = await applicator.apply(target, LABEL_ID)
        assert first.ok and second.ok
        assert first.label_id == second.label_id == LABEL_ID

    @pytest.mark.asyncio
    async def test_log_write_failure_keeps_success(self, ledger):
        labels = FakeLabelClient()
        target = RemediationTarget("g-1", "Sales", TargetKind.GROUP_ONLY)
        with patch.object(ledger, "log_remediation", side_effect=OSError("disk full")):
            outcome = await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.label_id == LABEL_ID
        assert labels.setter_calls() == [("set_group_label", "g-1", LABEL_ID)]

    @pytest.mark.asyncio
    async def test_dry_run_writes_single_marker_line(self, ledger):
        labels = FakeLabelClient(dry_run=True)
        target = RemediationTarget("g-1", "Sales", TargetKind.GROUP_ONLY)
        outcome = await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
        assert outcome.ok and outcome.dry_run
        lines = read_lines(ledger.log_path)
        assert len(lines) == 1
        assert "DRY-RUN:" in lines[0]
        assert parse_remediation_events(lines) == []


@pytest.mark.asyncio
async def test_no_site_means_group_setter_end_to_end(ledger):
    """Resolver returns no site, so only the group-level path is used."""
    labels = FakeLabelClient()
    group = make_group("g-b", "B")
    target = await TargetResolver(labels, ledger).resolve(group)
    outcome = await LabelApplicator(labels, ledger).apply(target, LABEL_ID)
    assert outcome.ok
    assert [c[0] for c in labels.setter_calls()] == ["set_group_label"]
