"""
Remediation Orchestrator — one sequential sweep over the public groups.

    Start → Enumerate → ReportSnapshot → ForEach(Resolve → Apply → Record) → End → Publish

Enumeration and the report snapshot run outside the per-item isolation: if the
group list cannot be read the run aborts before any label is touched. Inside
the loop, nothing raised while handling one group stops the next one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .directory import DirectoryClient, EnumerationError
from .labels import LabelApplicator
from .ledger import ActionLedger, NO_PUBLIC_GROUPS_LINE, report_line
from .models import GroupRecord, RemediationOutcome, RunSummary
from .publishing.publisher import EvidencePublisher
from .resolver import TargetResolver

logger = logging.getLogger("m365_group_remediation.orchestrator")


class RemediationOrchestrator:

    def __init__(
        self,
        directory: DirectoryClient,
        resolver: TargetResolver,
        applicator: LabelApplicator,
        ledger: ActionLedger,
        publisher: EvidencePublisher,
        label_id: str,
        run_id: str = "",
        dry_run: bool = False,
    ):
        self.directory = directory
        self.resolver = resolver
        self.applicator = applicator
        self.ledger = ledger
        self.publisher = publisher
        self.label_id = label_id
        self.summary = RunSummary(run_id=run_id, label_id=label_id, dry_run=dry_run)

    async def run(self) -> RunSummary:
        summary = self.summary
        counters = summary.counters
        summary.started_at = _now()
        mode = " (dry-run)" if summary.dry_run else ""
        self.ledger.log_action(
            f"Job started{mode}: run {summary.run_id}, corrective label {self.label_id}"
        )

        try:
            groups = await self.directory.list_unified_public_groups()
        except EnumerationError as e:
            self.ledger.log_action(f"FATAL: {e}")
            raise

        counters.scanned = self.directory.scanned_count
        counters.public = len(groups)
        self.ledger.log_action(
            f"Found {counters.public} public unified groups out of {counters.scanned} scanned"
        )
        self._write_report(groups)

        for index, group in enumerate(groups, start=1):
            logger.info(f"[{index}/{len(groups)}] {group.id} {group.display_name}")
            outcome = await self._process(group)
            summary.outcomes.append(outcome)
            counters.record(outcome)

        summary.completed_at = _now()
        self.ledger.log_action(
            f"Job completed: scanned={counters.scanned} public={counters.public} "
            f"remediated={counters.remediated} failed={counters.failed}"
        )

        summary.artifacts = [str(p) for p in self.ledger.artifacts]
        summary.publish = await self.publisher.publish(self.ledger.artifacts)
        if summary.publish.errors:
            for err in summary.publish.errors:
                self.ledger.log_action(f"ERROR: evidence publish failed: {err}")
        elif not summary.publish.skipped:
            self.ledger.log_action(
                f"Evidence published to {summary.publish.destination}"
            )
        return summary

    def _write_report(self, groups: list[GroupRecord]):
        if not groups:
            self.ledger.log_report(NO_PUBLIC_GROUPS_LINE)
            return
        for group in groups:
            self.ledger.log_report(report_line(group.id, group.display_name))

    async def _process(self, group: GroupRecord) -> RemediationOutcome:
        """Resolve and apply for one group; always returns an outcome."""
        target = None
        try:
            target = await self.resolver.resolve(group)
            outcome = await self.applicator.apply(target, self.label_id)
        except Exception as e:
            logger.exception(f"Unexpected error while remediating {group.id}")
            outcome = RemediationOutcome.failed(
                group.id,
                f"{type(e).__name__}: {e}",
                target.target_kind if target else None,
            )

        if not outcome.ok:
            try:
                self.ledger.log_action(
                    f"ERROR: GroupId={group.id}  Name='{group.display_name}'  "
                    f"{outcome.error_detail}"
                )
            except OSError:
                logger.exception(f"Could not record failure for {group.id}")
        return outcome


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

