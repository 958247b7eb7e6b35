"""
Label Applicator — applies the corrective sensitivity label to a resolved target.

One setter per call: Site targets are labelled at the site, GroupOnly targets
at the group. The resolver's target_kind decides; a failed site write is
reported as Failed and is not retried at group level.
"""

from __future__ import annotations

import logging

from .graph.labels import LabelClient
from .ledger import ActionLedger
from .models import RemediationOutcome, RemediationTarget, TargetKind

logger = logging.getLogger("m365_group_remediation.labels")


class LabelApplicator:

    def __init__(self, labels: LabelClient, ledger: ActionLedger):
        self.labels = labels
        self.ledger = ledger

    async def apply(self, target: RemediationTarget, label_id: str) -> RemediationOutcome:
        """Never raises; setter errors become a Failed outcome."""
        try:
            if target.target_kind is TargetKind.SITE and target.site_url:
                response = await self.labels.set_site_label(target.site_url, label_id)
            else:
                response = await self.labels.set_group_label(target.group_id, label_id)
        except Exception as e:
            detail = f"{type(e).__name__}: {e}"
            logger.warning(f"Label apply failed for {target.group_id}: {detail}")
            return RemediationOutcome.failed(target.group_id, detail, target.target_kind)

        if isinstance(response, dict) and response.get("_dry_run"):
            self.ledger.log_action(
                f"DRY-RUN: would apply label {label_id} to "
                f"{target.target_kind.value} GroupId={target.group_id}  "
                f"Name='{target.display_name}'"
            )
            return RemediationOutcome.success(target, label_id, dry_run=True)

        # The label is already applied; a ledger failure must not turn it into Failed.
        try:
            self.ledger.log_remediation(target.group_id, target.display_name, label_id)
        except OSError:
            logger.exception(f"Label applied to {target.group_id} but the log entry could not be written")
        return RemediationOutcome.success(target, label_id)
