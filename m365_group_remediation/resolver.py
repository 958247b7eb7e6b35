"""
Remediation Target Resolver — picks the most specific resource to label.
"""

from __future__ import annotations

import logging

from .graph.labels import LabelClient, SiteAddressError, site_address
from .ledger import ActionLedger
from .models import GroupRecord, RemediationTarget, TargetKind

logger = logging.getLogger("m365_group_remediation.resolver")


class TargetResolver:
    """
    A group with a resolvable backing site is labelled at the site; anything
    else falls back to the group itself. A missing site is an expected path,
    recorded as INFO, and resolve() never raises.
    """

    def __init__(self, labels: LabelClient, ledger: ActionLedger):
        self.labels = labels
        self.ledger = ledger

    async def resolve(self, group: GroupRecord) -> RemediationTarget:
        site_url = None
        reason = "no backing site"
        try:
            site = await self.labels.lookup_site(group.id)
            if site is not None:
                site_address(site.web_url)
                site_url = site.web_url
        except SiteAddressError as e:
            reason = str(e)
        except Exception as e:
            reason = f"site lookup failed: {type(e).__name__}: {e}"
            logger.debug(f"Site lookup for {group.id} failed", exc_info=True)

        if site_url:
            self.ledger.log_action(
                f"INFO: GroupId={group.id} resolved to site {site_url}"
            )
            return RemediationTarget(
                group_id=group.id,
                display_name=group.display_name,
                target_kind=TargetKind.SITE,
                site_url=site_url,
            )

        self.ledger.log_action(
            f"INFO: GroupId={group.id} {reason}; labelling at group level"
        )
        return RemediationTarget(
            group_id=group.id,
            display_name=group.display_name,
            target_kind=TargetKind.GROUP_ONLY,
        )
