"""
Graph calls behind the resolver and applicator: site lookup and the two
sensitivity-label setters. Both setters are PATCH ("set") operations, so
re-applying a label the target already carries succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from .client import GraphClient

logger = logging.getLogger("m365_group_remediation.graph.labels")


class SiteAddressError(ValueError):
    """Raised when a site URL cannot be turned into a Graph site address."""
    pass


@dataclass(frozen=True)
class SiteInfo:
    id: str
    web_url: str


def site_address(site_url: str) -> str:
    """
    https://contoso.sharepoint.com/sites/Marketing
        -> sites/contoso.sharepoint.com:/sites/Marketing
    """
    parts = urlsplit(site_url or "")
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise SiteAddressError(f"Not an absolute site URL: {site_url!r}")
    path = parts.path.rstrip("/") or "/"
    return f"sites/{parts.hostname}:{path}"


class LabelClient:
    """Site lookup and label assignment against Microsoft Graph."""

    def __init__(self, graph: GraphClient):
        self.graph = graph

    async def lookup_site(self, group_id: str) -> Optional[SiteInfo]:
        """Root site of a group's document library, or None if it has none."""
        data = await self.graph.get(
            f"groups/{group_id}/sites/root",
            params={"$select": "id,webUrl"},
        )
        if data.get("_not_found") or data.get("_forbidden"):
            logger.debug(f"No root site visible for group {group_id}")
            return None
        web_url = data.get("webUrl")
        if not web_url:
            return None
        return SiteInfo(id=data.get("id", ""), web_url=web_url)

    async def set_site_label(self, site_url: str, label_id: str) -> dict:
        endpoint = site_address(site_url)
        logger.debug(f"Setting label {label_id} on site {site_url}")
        return await self.graph.patch(
            endpoint,
            {"sensitivityLabel": {"sensitivityLabelId": label_id}},
            beta=True,
        )

    async def set_group_label(self, group_id: str, label_id: str) -> dict:
        logger.debug(f"Setting label {label_id} on group {group_id}")
        return await self.graph.patch(
            f"groups/{group_id}",
            {"assignedLabels": [{"labelId": label_id}]},
        )
