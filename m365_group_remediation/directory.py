"""
Directory Client — bulk enumeration of unified groups.
"""

from __future__ import annotations

import logging

import httpx

from .graph.client import GraphClient, GraphAPIError
from .models import GroupRecord

logger = logging.getLogger("m365_group_remediation.directory")

UNIFIED_GROUP_FILTER = "groupTypes/any(c:c eq 'Unified')"
GROUP_SELECT_FIELDS = "id,displayName,visibility,groupTypes,resourceProvisioningOptions"


class EnumerationError(Exception):
    """Raised when the group list cannot be read. Fatal to the run."""
    pass


def filter_public(groups: list[GroupRecord]) -> list[GroupRecord]:
    return [g for g in groups if g.is_public]


class DirectoryClient:
    """
    Reads every unified group in the tenant, following all pages before
    returning. Read-only.
    """

    def __init__(self, graph: GraphClient):
        self.graph = graph
        self.scanned_count = 0

    async def list_unified_groups(self) -> list[GroupRecord]:
        try:
            items = await self.graph.get_all_pages(
                "groups",
                params={
                    "$filter": UNIFIED_GROUP_FILTER,
                    "$select": GROUP_SELECT_FIELDS,
                },
            )
        except (GraphAPIError, httpx.HTTPError) as e:
            raise EnumerationError(f"Group enumeration failed: {e}") from e
        except Exception as e:
            raise EnumerationError(
                f"Group enumeration failed: {type(e).__name__}: {e}"
            ) from e

        try:
            groups = [GroupRecord.from_graph(item) for item in items]
        except (KeyError, TypeError, AttributeError) as e:
            raise EnumerationError(f"Group enumeration returned a malformed item: {e!r}") from e

        self.scanned_count = len(groups)
        logger.info(f"Enumerated {len(groups)} unified groups")
        return groups

    async def list_unified_public_groups(self) -> list[GroupRecord]:
        """
        Unified groups whose visibility is Public. The server filter only
        narrows by group type, so visibility is always checked here.
        """
        groups = filter_public(await self.list_unified_groups())
        logger.info(f"{len(groups)} of {self.scanned_count} unified groups are public")
        return groups
