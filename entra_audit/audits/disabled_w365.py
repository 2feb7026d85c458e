"""
Disabled users that still belong to Windows 365 groups.

A row is reported for every group whose display name contains the configured
filter (default "w365", case-insensitive) when the user's account is disabled.
"""

import logging
from typing import Dict, List, Any

from entra_audit.graph_client import GraphClient
from entra_audit.models import InputRecord, DirectoryPrincipal, RelationshipItem, GroupMatchRow
from .base import AuditBase

logger = logging.getLogger(__name__)


class DisabledW365Audit(AuditBase):
    """Reports disabled accounts with lingering group memberships."""

    name = 'disabled_w365'
    title = 'Disabled users in W365 groups'
    result_type = GroupMatchRow

    def __init__(self, client: GraphClient, config: Dict[str, Any]):
        super().__init__(client, config)
        self.group_filter = str(self.settings.get('group_name_filter', 'w365')).lower()

    def matches(self, item: RelationshipItem, principal: DirectoryPrincipal) -> bool:
        return (item.kind == 'group'
                and self.group_filter in item.display_name.lower()
                and principal.enabled is False)

    def process(self, key: str, record: InputRecord) -> List[GroupMatchRow]:
        principal = self.resolver.resolve_user(key)

        if principal.enabled:
            # An enabled account never matches, skip the membership fetch
            logger.debug(f"{key} is enabled, no memberships to report")
            return []

        memberships = self.fetcher.group_memberships(principal.id)
        rows = [
            GroupMatchRow(
                user_principal_name=principal.principal_name,
                user_id=principal.id,
                group_name=item.display_name,
                group_id=item.id,
                account_enabled=principal.enabled
            )
            for item in memberships
            if self.matches(item, principal)
        ]

        if rows:
            logger.info(f"{key} is disabled and in {len(rows)} matching group(s)")
        return rows
