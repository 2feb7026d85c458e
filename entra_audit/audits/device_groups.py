"""
Add devices to a group by display name.

The target group comes from the row's group column when configured and
non-empty, otherwise from audits.device_groups.group_id.
"""

import logging
from typing import Dict, List, Any

from entra_audit.directory import GroupMutator
from entra_audit.graph_client import GraphClient
from entra_audit.models import InputRecord, DeviceAddRow
from .base import AuditBase, AuditError

logger = logging.getLogger(__name__)


class DeviceGroupsAudit(AuditBase):
    """Adds each listed device to its target group."""

    name = 'device_groups'
    title = 'Devices added to group'
    result_type = DeviceAddRow
    key_column_setting = 'device_column'
    reports_results = False
    result_label = 'Added to group'

    def __init__(self, client: GraphClient, config: Dict[str, Any]):
        super().__init__(client, config)
        self.group_id = self.settings.get('group_id')
        self.group_column = self.input_config.get('group_column')
        self.mutator = GroupMutator(client)

    def prepare(self) -> None:
        super().prepare()
        if not self.group_id and not self.group_column:
            raise AuditError("Audit 'device_groups' needs a target group: set audits.device_groups.group_id, "
                             "pass --group-id, or set input.group_column")

    def process(self, key: str, record: InputRecord) -> List[DeviceAddRow]:
        group_id = record.get(self.group_column) or self.group_id
        if not group_id:
            raise AuditError(f"No target group for device '{key}'")

        device = self.resolver.resolve_device(key)
        self.mutator.add_member(group_id, device.id)

        return [DeviceAddRow(device_name=key, device_id=device.id, group_id=group_id)]
