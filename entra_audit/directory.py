"""
Directory operations on top of the Graph client.

The resolver maps identity keys to principals, the fetcher retrieves complete
relationship collections, and the mutator writes group memberships. Each takes
the shared GraphClient explicitly.
"""

import logging
from typing import Dict, List, Any
from urllib.parse import quote

from entra_audit.graph_client import GraphClient, GraphAPIError, NotFoundError, MalformedResponseError
from entra_audit.logging_setup import security_logger
from entra_audit.models import DirectoryPrincipal, RelationshipItem

logger = logging.getLogger(__name__)

ODATA_TYPE_PREFIX = '#microsoft.graph.'


class AmbiguousMatchError(GraphAPIError):
    """Raised when a display-name lookup matches more than one object."""
    kind = 'ambiguous'


def odata_kind(item: Dict[str, Any]) -> str:
    """Return the @odata.type of a Graph object without its namespace prefix."""
    odata_type = item.get('@odata.type') or ''
    if odata_type.startswith(ODATA_TYPE_PREFIX):
        return odata_type[len(ODATA_TYPE_PREFIX):]
    return odata_type


def _odata_literal(value: str) -> str:
    """Quote a string for use in an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


class DirectoryResolver:
    """Resolves identity keys to directory principals."""

    USER_SELECT = 'id,userPrincipalName,displayName,accountEnabled'
    DEVICE_SELECT = 'id,displayName,accountEnabled,deviceId'

    def __init__(self, client: GraphClient):
        self.client = client

    def resolve_user(self, upn: str) -> DirectoryPrincipal:
        """
        Look up a user by user principal name.

        Raises:
            NotFoundError: If no such user exists
            GraphAPIError: On any other lookup failure
        """
        data = self.client.request('GET', f"users/{quote(upn, safe='@')}",
                                   params={'$select': self.USER_SELECT})
        if not data.get('id'):
            raise MalformedResponseError(f"User lookup for {upn} returned no id")

        return DirectoryPrincipal(
            id=data['id'],
            principal_name=data.get('userPrincipalName') or upn,
            display_name=data.get('displayName') or '',
            enabled=bool(data.get('accountEnabled', True)),
            kind='user'
        )

    def resolve_device(self, name: str) -> DirectoryPrincipal:
        """
        Look up a device by exact display name.

        Exactly one device must match; zero matches raise NotFoundError and
        more than one raise AmbiguousMatchError.
        """
        devices = self.client.get_all('devices', params={
            '$filter': f"displayName eq {_odata_literal(name)}",
            '$select': self.DEVICE_SELECT
        })

        if not devices:
            raise NotFoundError(f"No device found with display name '{name}'")
        if len(devices) > 1:
            ids = ', '.join(device.get('id', '?') for device in devices)
            raise AmbiguousMatchError(f"{len(devices)} devices share display name '{name}': {ids}")

        device = devices[0]
        return DirectoryPrincipal(
            id=device['id'],
            principal_name=name,
            display_name=device.get('displayName') or name,
            enabled=bool(device.get('accountEnabled', True)),
            kind='device'
        )


class RelationshipFetcher:
    """Fetches the complete relationship collections of a principal."""

    def __init__(self, client: GraphClient):
        self.client = client

    def group_memberships(self, principal_id: str) -> List[RelationshipItem]:
        """Return every directory object the user is a direct member of."""
        objects = self.client.get_all(f"users/{principal_id}/memberOf",
                                      params={'$select': 'id,displayName'})
        return [
            RelationshipItem(
                id=obj.get('id', ''),
                kind=odata_kind(obj),
                display_name=obj.get('displayName') or ''
            )
            for obj in objects
        ]

    def authentication_methods(self, principal_id: str) -> List[RelationshipItem]:
        """Return every authentication method registered for the user."""
        methods = self.client.get_all(f"users/{principal_id}/authentication/methods")
        return [
            RelationshipItem(
                id=method.get('id', ''),
                kind=odata_kind(method),
                display_name=method.get('displayName') or ''
            )
            for method in methods
        ]


class GroupMutator:
    """Writes group memberships."""

    def __init__(self, client: GraphClient):
        self.client = client

    def add_member(self, group_id: str, object_id: str) -> None:
        """
        Add a directory object to a group.

        Membership is not checked beforehand; if the object is already a
        member Graph rejects the request and the error propagates.
        """
        body = {'@odata.id': f"{self.client.base_url}/directoryObjects/{object_id}"}
        try:
            self.client.request('POST', f"groups/{group_id}/members/$ref", body=body)
        except GraphAPIError:
            security_logger.log_membership_change('add', object_id, group_id, False)
            raise

        security_logger.log_membership_change('add', object_id, group_id, True)
        logger.info(f"Added {object_id} to group {group_id}")
