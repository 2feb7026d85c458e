#!/usr/bin/env python3
"""
Unit tests for the directory resolver, relationship fetcher and group mutator.

The Graph client is replaced by a mock so the tests exercise request shapes
and the mapping of Graph objects onto the shared models.
"""

import os
import sys
import unittest
from unittest.mock import Mock, patch

# Add parent directory to path to import entra_audit modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entra_audit.directory import (
    DirectoryResolver, RelationshipFetcher, GroupMutator, AmbiguousMatchError, odata_kind
)
from entra_audit.graph_client import NotFoundError, MalformedResponseError, GraphAPIError
from entra_audit.models import DirectoryPrincipal, RelationshipItem


class TestDirectoryResolver(unittest.TestCase):

    def setUp(self):
        self.client = Mock()
        self.resolver = DirectoryResolver(self.client)

    def test_resolve_user(self):
        self.client.request.return_value = {
            'id': 'u-1',
            'userPrincipalName': 'alice@contoso.com',
            'displayName': 'Alice',
            'accountEnabled': False
        }

        principal = self.resolver.resolve_user('alice@contoso.com')

        self.assertEqual(principal, DirectoryPrincipal(
            id='u-1', principal_name='alice@contoso.com', display_name='Alice', enabled=False, kind='user'))
        self.client.request.assert_called_once_with(
            'GET', 'users/alice@contoso.com',
            params={'$select': 'id,userPrincipalName,displayName,accountEnabled'})

    def test_resolve_user_quotes_path(self):
        self.client.request.return_value = {'id': 'u-2', 'accountEnabled': True}

        principal = self.resolver.resolve_user("o'brien#ext@contoso.com")

        path = self.client.request.call_args[0][1]
        self.assertEqual(path, 'users/o%27brien%23ext@contoso.com')
        self.assertEqual(principal.principal_name, "o'brien#ext@contoso.com")

    def test_resolve_user_not_found_propagates(self):
        self.client.request.side_effect = NotFoundError('HTTP 404: missing', status=404)

        with self.assertRaises(NotFoundError):
            self.resolver.resolve_user('ghost@contoso.com')

    def test_resolve_user_without_id(self):
        self.client.request.return_value = {}

        with self.assertRaises(MalformedResponseError):
            self.resolver.resolve_user('alice@contoso.com')

    def test_resolve_device(self):
        self.client.get_all.return_value = [{'id': 'd-1', 'displayName': 'PC-100', 'accountEnabled': True}]

        principal = self.resolver.resolve_device('PC-100')

        self.assertEqual(principal.id, 'd-1')
        self.assertEqual(principal.kind, 'device')
        params = self.client.get_all.call_args[1]['params']
        self.assertEqual(params['$filter'], "displayName eq 'PC-100'")

    def test_resolve_device_escapes_quotes(self):
        self.client.get_all.return_value = [{'id': 'd-2', 'displayName': "Bob's PC"}]

        self.resolver.resolve_device("Bob's PC")

        params = self.client.get_all.call_args[1]['params']
        self.assertEqual(params['$filter'], "displayName eq 'Bob''s PC'")

    def test_resolve_device_not_found(self):
        self.client.get_all.return_value = []

        with self.assertRaises(NotFoundError) as ctx:
            self.resolver.resolve_device('PC-100')

        self.assertIn('PC-100', str(ctx.exception))

    def test_resolve_device_ambiguous(self):
        self.client.get_all.return_value = [
            {'id': 'd-1', 'displayName': 'PC-100'},
            {'id': 'd-2', 'displayName': 'PC-100'}
        ]

        with self.assertRaises(AmbiguousMatchError) as ctx:
            self.resolver.resolve_device('PC-100')

        self.assertEqual(ctx.exception.kind, 'ambiguous')
        self.assertIn('d-1', str(ctx.exception))
        self.assertIn('d-2', str(ctx.exception))


class TestRelationshipFetcher(unittest.TestCase):

    def setUp(self):
        self.client = Mock()
        self.fetcher = RelationshipFetcher(self.client)

    def test_group_memberships(self):
        self.client.get_all.return_value = [
            {'@odata.type': '#microsoft.graph.group', 'id': 'g-1', 'displayName': 'W365-Sales'},
            {'@odata.type': '#microsoft.graph.directoryRole', 'id': 'r-1', 'displayName': 'Reader'},
            {'@odata.type': '#microsoft.graph.group', 'id': 'g-2', 'displayName': None}
        ]

        items = self.fetcher.group_memberships('u-1')

        self.assertEqual(items, [
            RelationshipItem(id='g-1', kind='group', display_name='W365-Sales'),
            RelationshipItem(id='r-1', kind='directoryRole', display_name='Reader'),
            RelationshipItem(id='g-2', kind='group', display_name='')
        ])
        self.client.get_all.assert_called_once_with('users/u-1/memberOf', params={'$select': 'id,displayName'})

    def test_authentication_methods(self):
        self.client.get_all.return_value = [
            {'@odata.type': '#microsoft.graph.passwordAuthenticationMethod', 'id': 'm-1'},
            {'@odata.type': '#microsoft.graph.unknownFutureMethod', 'id': 'm-2'}
        ]

        items = self.fetcher.authentication_methods('u-1')

        self.assertEqual([item.kind for item in items], ['passwordAuthenticationMethod', 'unknownFutureMethod'])
        self.client.get_all.assert_called_once_with('users/u-1/authentication/methods')

    def test_fetch_failure_propagates(self):
        self.client.get_all.side_effect = GraphAPIError('boom')

        with self.assertRaises(GraphAPIError):
            self.fetcher.group_memberships('u-1')

    def test_odata_kind(self):
        self.assertEqual(odata_kind({'@odata.type': '#microsoft.graph.group'}), 'group')
        self.assertEqual(odata_kind({'@odata.type': 'customType'}), 'customType')
        self.assertEqual(odata_kind({}), '')


class TestGroupMutator(unittest.TestCase):

    def setUp(self):
        self.client = Mock()
        self.client.base_url = 'https://graph.microsoft.com/v1.0'
        self.mutator = GroupMutator(self.client)

    @patch('entra_audit.directory.security_logger')
    def test_add_member(self, mock_security):
        self.client.request.return_value = {}

        self.mutator.add_member('g-1', 'd-1')

        self.client.request.assert_called_once_with(
            'POST', 'groups/g-1/members/$ref',
            body={'@odata.id': 'https://graph.microsoft.com/v1.0/directoryObjects/d-1'})
        mock_security.log_membership_change.assert_called_once_with('add', 'd-1', 'g-1', True)

    @patch('entra_audit.directory.security_logger')
    def test_add_member_failure_is_raised(self, mock_security):
        self.client.request.side_effect = GraphAPIError('HTTP 400: One or more added object references already exist')

        with self.assertRaises(GraphAPIError):
            self.mutator.add_member('g-1', 'd-1')

        mock_security.log_membership_change.assert_called_once_with('add', 'd-1', 'g-1', False)


if __name__ == '__main__':
    unittest.main()
