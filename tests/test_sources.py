#!/usr/bin/env python3
"""
Unit tests for the CSV row source.
"""

import os
import sys
import shutil
import tempfile
import unittest

# Add parent directory to path to import entra_audit modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entra_audit.sources import CSVRowSource, InputFileError, read_records


class TestCSVRowSource(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix='entra_audit_sources_')

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_csv(self, content, name='input.csv', encoding='utf-8'):
        path = os.path.join(self.temp_dir, name)
        with open(path, 'w', newline='', encoding=encoding) as f:
            f.write(content)
        return path

    def test_records_in_file_order(self):
        path = self.write_csv("UserPrincipalName,Department\n"
                              "a@contoso.com,Sales\n"
                              "b@contoso.com,IT\n"
                              ",HR\n")

        records = list(CSVRowSource(path, 'UserPrincipalName').open())

        self.assertEqual([r.get('UserPrincipalName') for r in records], ['a@contoso.com', 'b@contoso.com', ''])
        self.assertEqual([r.line_number for r in records], [1, 2, 3])
        self.assertEqual(records[1].get('Department'), 'IT')

    def test_values_are_stripped_and_missing_cells_are_empty(self):
        path = self.write_csv("UserPrincipalName,Extra\n  c@contoso.com  \n")

        record = next(iter(CSVRowSource(path, 'UserPrincipalName').open()))

        self.assertEqual(record.get('UserPrincipalName'), 'c@contoso.com')
        self.assertEqual(record.get('Extra'), '')
        self.assertEqual(record.get('Unknown'), '')
        self.assertEqual(record.get(None), '')

    def test_byte_order_mark_is_ignored(self):
        path = self.write_csv("UserPrincipalName\na@contoso.com\n", encoding='utf-8-sig')

        records = list(CSVRowSource(path, 'UserPrincipalName').open())

        self.assertEqual(records[0].get('UserPrincipalName'), 'a@contoso.com')

    def test_records_are_immutable(self):
        path = self.write_csv("UserPrincipalName\na@contoso.com\n")
        record = next(read_records(path))

        with self.assertRaises(TypeError):
            record.values['UserPrincipalName'] = 'other'

    def test_restartable(self):
        path = self.write_csv("UserPrincipalName\na@contoso.com\nb@contoso.com\n")
        source = CSVRowSource(path, 'UserPrincipalName').open()

        first = [r.get('UserPrincipalName') for r in source]
        second = [r.get('UserPrincipalName') for r in source]

        self.assertEqual(first, second)

    def test_semicolon_delimiter(self):
        path = self.write_csv("DeviceName;GroupId\nPC-100;g-1\n")

        record = next(iter(CSVRowSource(path, 'DeviceName', delimiter=';').open()))

        self.assertEqual(record.get('GroupId'), 'g-1')

    def test_missing_file_is_fatal(self):
        with self.assertRaises(InputFileError):
            CSVRowSource(os.path.join(self.temp_dir, 'missing.csv'), 'UserPrincipalName').open()

    def test_missing_key_column_is_fatal(self):
        path = self.write_csv("Email\na@contoso.com\n")

        with self.assertRaises(InputFileError) as ctx:
            CSVRowSource(path, 'UserPrincipalName').open()

        self.assertIn('Email', str(ctx.exception))

    def test_empty_file_is_fatal(self):
        path = self.write_csv("")

        with self.assertRaises(InputFileError):
            CSVRowSource(path, 'UserPrincipalName').open()

    def test_undecodable_file_is_fatal(self):
        path = os.path.join(self.temp_dir, 'binary.csv')
        with open(path, 'wb') as f:
            f.write(b"UserPrincipalName\n\xff\xfe\xfa\n")

        with self.assertRaises(InputFileError):
            list(read_records(path, encoding='utf-8'))


if __name__ == '__main__':
    unittest.main()
