"""
Entra Audit - Cross-reference bulk identity lists against Microsoft Entra ID.

This package provides a modular framework for auditing users, groups,
authentication methods and devices through the Microsoft Graph API, driven
by CSV input files.
"""

__version__ = "1.0.0"
__author__ = "Entra Audit Team"
