"""
Audit modules.

Each module defines one AuditBase subclass and is loaded by name at runtime.
"""

AVAILABLE_AUDITS = ('disabled_w365', 'mfa_methods', 'device_groups')
