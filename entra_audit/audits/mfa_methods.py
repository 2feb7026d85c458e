"""
Registered authentication methods per user.

Method type codes are mapped to readable labels. Codes without a label are
reported as-is so new method types still show up.
"""

import logging
from typing import List

from entra_audit.models import InputRecord, AuthMethodRow
from .base import AuditBase

logger = logging.getLogger(__name__)

METHOD_LABELS = {
    'passwordAuthenticationMethod': 'Password',
    'microsoftAuthenticatorAuthenticationMethod': 'Microsoft Authenticator',
    'phoneAuthenticationMethod': 'Phone',
    'fido2AuthenticationMethod': 'FIDO2 Security Key',
    'windowsHelloForBusinessAuthenticationMethod': 'Windows Hello for Business',
    'emailAuthenticationMethod': 'Email',
    'softwareOathAuthenticationMethod': 'Software OATH Token',
    'temporaryAccessPassAuthenticationMethod': 'Temporary Access Pass',
    'x509CertificateAuthenticationMethod': 'Certificate-based Authentication',
    'platformCredentialAuthenticationMethod': 'Platform Credential',
}

UNKNOWN_METHOD_LABEL = 'unknown'


def method_label(code: str) -> str:
    """Return the label for a method type code, or the code itself when unknown."""
    if not code:
        return UNKNOWN_METHOD_LABEL
    return METHOD_LABELS.get(code, code)


class MFAMethodsAudit(AuditBase):
    """Reports the authentication methods each user has registered."""

    name = 'mfa_methods'
    title = 'Registered authentication methods'
    result_type = AuthMethodRow

    def process(self, key: str, record: InputRecord) -> List[AuthMethodRow]:
        principal = self.resolver.resolve_user(key)
        methods = self.fetcher.authentication_methods(principal.id)

        labels = [method_label(method.kind) for method in methods]
        unknown = [method.kind for method in methods if method.kind not in METHOD_LABELS]
        if unknown:
            logger.debug(f"{key} has unlabelled method types: {', '.join(unknown)}")

        return [AuthMethodRow(
            user_principal_name=principal.principal_name,
            display_name=principal.display_name,
            methods=', '.join(labels)
        )]
