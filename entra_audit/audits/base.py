"""
Base audit interface.

This module defines the abstract base class that all audit modules implement.
An audit turns one identity key into zero or more result rows using the
directory components built around the shared Graph client.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Any, Type

from entra_audit.directory import DirectoryResolver, RelationshipFetcher
from entra_audit.graph_client import GraphClient
from entra_audit.models import InputRecord, DirectoryPrincipal, RelationshipItem, ResultRow

logger = logging.getLogger(__name__)


class AuditError(Exception):
    """Raised when an audit is misconfigured or cannot process a row."""
    kind = 'invalid_row'


class AuditBase(ABC):
    """
    Abstract base class for audits.

    Subclasses set the class attributes below and implement process().
    """

    # Module name, also the key of the audit's section under 'audits' in the configuration
    name: str = ''
    title: str = ''
    result_type: Type[ResultRow] = ResultRow
    # Setting under 'input' that names the key column
    key_column_setting: str = 'identity_column'
    # Whether the result table is printed at the end of the run
    reports_results: bool = True
    result_label: str = 'Results'

    def __init__(self, client: GraphClient, config: Dict[str, Any]):
        """
        Initialize audit.

        Args:
            client: Authenticated (or lazily authenticating) Graph client
            config: Full application configuration
        """
        self.client = client
        self.config = config
        self.input_config = config.get('input', {})
        self.settings = config.get('audits', {}).get(self.name, {}) or {}
        self.resolver = DirectoryResolver(client)
        self.fetcher = RelationshipFetcher(client)

    @property
    def columns(self) -> List[str]:
        return self.result_type.columns()

    @property
    def key_column(self) -> str:
        return self.input_config.get(self.key_column_setting) or ''

    def prepare(self) -> None:
        """
        Validate audit settings before any row is processed.

        Raises:
            AuditError: If the audit cannot run with the current configuration
        """
        if not self.key_column:
            raise AuditError(f"No key column configured for audit '{self.name}' "
                             f"(input.{self.key_column_setting})")

    def matches(self, item: RelationshipItem, principal: DirectoryPrincipal) -> bool:
        """Predicate selecting relationship items that produce a result row."""
        return True

    @abstractmethod
    def process(self, key: str, record: InputRecord) -> List[ResultRow]:
        """
        Process one input row.

        Args:
            key: Non-empty, stripped value of the key column
            record: The full input row

        Returns:
            Result rows for this input row (possibly empty)

        Raises:
            GraphAPIError: On any lookup, fetch or write failure
            AuditError: If the row cannot be processed
        """
        pass
