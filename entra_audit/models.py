"""
Data models shared by the audit pipeline.
"""

from collections import Counter
from dataclasses import dataclass, field, fields, asdict
from types import MappingProxyType
from typing import Dict, Any, List, Mapping, Optional


@dataclass(frozen=True)
class InputRecord:
    """One row of the input CSV, in file order."""
    line_number: int
    values: Mapping[str, str]

    def __post_init__(self):
        # Freeze the row so audits cannot mutate shared input
        object.__setattr__(self, 'values', MappingProxyType(dict(self.values)))

    def get(self, column: Optional[str]) -> str:
        """Return the stripped value of a column, or '' when absent or empty."""
        if not column:
            return ''
        value = self.values.get(column)
        return value.strip() if isinstance(value, str) else ''


@dataclass(frozen=True)
class DirectoryPrincipal:
    """A resolved directory object (user or device)."""
    id: str
    principal_name: str
    display_name: str = ""
    enabled: bool = True
    kind: str = "user"


@dataclass(frozen=True)
class RelationshipItem:
    """An object related to a principal: a group membership or an authentication method."""
    id: str
    kind: str
    display_name: str = ""


class ResultRow:
    """Mixin for output rows; dataclass field order is the export column order."""

    @classmethod
    def columns(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GroupMatchRow(ResultRow):
    """A disabled user found in a matching group."""
    user_principal_name: str
    user_id: str
    group_name: str
    group_id: str
    account_enabled: bool


@dataclass(frozen=True)
class AuthMethodRow(ResultRow):
    """Registered authentication methods for one user."""
    user_principal_name: str
    display_name: str
    methods: str


@dataclass(frozen=True)
class DeviceAddRow(ResultRow):
    """A device successfully added to a group."""
    device_name: str
    device_id: str
    group_id: str


@dataclass
class RunCounters:
    """Process-wide accumulators for one audit run."""
    total_processed: int = 0
    error_count: int = 0
    result_count: int = 0
    errors_by_kind: Counter = field(default_factory=Counter)

    def record_error(self, kind: str) -> None:
        self.error_count += 1
        self.errors_by_kind[kind] += 1
