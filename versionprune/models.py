"""Shared dataclasses used across the resolver, scanner and pruner modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

VERSIONED_SUFFIX = "_versions"


@dataclass(frozen=True, slots=True)
class ConnectionParameters:
    """Validated credentials for a single database."""

    host: str
    port: int
    dbname: str
    user: str
    password: str = field(repr=False)

    @property
    def dsn(self) -> str:
        """Password-free connection string suitable for logs."""

        return f"mysql://{self.user}@{self.host}:{self.port}/{self.dbname}"


@dataclass(frozen=True, slots=True)
class VersionedTable:
    """A ``*_versions`` table and its escaped, database-qualified reference."""

    name: str
    qualified: str


@dataclass(frozen=True, slots=True)
class PlanEntry:
    """Number of oldest version rows to drop for one record."""

    record_id: int
    rows_to_delete: int


DeletionPlan = tuple[PlanEntry, ...]


class PruneOutcome(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TableResult:
    """Outcome of one table's pruning pass."""

    table: VersionedTable
    outcome: PruneOutcome
    planned_rows: int = 0
    deleted_rows: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.outcome is PruneOutcome.FAILED


__all__ = [
    "ConnectionParameters",
    "DeletionPlan",
    "PlanEntry",
    "PruneOutcome",
    "TableResult",
    "VERSIONED_SUFFIX",
    "VersionedTable",
]
