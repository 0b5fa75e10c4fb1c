"""Deletion planning and execution for versioned tables.

Every versioned table is handled as an independent unit: its per-record
row counts are read, a deletion plan is derived, and the plan is sent to
the server as a single statement batch. A failure is recorded against that
table only and the pass moves on to the next one.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

from .connections import DatabaseHandle, QueryError
from .models import DeletionPlan, PlanEntry, PruneOutcome, TableResult, VersionedTable
from .report import NullReportSink, ReportOutcome, ReportSink

LOG = logging.getLogger(__name__)

COUNT_QUERY = "SELECT RecordID, COUNT(ID) FROM {table} GROUP BY RecordID;"
DELETE_STATEMENT = (
    "DELETE FROM {table} WHERE RecordID = {record_id} "
    "ORDER BY Version ASC, ID ASC LIMIT {limit};"
)


def validate_versions_to_keep(versions_to_keep: object) -> int:
    if isinstance(versions_to_keep, bool) or not isinstance(versions_to_keep, int):
        raise ValueError(f"versions_to_keep must be an integer, got {versions_to_keep!r}")
    if versions_to_keep < 1:
        raise ValueError(f"versions_to_keep must be at least 1, got {versions_to_keep}")
    return versions_to_keep


def plan_deletions(counts: Mapping[int, int], versions_to_keep: int) -> DeletionPlan:
    """Return the rows to drop per record so that ``versions_to_keep`` remain."""

    plan: list[PlanEntry] = []
    for record_id in sorted(counts):
        rows_to_delete = counts[record_id] - versions_to_keep
        if rows_to_delete > 0:
            plan.append(PlanEntry(record_id=record_id, rows_to_delete=rows_to_delete))
    return tuple(plan)


class DuplicatePruner:
    """Removes all but the newest versions of every record."""

    def __init__(self, handle: DatabaseHandle, *, report: ReportSink | None = None) -> None:
        self._handle = handle
        self._report = report or NullReportSink()

    def count_versions(self, table: VersionedTable) -> dict[int, int]:
        rows = self._handle.query(COUNT_QUERY.format(table=table.qualified))
        counts: dict[int, int] = {}
        for record_id, total in rows:
            if record_id is None:
                LOG.warning("%s: ignoring %s version rows without a RecordID", table.qualified, total)
                continue
            try:
                counts[int(record_id)] = int(total)
            except (TypeError, ValueError) as exc:
                raise QueryError(f"Unexpected RecordID {record_id!r} in {table.qualified}") from exc
        return counts

    def build_batch(self, table: VersionedTable, plan: DeletionPlan) -> str:
        statements = [
            DELETE_STATEMENT.format(
                table=table.qualified,
                record_id=self._handle.quote(int(entry.record_id)),
                limit=int(entry.rows_to_delete),
            )
            for entry in plan
        ]
        return "\n".join(statements)

    def prune_table(self, table: VersionedTable, versions_to_keep: int = 1) -> TableResult:
        versions_to_keep = validate_versions_to_keep(versions_to_keep)
        try:
            counts = self.count_versions(table)
        except QueryError as exc:
            LOG.error("Counting versions in %s failed: %s", table.qualified, exc)
            return self._finish(TableResult(table=table, outcome=PruneOutcome.FAILED, error=str(exc)))

        plan = plan_deletions(counts, versions_to_keep)
        if not plan:
            return self._finish(TableResult(table=table, outcome=PruneOutcome.SKIPPED))

        planned = sum(entry.rows_to_delete for entry in plan)
        try:
            deleted = self._handle.execute(self.build_batch(table, plan))
        except QueryError as exc:
            LOG.error("Clean up of %s failed: %s", table.qualified, exc)
            return self._finish(
                TableResult(
                    table=table,
                    outcome=PruneOutcome.FAILED,
                    planned_rows=planned,
                    error=str(exc),
                )
            )
        if deleted != planned:
            LOG.warning(
                "%s: planned to delete %d rows across %d records, server reported %d",
                table.qualified,
                planned,
                len(plan),
                deleted,
            )
        return self._finish(
            TableResult(
                table=table,
                outcome=PruneOutcome.SUCCEEDED,
                planned_rows=planned,
                deleted_rows=deleted,
            )
        )

    def prune_tables(
        self, tables: Iterable[VersionedTable], versions_to_keep: int = 1
    ) -> list[TableResult]:
        versions_to_keep = validate_versions_to_keep(versions_to_keep)
        return [self.prune_table(table, versions_to_keep) for table in tables]

    def prune_all(self, tables: Sequence[VersionedTable], versions_to_keep: int = 1) -> bool:
        """Prune every table; True unless at least one table failed."""

        results = self.prune_tables(tables, versions_to_keep)
        return not any(result.failed for result in results)

    def _finish(self, result: TableResult) -> TableResult:
        name = result.table.qualified
        if result.outcome is PruneOutcome.SKIPPED:
            LOG.info("Nothing to prune in %s", name)
            self._report.notify(f"Skipped {name} ...", inline=True)
        elif result.outcome is PruneOutcome.SUCCEEDED:
            LOG.info("Deleted %d rows from %s", result.deleted_rows, name)
            self._report.notify(f"Cleaned up {name} ...", inline=True, outcome=ReportOutcome.SUCCESS)
        else:
            self._report.notify(
                f"Clean up failed on {name} ...", inline=True, outcome=ReportOutcome.FAILURE
            )
        return result


__all__ = [
    "COUNT_QUERY",
    "DELETE_STATEMENT",
    "DuplicatePruner",
    "plan_deletions",
    "validate_versions_to_keep",
]
