"""Shared fakes for the pruning tests."""

from __future__ import annotations

import re
from typing import Mapping

import pytest

from versionprune.connections import QueryError

_COUNT = re.compile(r"SELECT RecordID, COUNT\(ID\) FROM `[^`]+`\.`(?P<table>[^`]+)` GROUP BY RecordID;")
_DELETE = re.compile(
    r"DELETE FROM `[^`]+`\.`(?P<table>[^`]+)` WHERE RecordID = (?P<record>-?\d+) "
    r"ORDER BY Version ASC, ID ASC LIMIT (?P<limit>\d+);"
)


class FakeVersionDatabase:
    """In-memory stand-in for a MySQL handle holding ``(ID, RecordID, Version)`` rows."""

    def __init__(
        self,
        tables: Mapping[str, list[tuple[int, int, int]]] | None = None,
        *,
        failing_batches: set[str] | None = None,
        failing_counts: set[str] | None = None,
    ) -> None:
        self.tables: dict[str, list[tuple[int, int, int]]] = {
            name: list(rows) for name, rows in (tables or {}).items()
        }
        self.failing_batches = failing_batches or set()
        self.failing_counts = failing_counts or set()
        self.queries: list[str] = []
        self.batches: list[str] = []
        self.closed = False

    def query(self, sql: str) -> list[tuple[object, ...]]:
        self.queries.append(sql)
        if sql.startswith("SHOW TABLES"):
            return [(name,) for name in self.tables]
        match = _COUNT.fullmatch(sql)
        if match is None:
            raise QueryError(f"unexpected query: {sql}")
        table = match.group("table")
        if table in self.failing_counts:
            raise QueryError(f"Table '{table}' is locked")
        counts: dict[int, int] = {}
        for _, record_id, _ in self.tables[table]:
            counts[record_id] = counts.get(record_id, 0) + 1
        return list(counts.items())

    def execute(self, sql: str) -> int:
        self.batches.append(sql)
        statements = [line for line in sql.splitlines() if line.strip()]
        matches = [_DELETE.fullmatch(statement) for statement in statements]
        if any(match is None for match in matches):
            raise QueryError("You have an error in your SQL syntax")
        if any(match.group("table") in self.failing_batches for match in matches):
            raise QueryError("Lock wait timeout exceeded")
        deleted = 0
        for match in matches:
            table = match.group("table")
            record_id = int(match.group("record"))
            limit = int(match.group("limit"))
            victims = sorted(
                (row for row in self.tables[table] if row[1] == record_id),
                key=lambda row: (row[2], row[0]),
            )[:limit]
            for row in victims:
                self.tables[table].remove(row)
            deleted += len(victims)
        return deleted

    def quote(self, value: int | str) -> str:
        if isinstance(value, int):
            return str(value)
        return "'" + value.replace("'", "''") + "'"

    def close(self) -> None:
        self.closed = True

    def versions(self, table: str, record_id: int) -> list[int]:
        return sorted(row[2] for row in self.tables[table] if row[1] == record_id)


def version_rows(counts: Mapping[int, int], *, start_id: int = 1) -> list[tuple[int, int, int]]:
    """Build rows with versions ``1..n`` for every ``record_id: n`` pair."""

    rows: list[tuple[int, int, int]] = []
    next_id = start_id
    for record_id, total in counts.items():
        for version in range(1, total + 1):
            rows.append((next_id, record_id, version))
            next_id += 1
    return rows


@pytest.fixture
def page_database() -> FakeVersionDatabase:
    return FakeVersionDatabase(
        {
            "Page": version_rows({5: 1, 7: 1}),
            "Page_versions": version_rows({5: 4, 7: 1}),
            "SiteTree_versions": version_rows({1: 2, 2: 3}, start_id=100),
        }
    )
