"""Discovery of ``*_versions`` tables in the connected database."""

from __future__ import annotations

import logging

from .connections import DatabaseHandle
from .models import VERSIONED_SUFFIX, VersionedTable
from .report import NullReportSink, ReportSink

LOG = logging.getLogger(__name__)

LIST_TABLES_QUERY = "SHOW TABLES;"


def quote_identifier(name: str) -> str:
    """Backtick-quote an identifier, doubling any embedded backticks."""

    return "`" + name.replace("`", "``") + "`"


def is_versioned(name: str) -> bool:
    return name.endswith(VERSIONED_SUFFIX)


class TableScanner:
    """Lists tables and narrows them down to the versioned ones."""

    def __init__(self, handle: DatabaseHandle, dbname: str, *, report: ReportSink | None = None) -> None:
        self._handle = handle
        self._dbname = dbname
        self._report = report or NullReportSink()

    def list_tables(self) -> tuple[str, ...]:
        rows = self._handle.query(LIST_TABLES_QUERY)
        return tuple(str(row[0]) for row in rows if row)

    def list_versioned_tables(self) -> tuple[VersionedTable, ...]:
        tables = self.list_tables()
        self._report.notify(f"Accessed database successfully and found {len(tables)} tables.")
        versioned = tuple(
            VersionedTable(
                name=name,
                qualified=f"{quote_identifier(self._dbname)}.{quote_identifier(name)}",
            )
            for name in tables
            if is_versioned(name)
        )
        LOG.info("Found %d of %d tables ending in %s", len(versioned), len(tables), VERSIONED_SUFFIX)
        self._report.notify(f"Filtered out {len(versioned)} version tables to clean up.")
        return versioned


__all__ = ["LIST_TABLES_QUERY", "TableScanner", "is_versioned", "quote_identifier"]
