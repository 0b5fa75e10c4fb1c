"""Cleanup session wiring credentials, connection, scanner and pruner together."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType

from .config import AppConfig
from .connections import ConnectionFactory, DatabaseHandle
from .credentials import PACKAGE_DIR, CredentialResolver
from .models import ConnectionParameters, TableResult
from .pruner import DuplicatePruner, validate_versions_to_keep
from .report import ReportLog
from .tables import TableScanner

LOG = logging.getLogger(__name__)


class CleanupSession:
    """Owns one database handle for the duration of a cleanup run.

    Credentials are resolved and the connection opened on construction, so
    configuration and connection errors surface before any table is touched.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        resolver: CredentialResolver | None = None,
        factory: ConnectionFactory | None = None,
        report: ReportLog | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._resolver = resolver or CredentialResolver(
            Path(self._config.base_path) if self._config.base_path else PACKAGE_DIR,
            filename=self._config.env_filename,
            markers=self._config.search_markers,
            declaration_format=self._config.declaration_format,
        )
        self._factory = factory or ConnectionFactory(connect_timeout=self._config.connect_timeout)
        self._report = report or ReportLog(enabled=self._config.report != "none")
        self._results: tuple[TableResult, ...] = ()
        self._params: ConnectionParameters
        self._handle: DatabaseHandle
        self._params, self._handle = self._factory.connect(self._resolver.resolve())

    @property
    def parameters(self) -> ConnectionParameters:
        return self._params

    @property
    def report(self) -> ReportLog:
        return self._report

    @property
    def results(self) -> tuple[TableResult, ...]:
        """Per-table results of the most recent run."""

        return self._results

    def enable_output(self) -> None:
        self._report.enable()

    def disable_output(self) -> None:
        self._report.disable()

    def remove_version_duplicates(self, versions_to_keep: int | None = None) -> bool:
        """Prune every versioned table; True when no table failed."""

        keep = validate_versions_to_keep(
            self._config.versions_to_keep if versions_to_keep is None else versions_to_keep
        )
        scanner = TableScanner(self._handle, self._params.dbname, report=self._report)
        tables = scanner.list_versioned_tables()
        pruner = DuplicatePruner(self._handle, report=self._report)
        self._results = tuple(pruner.prune_tables(tables, keep))
        failed = [result.table.name for result in self._results if result.failed]
        if failed:
            LOG.warning("Clean up failed on %d table(s): %s", len(failed), ", ".join(failed))
        return not failed

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> CleanupSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = ["CleanupSession"]
