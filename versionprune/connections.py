"""Connection factory and the MySQL handle used by the scanner and pruner."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Protocol, Sequence, runtime_checkable

import pymysql
from pymysql.constants import CLIENT

from .models import ConnectionParameters

LOG = logging.getLogger(__name__)

MANDATORY_KEYS: tuple[str, ...] = ("host", "port", "dbname", "user", "password")

DEFAULT_PARAMETERS: Mapping[str, object] = {"port": 3306}


class ConfigError(RuntimeError):
    """Raised when credentials are missing, malformed or ambiguous."""


class DatabaseConnectionError(RuntimeError):
    """Raised when the driver cannot open a connection."""


class QueryError(RuntimeError):
    """Raised when a query or statement batch fails."""


@runtime_checkable
class DatabaseHandle(Protocol):
    """Capabilities the scanner and pruner need from a database connection."""

    def query(self, sql: str) -> Sequence[tuple[Any, ...]]:
        """Run a row-returning statement and return every row."""

    def execute(self, sql: str) -> int:
        """Run one or more statements as a unit and return the affected row count."""

    def quote(self, value: int | str) -> str:
        """Render a value as a safe SQL literal."""

    def close(self) -> None:
        """Release the underlying connection."""


HandleOpener = Callable[[ConnectionParameters], DatabaseHandle]


class PyMySQLHandle:
    """Runs SQL against MySQL/MariaDB via PyMySQL."""

    def __init__(self, connection: pymysql.connections.Connection) -> None:
        self._conn = connection

    @classmethod
    def open(cls, params: ConnectionParameters, *, connect_timeout: float = 5.0) -> PyMySQLHandle:
        try:
            connection = pymysql.connect(
                host=params.host,
                port=params.port,
                user=params.user,
                password=params.password,
                database=params.dbname,
                connect_timeout=connect_timeout,
                autocommit=False,
                client_flag=CLIENT.MULTI_STATEMENTS,
                charset="utf8mb4",
            )
        except pymysql.MySQLError as exc:
            raise DatabaseConnectionError(f"Failed to connect to {params.dsn}: {exc}") from exc
        LOG.info("Connected to %s", params.dsn)
        return cls(connection)

    def query(self, sql: str) -> list[tuple[Any, ...]]:
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(sql)
                return list(cursor.fetchall())
        except pymysql.MySQLError as exc:
            raise QueryError(str(exc)) from exc

    def execute(self, sql: str) -> int:
        affected = 0
        try:
            with self._conn.cursor() as cursor:
                affected += cursor.execute(sql)
                # Later statements in a multi-statement batch only report
                # (and raise) as their result sets are consumed.
                while cursor.nextset():
                    affected += max(cursor.rowcount, 0)
            self._conn.commit()
        except pymysql.MySQLError as exc:
            self._rollback()
            raise QueryError(str(exc)) from exc
        return affected

    def quote(self, value: int | str) -> str:
        return self._conn.escape(value)

    def close(self) -> None:
        try:
            self._conn.close()
        except pymysql.MySQLError:  # pragma: no cover - already closed
            LOG.debug("Connection already closed")

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except pymysql.MySQLError:  # pragma: no cover - connection lost
            LOG.exception("Rollback failed")


class ConnectionFactory:
    """Validates resolved credentials and opens a database handle."""

    def __init__(
        self,
        opener: HandleOpener | None = None,
        *,
        defaults: Mapping[str, object] = DEFAULT_PARAMETERS,
        connect_timeout: float = 5.0,
    ) -> None:
        self._defaults = dict(defaults)
        self._connect_timeout = connect_timeout
        self._opener = opener or self._open_pymysql

    def parameters(self, resolved: Mapping[str, object]) -> ConnectionParameters:
        """Merge ``resolved`` over the defaults and validate the result."""

        details: dict[str, object] = {**self._defaults, **resolved}
        missing = [key for key in MANDATORY_KEYS if key not in details]
        unexpected = sorted(set(details) - set(MANDATORY_KEYS))
        if missing:
            raise ConfigError(f"Problems with the database connection: missing {', '.join(missing)}")
        if unexpected:
            raise ConfigError(f"Unexpected connection parameters: {', '.join(unexpected)}")
        try:
            port = int(str(details["port"]).strip())
        except ValueError as exc:
            raise ConfigError(f"Database port is not an integer: {details['port']!r}") from exc
        return ConnectionParameters(
            host=str(details["host"]),
            port=port,
            dbname=str(details["dbname"]),
            user=str(details["user"]),
            password=str(details["password"]),
        )

    def connect(self, resolved: Mapping[str, object]) -> tuple[ConnectionParameters, DatabaseHandle]:
        params = self.parameters(resolved)
        return params, self._opener(params)

    def _open_pymysql(self, params: ConnectionParameters) -> DatabaseHandle:
        return PyMySQLHandle.open(params, connect_timeout=self._connect_timeout)


__all__ = [
    "ConfigError",
    "ConnectionFactory",
    "DatabaseConnectionError",
    "DatabaseHandle",
    "DEFAULT_PARAMETERS",
    "HandleOpener",
    "MANDATORY_KEYS",
    "PyMySQLHandle",
    "QueryError",
]
