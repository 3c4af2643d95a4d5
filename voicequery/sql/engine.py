"""
voicequery/sql/engine.py
=========================
Data Engine — VoiceQuery

Responsibility:
    - Own the DuckDB connection the generated SQL runs against
    - Describe the queryable dataset as DDL for the text-to-SQL service
    - Prepare generated SQL (discover column names and types) before any
      row is produced, then stream rows in batches
    - Prepend provenance columns (generated SQL, transcript) on request

Threading:
    A DuckDB connection must not be shared between threads. Every public
    call here works on its own cursor, so the engine can be used from the
    request threads of the HTTP layer.

This module does NOT:
    - Generate SQL (see voicequery.sql.translation_client)
    - Rewrite or sanitize the generated SQL
"""

import logging
import threading
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import duckdb

from voicequery.errors import QueryPreparationError

logger = logging.getLogger("voicequery.sql.engine")

DEFAULT_BATCH_SIZE = 2048

PROVENANCE_SQL_COLUMN = "_generated_sql"
PROVENANCE_TRANSCRIPT_COLUMN = "_transcription"

_SCHEMA_QUERY = """
    SELECT sql
    FROM duckdb_tables()
    WHERE NOT internal
      AND schema_name NOT IN ('pg_catalog', 'information_schema')
    ORDER BY database_name, schema_name, table_name
"""


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Column:
    name: str
    type: str

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type}


class PreparedQuery:
    """
    Generated SQL whose result shape is known but whose rows are not yet
    produced.

    ``leading`` values are prepended to every row; they back the
    provenance columns.
    """

    def __init__(
        self,
        sql: str,
        columns: Sequence[Column],
        cursor,
        leading: Tuple = (),
    ) -> None:
        self.sql = sql
        self.columns: List[Column] = list(columns)
        self._cursor = cursor
        self._leading = tuple(leading)
        self._consumed = False

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def with_provenance(self, transcript: str) -> "PreparedQuery":
        """Same query with the SQL and transcript as two leading VARCHAR columns."""
        columns = [
            Column(PROVENANCE_SQL_COLUMN, "VARCHAR"),
            Column(PROVENANCE_TRANSCRIPT_COLUMN, "VARCHAR"),
        ] + self.columns
        return PreparedQuery(
            self.sql,
            columns,
            self._cursor,
            leading=(self.sql, transcript) + self._leading,
        )

    def rows(self, batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[tuple]:
        """
        Execute the query and yield result rows, fetched ``batch_size`` at
        a time. A prepared query can be executed once.

        Raises:
            QueryPreparationError: If execution fails.
        """
        if self._consumed:
            raise RuntimeError("Prepared query has already been executed.")
        self._consumed = True

        try:
            self._cursor.execute(self.sql)
            while True:
                batch = self._cursor.fetchmany(batch_size)
                if not batch:
                    break
                for row in batch:
                    yield self._leading + tuple(row)
        except duckdb.Error as exc:
            raise QueryPreparationError(self.sql, str(exc)) from exc
        finally:
            self.close()

    def fetchall(self) -> List[tuple]:
        return list(self.rows())

    def close(self) -> None:
        try:
            self._cursor.close()
        except duckdb.Error as exc:
            logger.debug("Cursor close failed: %s", exc)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class DataEngine:
    """DuckDB database the voice queries are answered from."""

    def __init__(self, database: str = ":memory:", connection=None) -> None:
        self.database = database
        self._con = connection if connection is not None else duckdb.connect(database)
        self._lock = threading.Lock()

    @property
    def connection(self):
        return self._con

    def cursor(self):
        with self._lock:
            return self._con.cursor()

    def execute(self, sql: str, parameters: Optional[Sequence] = None) -> None:
        """Run a statement for its side effects (setup, loading data)."""
        cur = self.cursor()
        try:
            if parameters is None:
                cur.execute(sql)
            else:
                cur.execute(sql, parameters)
        finally:
            cur.close()

    def extract_schema(self) -> str:
        """
        CREATE TABLE statements for every user table, joined by "; ".

        Internal tables and the pg_catalog / information_schema schemas are
        skipped. Any failure yields an empty string; the service then gets
        an empty schema rather than the caller an error.
        """
        try:
            cur = self.cursor()
            try:
                rows = cur.execute(_SCHEMA_QUERY).fetchall()
            finally:
                cur.close()
        except duckdb.Error as exc:
            logger.warning("Schema extraction failed: %s", exc)
            return ""

        statements = [sql.strip().rstrip(";").strip() for (sql,) in rows if sql]
        ddl = "; ".join(s for s in statements if s)
        logger.debug("Extracted schema for %d tables (%d chars).", len(statements), len(ddl))
        return ddl

    def prepare(self, sql: str) -> PreparedQuery:
        """
        Bind ``sql`` on a fresh cursor and read its result shape without
        producing any rows.

        Raises:
            QueryPreparationError: If the SQL does not parse or bind, or is
                                   not a statement that returns rows.
        """
        statement = sql.strip().rstrip(";").strip()
        if not statement:
            raise QueryPreparationError(sql, "Empty statement")

        cur = self.cursor()
        try:
            # DESCRIBE binds the query and reports its columns without running it.
            described = cur.execute(f"DESCRIBE {statement}").fetchall()
        except duckdb.Error as exc:
            cur.close()
            raise QueryPreparationError(sql, str(exc)) from exc

        columns = [Column(str(row[0]), str(row[1])) for row in described]
        logger.debug("Prepared SQL with %d columns.", len(columns))
        return PreparedQuery(statement, columns, cur)

    def close(self) -> None:
        self._con.close()
