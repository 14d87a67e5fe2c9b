# sqlrunner/management/db_utils.py

"""
Database connection and statement execution for Azure SQL Database (pyodbc)
and Azure Database for PostgreSQL (psycopg2).
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extensions

from sqlrunner import config
from sqlrunner.errors import ExecutionError

logger = logging.getLogger(__name__)

# A batch separator is GO alone on its line, optionally followed by a repeat count.
GO_SEPARATOR_RE = re.compile(r'[ \t]*GO(?:[ \t]+(\d+))?[ \t]*(?:--.*)?', re.IGNORECASE)


@dataclass
class ResultSet:
    columns: List[str] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    rows_affected: int = -1


def _scan_line(line: str, in_string: bool, in_comment: bool) -> Tuple[bool, bool]:
    """Tracks whether the end of line is inside a '...' literal or a /* */ comment."""
    i = 0
    while i < len(line):
        pair = line[i:i + 2]
        if in_comment:
            if pair == '*/':
                in_comment = False
                i += 1
        elif in_string:
            # '' is an escaped quote: it closes and immediately reopens.
            if line[i] == "'":
                in_string = False
        elif line[i] == "'":
            in_string = True
        elif pair == '--':
            break
        elif pair == '/*':
            in_comment = True
            i += 1
        i += 1
    return in_string, in_comment


def split_batches(script: str) -> List[str]:
    """Splits a T-SQL script on GO separator lines.

    'GO n' repeats the preceding batch n times, as sqlcmd does. A GO line inside
    a string literal or a block comment belongs to the batch.

    Args:
        script: Full script text.

    Returns:
        Non-empty batches in order.
    """
    batches: List[str] = []
    current: List[str] = []
    in_string = in_comment = False

    for line in script.splitlines(keepends=True):
        match = None
        if not in_string and not in_comment:
            match = GO_SEPARATOR_RE.fullmatch(line.rstrip('\r\n'))
        if match:
            batch = ''.join(current).strip()
            repeat = int(match.group(1)) if match.group(1) else 1
            if batch:
                batches.extend([batch] * repeat)
            current = []
            continue
        current.append(line)
        in_string, in_comment = _scan_line(line, in_string, in_comment)

    tail = ''.join(current).strip()
    if tail:
        batches.append(tail)
    return batches


def fetch_result_sets(cursor: Any) -> List[ResultSet]:
    """Collects every result set pending on a DB-API cursor.

    Args:
        cursor: A cursor that has just executed a statement.

    Returns:
        One ResultSet per result; statements without rows report rows_affected only.
    """
    results: List[ResultSet] = []
    while True:
        if cursor.description:
            columns = [column[0] for column in cursor.description]
            rows = [tuple(row) for row in cursor.fetchall()]
            results.append(ResultSet(columns=columns, rows=rows, rows_affected=len(rows)))
        elif cursor.rowcount is not None and cursor.rowcount >= 0:
            results.append(ResultSet(rows_affected=cursor.rowcount))

        next_set = getattr(cursor, 'nextset', None)
        if next_set is None:
            break
        try:
            if not next_set():
                break
        except psycopg2.NotSupportedError:
            break
    return results


def build_odbc_connection_string(request: Any, driver: str = config.ODBC_DRIVER) -> str:
    """Builds the ODBC connection string for Azure SQL Database."""
    port = request.port or config.DEFAULT_PORTS[config.ENGINE_SQLSERVER]
    return (
        f"DRIVER={{{driver}}};"
        f"SERVER=tcp:{request.host},{port};"
        f"DATABASE={request.database};"
        f"UID={request.login};"
        f"PWD={{{request.password.replace('}', '}}')}}};"
        "Encrypt=yes;TrustServerCertificate=no;"
        f"Connection Timeout={request.connect_timeout};"
    )


class SqlServerClient:
    """Executes statements against Azure SQL Database through pyodbc."""

    def __init__(self, driver: str = config.ODBC_DRIVER):
        self.driver = driver

    def connect(self, request: Any):
        # Imported here so the PostgreSQL path does not need an ODBC driver manager.
        import pyodbc

        logger.info(f"Connecting to {request.host} / {request.database} as {request.login}...")
        return pyodbc.connect(build_odbc_connection_string(request, self.driver), autocommit=True)

    def execute(self, request: Any, statement: str) -> List[ResultSet]:
        """Runs the statement, batch by batch, on a single connection.

        Args:
            request: The execution request (connection details).
            statement: Final statement text, variables already substituted.

        Returns:
            All result sets produced by all batches.

        Raises:
            ExecutionError: If connecting or executing fails.
        """
        import pyodbc

        batches = split_batches(statement)
        results: List[ResultSet] = []
        conn = None
        try:
            conn = self.connect(request)
            if request.query_timeout:
                conn.timeout = request.query_timeout
            cursor = conn.cursor()
            for number, batch in enumerate(batches, start=1):
                logger.debug(f"Executing batch {number}/{len(batches)}:\n{batch}")
                cursor.execute(batch)
                results.extend(fetch_result_sets(cursor))
            cursor.close()
        except pyodbc.Error as e:
            raise ExecutionError(f"SQL Server error: {e}") from e
        finally:
            if conn:
                conn.close()
        return results


class PostgresClient:
    """Executes statements against Azure Database for PostgreSQL through psycopg2."""

    def connect(self, request: Any) -> psycopg2.extensions.connection:
        logger.info(f"Connecting to {request.host} / {request.database} as {request.login}...")
        options = None
        if request.query_timeout:
            options = f"-c statement_timeout={int(request.query_timeout * 1000)}"
        conn = psycopg2.connect(
            host=request.host,
            port=request.port or config.DEFAULT_PORTS[config.ENGINE_POSTGRES],
            dbname=request.database,
            user=request.login,
            password=request.password,
            sslmode='require',
            connect_timeout=request.connect_timeout,
            options=options,
        )
        conn.autocommit = True
        return conn

    def execute(self, request: Any, statement: str) -> List[ResultSet]:
        """Runs the statement as one round-trip; psycopg2 only exposes the last result.

        Raises:
            ExecutionError: If connecting or executing fails.
        """
        conn = None
        try:
            conn = self.connect(request)
            with conn.cursor() as cursor:
                logger.debug(f"Executing statement:\n{statement}")
                cursor.execute(statement)
                return fetch_result_sets(cursor)
        except psycopg2.Error as e:
            raise ExecutionError(f"PostgreSQL error: {e}") from e
        finally:
            if conn:
                conn.close()


def get_sql_client(engine: str, driver: Optional[str] = None):
    """Returns the SQL client for the given engine."""
    if engine == config.ENGINE_POSTGRES:
        return PostgresClient()
    return SqlServerClient(driver or config.ODBC_DRIVER)


def describe(result_sets: Sequence[ResultSet]) -> str:
    """One-line summary used in log output."""
    with_rows = sum(1 for r in result_sets if r.columns)
    total = sum(len(r.rows) for r in result_sets)
    return f"{with_rows} result set(s), {total} row(s)"
