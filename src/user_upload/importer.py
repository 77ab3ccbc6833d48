"""user_upload.importer

Streaming import of a users CSV into PostgreSQL.

Phases of one run:
  1. connect:  skipped for a dry run unless force_connect is set;
               verifies the users table shape after connecting
  2. open:     opens the CSV row stream
  3. drain:    one outcome per line; skipped rows are logged and the run
               continues, duplicates are counted as not inserted, any
               other insert failure aborts the run
  4. report:   prints the tally

Inserts run on an autocommit connection, so rows written before an abort
stay in the table.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

import psycopg
from psycopg import errors
from psycopg.conninfo import make_conninfo

from user_upload.csv_stream import Accepted, CsvRowStream, Skipped
from user_upload.normalize import NormalizedRow
from user_upload.schema import SchemaStatus, inspect_users_table
from user_upload.shared import (
    DatabaseConnectionError,
    ImportTally,
    InsertFatalError,
    RejectWriter,
    Reporter,
    SchemaError,
    UploadError,
    write_run_report,
)

log = logging.getLogger(__name__)

INSERT_SQL = (
    "INSERT INTO users (name, surname, email) "
    "VALUES (%(name)s, %(surname)s, %(email)s)"
)

ConnectFn = Callable[[], psycopg.Connection]


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

def build_conninfo(
    dsn: str | None = None,
    user: str | None = None,
    password: str | None = None,
    host: str | None = None,
    dbname: str | None = None,
    port: int | None = None,
) -> str:
    """Merge explicit credentials over a base DSN.

    Anything left unset falls back to libpq defaults (PGHOST, PGUSER, ...).
    """
    overrides = {
        "user": user,
        "password": password,
        "host": host,
        "dbname": dbname,
        "port": port,
    }
    return make_conninfo(
        dsn or "", **{k: v for k, v in overrides.items() if v is not None}
    )


def connect(conninfo: str) -> psycopg.Connection:
    try:
        conn = psycopg.connect(conninfo, autocommit=True)
    except psycopg.Error as exc:
        raise DatabaseConnectionError(f"Connection error: {exc}") from exc
    log.debug("Connected to %s", conn.info.host or "default host")
    return conn


def ensure_schema(conn: psycopg.Connection) -> None:
    try:
        status = inspect_users_table(conn)
    except psycopg.Error as exc:
        raise SchemaError(f"Could not inspect table 'users': {exc}") from exc
    if status is SchemaStatus.MISSING:
        raise SchemaError(
            "Table 'users' does not exist. Run with --create_table first."
        )
    if status is SchemaStatus.INCOMPATIBLE:
        raise SchemaError(
            "Table 'users' is not compatible: columns name, surname and email "
            "must hold more than 127 characters. Drop it and run with "
            "--create_table first."
        )


# ---------------------------------------------------------------------------
# Insert
# ---------------------------------------------------------------------------

class InsertResult(enum.Enum):
    INSERTED = "inserted"
    CONFLICT = "conflict"
    FATAL = "fatal"


@dataclass(frozen=True)
class InsertOutcome:
    result: InsertResult
    detail: str = ""


def insert_user(conn: psycopg.Connection, row: NormalizedRow) -> InsertOutcome:
    """Insert one row.  Duplicate emails are CONFLICT, other errors FATAL."""
    try:
        cur = conn.execute(INSERT_SQL, row.as_params(), prepare=True)
    except errors.UniqueViolation as exc:
        return InsertOutcome(InsertResult.CONFLICT, str(exc).strip())
    except psycopg.Error as exc:
        return InsertOutcome(InsertResult.FATAL, str(exc).strip())
    if cur.rowcount < 1:
        return InsertOutcome(InsertResult.CONFLICT, f"no row inserted for {row.email}")
    return InsertOutcome(InsertResult.INSERTED)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class ImportPipeline:
    """One CSV import.  The tally is reset at the start of every ``run``."""

    def __init__(
        self,
        reporter: Reporter,
        connect_fn: ConnectFn,
        rejects: RejectWriter | None = None,
        report_path: Path | None = None,
    ) -> None:
        self.reporter = reporter
        self.connect_fn = connect_fn
        self.rejects = rejects or RejectWriter(None)
        self.report_path = report_path
        self.tally = ImportTally()
        self.warnings: list[str] = []

    def run(self, path: str, dry_run: bool = False, force_connect: bool = False) -> int:
        self.tally = ImportTally()
        self.warnings = []
        started_at = datetime.utcnow().isoformat()
        conn: psycopg.Connection | None = None
        try:
            if not dry_run or force_connect:
                conn = self.connect_fn()
                self.reporter.status("Connected to database")
                ensure_schema(conn)

            with CsvRowStream(path) as stream:
                self.reporter.status(f"Opened {path} for reading")
                self._drain(stream, conn, dry_run)
        except UploadError as exc:
            self.reporter.error(str(exc))
            return 1
        finally:
            if conn is not None:
                conn.close()
            self.rejects.close()

        self.reporter.info(
            f"Processed {self.tally.rows_accepted} out of "
            f"{self.tally.lines_seen} lines"
        )
        if dry_run:
            self.reporter.info("Dry run: no changes were made to the database")
        if self.report_path is not None:
            write_run_report(
                self.report_path,
                self.reporter.run_id or str(uuid.uuid4()),
                started_at,
                dry_run,
                path,
                self.tally,
                self.warnings,
            )
            self.reporter.info(f"Run report: {self.report_path}")
        return 0

    def _drain(
        self,
        stream: CsvRowStream,
        conn: psycopg.Connection | None,
        dry_run: bool,
    ) -> None:
        for outcome in stream:
            self.tally.lines_seen += 1

            if isinstance(outcome, Skipped):
                self.tally.rows_skipped += 1
                if not outcome.silent:
                    self.reporter.error(outcome.message)
                    self.rejects.write(outcome.line_num, outcome.raw, outcome.reason)
                continue

            self._accept(outcome, stream, conn, dry_run)

    def _accept(
        self,
        outcome: Accepted,
        stream: CsvRowStream,
        conn: psycopg.Connection | None,
        dry_run: bool,
    ) -> None:
        row = outcome.row
        if row.extra:
            msg = (
                f"{stream.path.name} : line {outcome.line_num} has "
                f"{len(row.extra)} extra column(s), ignored"
            )
            self.warnings.append(msg)
            self.reporter.warning(msg)
        self.reporter.status(row.as_params())

        if conn is None or dry_run:
            self.tally.rows_accepted += 1
            return

        result = insert_user(conn, row)
        if result.result is InsertResult.FATAL:
            raise InsertFatalError(
                f"line {outcome.line_num}: insert failed: {result.detail}"
            )
        if result.result is InsertResult.CONFLICT:
            self.tally.rows_duplicate += 1
            self.reporter.error(f"line {outcome.line_num}: {result.detail}")
            self.rejects.write(
                outcome.line_num, ",".join(row.as_params().values()), "duplicate"
            )
            return

        self.tally.rows_accepted += 1
        self.tally.rows_inserted += 1
