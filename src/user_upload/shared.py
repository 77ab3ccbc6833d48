"""user_upload.shared

Pieces used by both the import pipeline and the CLI: the error taxonomy,
ImportTally, the Reporter that owns user-facing output, RejectWriter, and
run-report writing.
"""

from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

import click


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UploadError(Exception):
    """Base class for errors that abort a run with exit code 1."""


class UsageError(UploadError):
    """Raised for an invalid combination of command-line options."""


class CsvFileError(UploadError):
    """Raised when the CSV file cannot be opened or read."""


class DatabaseConnectionError(UploadError):
    """Raised when the database cannot be reached."""


class SchemaError(UploadError):
    """Raised when the users table is missing or has an incompatible shape."""


class InsertFatalError(UploadError):
    """Raised when an insert fails for any reason other than a duplicate key."""


# ---------------------------------------------------------------------------
# ImportTally
# ---------------------------------------------------------------------------

@dataclass
class ImportTally:
    lines_seen: int = 0
    rows_accepted: int = 0
    rows_inserted: int = 0
    rows_skipped: int = 0
    rows_duplicate: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------

class Reporter:
    """User-facing output with a verbosity level.

    ERROR lines go to stderr; STATUS lines are printed only when verbose.
    click strips the colour codes when the stream is not a terminal.
    """

    def __init__(self, verbose: bool = False, run_id: str | None = None) -> None:
        self.verbose = verbose
        self.run_id = run_id

    def _emit(self, label: str, colour: str, msg: str, err: bool = False) -> None:
        prefix = f"[{self.run_id}] " if self.run_id else ""
        click.echo(f"{prefix}{click.style(label, fg=colour)} {msg}", err=err)

    def error(self, msg: str) -> None:
        self._emit("ERROR:", "red", msg, err=True)

    def warning(self, msg: str) -> None:
        self._emit("WARNING:", "yellow", msg)

    def info(self, msg: str) -> None:
        self._emit("INFO:", "green", msg)

    def status(self, msg: str | dict[str, Any]) -> None:
        if not self.verbose:
            return
        if isinstance(msg, dict):
            msg = " ".join(
                f"{click.style('[ ' + str(k) + ' :', fg='cyan')} {v} "
                f"{click.style(']', fg='cyan')}"
                for k, v in msg.items()
            )
        self._emit("STATUS:", "cyan", msg)


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

REJECT_FIELDS = ["line_num", "raw", "_reject_reason"]


class RejectWriter:
    """Lazy-open CSV writer for skipped lines.  A None path disables it."""

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, line_num: int, raw: str, reason: str) -> None:
        if self._path is None:
            return
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.writer(self._fh)
            self._writer.writerow(REJECT_FIELDS)
        self._writer.writerow([line_num, raw, reason])
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    report_path: Path,
    run_id: str,
    started_at: str,
    dry_run: bool,
    csv_path: str,
    tally: ImportTally,
    warnings: Sequence[str] = (),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        "csv_path": csv_path,
        "tally": tally.to_dict(),
        "warnings": list(warnings),
    }
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
