"""user_upload.csv_stream

Line-at-a-time reader for the users CSV.

The file can be large, so it is never read into memory as a whole: every
call to ``read()`` advances by exactly one line and returns one outcome.
The first line is the header and is discarded unconditionally.

    with CsvRowStream(path) as stream:
        for outcome in stream:
            ...
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, Union

from user_upload.normalize import NormalizedRow, ValidationFailure, validate_row
from user_upload.shared import CsvFileError

log = logging.getLogger(__name__)

REASON_BLANK = "blank line"
REASON_MALFORMED = "malformed CSV"


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Accepted:
    line_num: int
    row: NormalizedRow


@dataclass(frozen=True)
class Skipped:
    line_num: int
    reason: str
    raw: str
    message: str = ""
    silent: bool = False


class EndOfStream:
    """Returned by ``read()`` once the file is exhausted."""

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = EndOfStream()

RowOutcome = Union[Accepted, Skipped, EndOfStream]


# ---------------------------------------------------------------------------
# Stream
# ---------------------------------------------------------------------------

class CsvRowStream:
    """Single-pass producer of RowOutcome values over one CSV file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.line_num = 0
        self._header_read = False
        self._exhausted = False
        try:
            self._fh: IO[str] | None = self.path.open(
                "r", encoding="utf-8-sig", newline=""
            )
        except OSError as exc:
            raise CsvFileError(f"File {self.path} could not be opened: {exc}") from exc
        log.debug("Opened %s for reading", self.path)

    def __enter__(self) -> CsvRowStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[Accepted | Skipped]:
        while True:
            outcome = self.read()
            if isinstance(outcome, EndOfStream):
                return
            yield outcome

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            log.debug("Closed %s", self.path)

    def _readline(self) -> str:
        if self._fh is None:
            return ""
        try:
            return self._fh.readline()
        except (OSError, UnicodeDecodeError) as exc:
            raise CsvFileError(
                f"{self.path}: read failed after line {self.line_num}: {exc}"
            ) from exc

    def read(self) -> RowOutcome:
        if self._exhausted:
            return END_OF_STREAM

        if not self._header_read:
            self._header_read = True
            if not self._readline():
                self._exhausted = True
                return END_OF_STREAM

        line = self._readline()
        if not line:
            self._exhausted = True
            return END_OF_STREAM

        self.line_num += 1
        raw = line.strip()
        if not raw:
            return Skipped(self.line_num, REASON_BLANK, raw, silent=True)

        try:
            fields = next(csv.reader([raw], strict=True))
        except csv.Error as exc:
            return Skipped(
                self.line_num, REASON_MALFORMED, raw,
                f"Wrong CSV line format ({exc}): {raw}",
            )

        result = validate_row(fields)
        if isinstance(result, ValidationFailure):
            return Skipped(
                self.line_num, str(result), raw,
                f"{self.path.name} : line {self.line_num} has invalid data "
                f"({result}): [{raw}]",
            )
        return Accepted(self.line_num, result)
