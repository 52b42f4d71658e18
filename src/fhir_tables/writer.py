"""Tab-separated table output.

``TsvOutput`` writes ``{out_dir}/{table}.tsv`` for every included table;
``MemorySink`` keeps rows in lists for tests and library callers.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TextIO

from .engine.projector import Table
from .errors import OutputError

logger = logging.getLogger(__name__)

DELIMITER = "\t"

_CONTROL_RE = re.compile(r"[\t\r\n]+")


def clean_field(value: str) -> str:
    """Collapse tabs and line breaks so a value cannot split a row."""
    return _CONTROL_RE.sub(" ", value)


class TsvTableWriter:
    """Writes one TSV file: header first, then rows."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._rows = 0
        self._header_written = False
        self._file: TextIO = self.path.open("w", encoding="utf-8", newline="")

    @property
    def row_count(self) -> int:
        return self._rows

    def write_header(self, columns: Sequence[str]) -> None:
        if self._header_written:
            raise ValueError(f"Header already written to {self.path}")
        self._write_line(columns)
        self._header_written = True

    def write_row(self, fields: Sequence[str]) -> None:
        if not self._header_written:
            raise ValueError(f"Row written to {self.path} before its header")
        self._write_line(fields)
        self._rows += 1

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def _write_line(self, fields: Sequence[str]) -> None:
        self._file.write(DELIMITER.join(clean_field(f) for f in fields) + "\n")


class TsvOutput:
    """Context manager holding one :class:`TsvTableWriter` per table.

    Rows for tables that were not opened are dropped, so the engine can
    project everything and let the table selection decide what lands on
    disk. ``OSError`` is re-raised as :class:`OutputError`; files already
    written are left in place.
    """

    def __init__(self, out_dir: str | Path, tables: Iterable[Table]):
        self.out_dir = Path(out_dir)
        # keep a stable order for opening files and for the summary
        self.tables = [t for t in Table if t in set(tables)]
        self._writers: dict[Table, TsvTableWriter] = {}

    def __enter__(self) -> TsvOutput:
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            for table in self.tables:
                writer = TsvTableWriter(self.out_dir / table.filename)
                self._writers[table] = writer
                writer.write_header(table.columns)
        except OSError as e:
            self.close()
            raise OutputError(f"Cannot open output in {self.out_dir}: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, table: Table, fields: Sequence[str]) -> None:
        writer = self._writers.get(table)
        if writer is None:
            return
        try:
            writer.write_row(fields)
        except OSError as e:
            raise OutputError(f"Cannot write {writer.path}: {e}") from e

    def close(self) -> None:
        """Close every writer, then report the first failure if any."""
        failure: OSError | None = None
        for writer in self._writers.values():
            try:
                writer.close()
            except OSError as e:
                logger.error("Failed to close %s: %s", writer.path, e)
                failure = failure or e
        if failure is not None:
            raise OutputError(f"Cannot finish writing to {self.out_dir}: {failure}") from failure

    @property
    def paths(self) -> list[Path]:
        return [w.path for w in self._writers.values()]


class MemorySink:
    """Collects rows per table in memory."""

    def __init__(self, tables: Iterable[Table] | None = None):
        self.tables = set(Table) if tables is None else set(tables)
        self.rows: dict[Table, list[tuple[str, ...]]] = {t: [] for t in self.tables}

    def write(self, table: Table, fields: Sequence[str]) -> None:
        if table in self.rows:
            self.rows[table].append(tuple(fields))

    def __getitem__(self, table: Table) -> list[tuple[str, ...]]:
        return self.rows[table]

    def as_dicts(self, table: Table) -> list[dict[str, str]]:
        """Rows of *table* keyed by column name."""
        return [dict(zip(table.columns, row)) for row in self.rows[table]]
