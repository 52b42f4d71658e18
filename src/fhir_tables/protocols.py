"""Protocol definitions for output sinks."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .engine.projector import Table


@runtime_checkable
class RelationalWriter(Protocol):
    """Sink for one table: a header row followed by data rows.

    The writer owns the lifecycle of whatever it writes to.
    """

    def write_header(self, columns: Sequence[str]) -> None:
        """Write the header row. Called once, before any data row."""
        ...

    def write_row(self, fields: Sequence[str]) -> None:
        """Write one data row; *fields* are already strings, in column order."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class TableSink(Protocol):
    """Routes projected rows to per-table writers.

    Both the on-disk TSV output and the in-memory sink implement this
    interface, so the mapping engine does not care where rows end up.
    """

    def write(self, table: Table, fields: Sequence[str]) -> None:
        """Append one row to *table*."""
        ...
