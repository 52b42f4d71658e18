"""Error taxonomy for the mapping run.

Dangling references are recoverable and travel as values
(:class:`DanglingReference`). Everything else is fatal to the run.
"""

from __future__ import annotations

from dataclasses import dataclass


class FhirTablesError(Exception):
    """Base class for fatal mapping errors."""


class MalformedBundleError(FhirTablesError):
    """Raised when a document cannot be turned into typed resources."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class OutputError(FhirTablesError):
    """Raised when an output table cannot be written."""


@dataclass(frozen=True)
class DanglingReference:
    """A reference to a natural ID that was never registered as a primary entity."""

    entity_type: str
    natural_id: str
    referenced_by: str | None = None

    def __str__(self) -> str:
        where = f" (from {self.referenced_by})" if self.referenced_by else ""
        return f"{self.entity_type} {self.natural_id}{where}"


class DanglingReferenceError(FhirTablesError):
    """Raised under the ``abort`` dangling policy."""

    def __init__(self, reference: DanglingReference):
        self.reference = reference
        super().__init__(f"Unresolved reference to {reference}")
