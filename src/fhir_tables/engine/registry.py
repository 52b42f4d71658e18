"""Surrogate ID registry.

Maps normalized natural identifiers to short, sequential surrogate keys
(``pat_1``, ``enc_1``, ...). One registry is owned by one run; nothing here
is module-level state.

Example:
    registry = SurrogateIdRegistry()
    registry.resolve(EntityType.PATIENT, "urn:uuid:abc")   # 'pat_1'
    registry.resolve(EntityType.PATIENT, "abc")            # 'pat_1'
    registry.lookup(EntityType.ENCOUNTER, "missing")       # None + warning
"""

from __future__ import annotations

import logging
from enum import Enum

from ..errors import DanglingReference
from .references import normalize

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    """Entity types with independent key sequences."""

    PATIENT = "patient"
    ENCOUNTER = "encounter"
    OBSERVATION = "observation"
    MEDICATION_ADMINISTRATION = "medication_administration"
    LOCATION = "location"
    DIAGNOSTIC_REPORT = "diagnostic_report"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES: dict[EntityType, str] = {
    EntityType.PATIENT: "pat",
    EntityType.ENCOUNTER: "enc",
    EntityType.OBSERVATION: "obs",
    EntityType.MEDICATION_ADMINISTRATION: "med",
    EntityType.LOCATION: "loc",
    EntityType.DIAGNOSTIC_REPORT: "diag",
}


class SurrogateIdRegistry:
    """Append-only natural -> surrogate mapping, scoped per entity type.

    Not thread-safe. Assignment order is observable in the output, so callers
    must register entities in a deterministic order.
    """

    def __init__(self):
        self._ids: dict[EntityType, dict[str, str]] = {t: {} for t in EntityType}
        self._counters: dict[EntityType, int] = {t: 0 for t in EntityType}
        self.dangling: list[DanglingReference] = []

    def resolve(self, entity_type: EntityType, natural_id: str) -> str:
        """Return the surrogate for *natural_id*, assigning the next one if new."""
        key = normalize(natural_id)
        ids = self._ids[entity_type]
        surrogate = ids.get(key)
        if surrogate is None:
            self._counters[entity_type] += 1
            surrogate = f"{entity_type.prefix}_{self._counters[entity_type]}"
            ids[key] = surrogate
            logger.debug("[REGISTRY] %s %s -> %s", entity_type.value, key, surrogate)
        return surrogate

    def lookup(
        self,
        entity_type: EntityType,
        natural_id: str | None,
        referenced_by: str | None = None,
    ) -> str | None:
        """Return the surrogate for an already registered entity.

        Never creates an entry. A miss is a dangling reference: it is
        recorded on :attr:`dangling`, logged once, and ``None`` is returned.
        """
        key = normalize(natural_id)
        surrogate = self._ids[entity_type].get(key)
        if surrogate is None:
            reference = DanglingReference(entity_type.value, key, referenced_by)
            self.dangling.append(reference)
            logger.warning(
                "[REGISTRY] Dangling reference: %s %s was never registered",
                entity_type.value,
                key or "<empty>",
                extra={
                    "entity_type": entity_type.value,
                    "natural_id": key,
                    "referenced_by": referenced_by,
                },
            )
        return surrogate

    def is_registered(self, entity_type: EntityType, natural_id: str | None) -> bool:
        return normalize(natural_id) in self._ids[entity_type]

    def count(self, entity_type: EntityType) -> int:
        """Number of surrogates assigned for *entity_type*."""
        return self._counters[entity_type]

    def items(self, entity_type: EntityType) -> list[tuple[str, str]]:
        """(natural_id, surrogate) pairs in assignment order."""
        return list(self._ids[entity_type].items())
