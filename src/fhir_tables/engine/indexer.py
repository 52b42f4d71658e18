"""Graph indexer: one linear pass per bundle, parent -> children adjacency.

Insertion order is (bundle processing order, in-bundle resource order) and
is never changed afterwards. Child lists are keyed by the normalized parent
reference, so ``urn:uuid:<id>`` and ``<id>`` land in the same bucket.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..bundle.schemas import (
    DiagnosticReport,
    Encounter,
    MedicationAdministration,
    Observation,
    Organization,
    ParsedBundle,
    Patient,
)
from .references import normalize

logger = logging.getLogger(__name__)


@dataclass
class BundleIndex:
    """Everything the engine needs to walk the resource graph."""

    patients: dict[str, Patient] = field(default_factory=dict)
    encounters: dict[str, Encounter] = field(default_factory=dict)
    organizations: dict[str, Organization] = field(default_factory=dict)
    encounters_by_patient: dict[str, list[Encounter]] = field(default_factory=dict)
    observations_by_encounter: dict[str, list[Observation]] = field(default_factory=dict)
    medications_by_encounter: dict[str, list[MedicationAdministration]] = field(
        default_factory=dict
    )
    diagnostic_reports_by_encounter: dict[str, list[DiagnosticReport]] = field(
        default_factory=dict
    )
    bundle_count: int = 0

    # -- edges ----------------------------------------------------------

    def organization_for(self, encounter: Encounter) -> Organization | None:
        """Follow the encounter -> service provider edge."""
        return self.organizations.get(normalize(encounter.service_provider_ref))

    def observations_for(self, encounter_id: str) -> list[Observation]:
        return self.observations_by_encounter.get(normalize(encounter_id), [])

    def medications_for(self, encounter_id: str) -> list[MedicationAdministration]:
        return self.medications_by_encounter.get(normalize(encounter_id), [])

    def diagnostic_reports_for(self, encounter_id: str) -> list[DiagnosticReport]:
        return self.diagnostic_reports_by_encounter.get(normalize(encounter_id), [])

    def prioritized_encounters(self, patient_id: str) -> list[Encounter]:
        """A patient's encounters in three stable tiers.

        Encounters with medication administrations come first, then those
        with observations, then the rest. Within a tier insertion order is
        kept. A per-patient encounter cap applied to this list therefore
        keeps the clinically richest visits.
        """
        with_meds: list[Encounter] = []
        with_obs: list[Encounter] = []
        rest: list[Encounter] = []
        for encounter in self.encounters_by_patient.get(normalize(patient_id), []):
            key = normalize(encounter.id)
            if key in self.medications_by_encounter:
                with_meds.append(encounter)
            elif key in self.observations_by_encounter:
                with_obs.append(encounter)
            else:
                rest.append(encounter)
        return with_meds + with_obs + rest

    # -- orphans --------------------------------------------------------

    def orphan_encounter_groups(self) -> dict[str, list[Encounter]]:
        """Encounter lists whose patient reference was never indexed."""
        return {
            ref: encounters
            for ref, encounters in self.encounters_by_patient.items()
            if ref not in self.patients
        }

    def orphan_observation_groups(self) -> dict[str, list[Observation]]:
        return self._orphans(self.observations_by_encounter)

    def orphan_medication_groups(self) -> dict[str, list[MedicationAdministration]]:
        return self._orphans(self.medications_by_encounter)

    def orphan_diagnostic_report_groups(self) -> dict[str, list[DiagnosticReport]]:
        return self._orphans(self.diagnostic_reports_by_encounter)

    def _orphans(self, groups: dict) -> dict:
        return {ref: items for ref, items in groups.items() if ref not in self.encounters}


class GraphIndexer:
    """Builds a :class:`BundleIndex` from parsed bundles.

    Duplicate natural IDs (the same resource present in two bundles) keep
    their first occurrence; later copies are ignored.
    """

    def __init__(self):
        self.index = BundleIndex()
        self._seen: dict[str, set[str]] = {
            "Observation": set(),
            "MedicationAdministration": set(),
            "DiagnosticReport": set(),
        }

    def add_bundle(self, bundle: ParsedBundle) -> None:
        """Index one bundle with a single scan over its records."""
        idx = self.index
        for record in bundle.resources:
            natural_id = normalize(record.id)

            if isinstance(record, Patient):
                idx.patients.setdefault(natural_id, record)

            elif isinstance(record, Encounter):
                if natural_id in idx.encounters:
                    continue
                idx.encounters[natural_id] = record
                idx.encounters_by_patient.setdefault(
                    normalize(record.patient_ref), []
                ).append(record)

            elif isinstance(record, Organization):
                idx.organizations.setdefault(natural_id, record)

            elif isinstance(record, Observation):
                self._add_child(idx.observations_by_encounter, record, natural_id)

            elif isinstance(record, MedicationAdministration):
                self._add_child(idx.medications_by_encounter, record, natural_id)

            elif isinstance(record, DiagnosticReport):
                self._add_child(idx.diagnostic_reports_by_encounter, record, natural_id)

        idx.bundle_count += 1
        logger.debug("[INDEXER] Indexed %s", bundle.source)

    def _add_child(self, groups: dict, record, natural_id: str) -> None:
        seen = self._seen[record.resource_type]
        if natural_id in seen:
            return
        seen.add(natural_id)
        groups.setdefault(normalize(record.encounter_ref), []).append(record)

    def index_all(self, bundles: Iterable[ParsedBundle]) -> BundleIndex:
        for bundle in bundles:
            self.add_bundle(bundle)
        idx = self.index
        logger.info(
            "[INDEXER] %d bundles: %d patients, %d encounters, %d organizations",
            idx.bundle_count,
            len(idx.patients),
            len(idx.encounters),
            len(idx.organizations),
        )
        return idx


def build_index(bundles: Iterable[ParsedBundle]) -> BundleIndex:
    """Index *bundles* in the order given."""
    return GraphIndexer().index_all(bundles)
