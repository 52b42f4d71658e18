"""The mapping engine: parsed bundles in, relational rows out.

One engine, parameterized by :class:`~fhir_tables.config.MapperConfig`
(caps, tables, location policy, dangling policy), replaces a family of
near-identical mappers that differed only in those settings.

Run order matters because surrogate IDs are assigned in first-seen order:

1. index every bundle;
2. register locations (organizations, then synthetic units);
3. per retained patient: the patient, then each retained encounter with
   its stay segments, observations and medication administrations;
4. orphans, i.e. children whose parent was never indexed, under the
   dangling-reference policy;
5. diagnostic reports, once every observation they may cite has a key;
6. location rows for the locations retained encounters stay at.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .bundle.loader import iter_bundles
from .bundle.schemas import (
    DiagnosticReport,
    Encounter,
    MedicationAdministration,
    Observation,
    ParsedBundle,
)
from .config import DanglingPolicy, MapperConfig
from .engine.indexer import BundleIndex, build_index
from .engine.locations import make_synthesizer
from .engine.projector import (
    Row,
    Table,
    project_diagnostic_report,
    project_encounter,
    project_encounter_location,
    project_location,
    project_medication_administration,
    project_observation,
    project_patient,
)
from .engine.references import normalize
from .engine.registry import EntityType, SurrogateIdRegistry
from .engine.sampling import limit
from .errors import DanglingReference, DanglingReferenceError
from .protocols import TableSink
from .writer import TsvOutput

logger = logging.getLogger(__name__)


@dataclass
class MappingReport:
    """Outcome of one run."""

    rows: Counter[Table] = field(default_factory=Counter)
    bundles: int = 0
    dangling: list[DanglingReference] = field(default_factory=list)
    skipped_rows: int = 0

    @property
    def total_rows(self) -> int:
        return sum(self.rows.values())


class MappingEngine:
    """Maps a resource graph onto the fixed relational schema.

    Args:
        config: Run configuration; defaults to :meth:`MapperConfig.full`.
        registry: Surrogate ID registry for the run. A fresh one is created
            when omitted; pass one in to share a key space across runs.
    """

    def __init__(
        self,
        config: MapperConfig | None = None,
        registry: SurrogateIdRegistry | None = None,
    ):
        self.config = config or MapperConfig.full()
        self.registry = registry or SurrogateIdRegistry()

    def run(self, bundles: Iterable[ParsedBundle], sink: TableSink) -> MappingReport:
        """Index *bundles* (in the order given) and write every row to *sink*."""
        return self.map_index(build_index(bundles), sink)

    def map_index(self, index: BundleIndex, sink: TableSink) -> MappingReport:
        """Map an already built index."""
        return _Run(self.config, self.registry, index, sink).execute()


class _Run:
    """State of one pass over an index."""

    def __init__(
        self,
        config: MapperConfig,
        registry: SurrogateIdRegistry,
        index: BundleIndex,
        sink: TableSink,
    ):
        self.config = config
        self.registry = registry
        self.index = index
        self.sink = sink
        self.report = MappingReport(bundles=index.bundle_count)
        self.locations = make_synthesizer(config.location_policy, registry, index)
        self._retained_patients: set[str] = set()
        self._pending_reports: list[tuple[DiagnosticReport, str | None]] = []
        self._dangling_start = len(registry.dangling)

    def execute(self) -> MappingReport:
        cfg = self.config

        self.locations.register()

        patients = limit(list(self.index.patients.values()), cfg.max_patients)
        self._retained_patients = {normalize(p.id) for p in patients}
        for patient in patients:
            patient_id = self.registry.resolve(EntityType.PATIENT, patient.id)
            self._emit(Table.PATIENTS, project_patient(patient, patient_id))
            for encounter in limit(self._encounters_of(patient.id), cfg.max_encounters_per_patient):
                self._map_encounter(encounter, patient_id)

        self._map_orphans()

        # reports link observations from any encounter, so they go last
        for report, encounter_id in self._pending_reports:
            self._map_diagnostic_report(report, encounter_id)

        for location in self.locations.locations():
            location_id = self.registry.resolve(EntityType.LOCATION, location.id)
            self._emit(Table.LOCATIONS, project_location(location, location_id))

        self.report.dangling = self.registry.dangling[self._dangling_start:]
        logger.info(
            "[ENGINE] %d rows from %d bundles (%d dangling references, %d rows skipped)",
            self.report.total_rows,
            self.report.bundles,
            len(self.report.dangling),
            self.report.skipped_rows,
        )
        return self.report

    # ------------------------------------------------------------------
    # Graph walk
    # ------------------------------------------------------------------

    def _encounters_of(self, patient_ref: str) -> list[Encounter]:
        if self.config.prioritize_encounters:
            return self.index.prioritized_encounters(patient_ref)
        return list(self.index.encounters_by_patient.get(normalize(patient_ref), []))

    def _map_encounter(self, encounter: Encounter, patient_id: str | None) -> None:
        cfg = self.config
        encounter_id = self.registry.resolve(EntityType.ENCOUNTER, encounter.id)

        location_id = self.locations.home_location(encounter)
        if location_id is None and encounter.service_provider_ref:
            # the encounter row survives; only its location cell is empty
            self._check_policy()

        self._emit(
            Table.ENCOUNTERS,
            project_encounter(encounter, encounter_id, patient_id, location_id),
        )

        for segment in self.locations.segments(encounter, location_id):
            if segment.location_id is None and cfg.dangling_policy is DanglingPolicy.SKIP:
                self.report.skipped_rows += 1
                continue
            self._emit(
                Table.ENCOUNTER_LOCATIONS,
                project_encounter_location(
                    encounter_id, segment.start, segment.end, segment.location_id
                ),
            )

        for observation in limit(
            self.index.observations_for(encounter.id), cfg.max_observations_per_encounter
        ):
            self._map_observation(observation, encounter_id)

        for medication in limit(
            self.index.medications_for(encounter.id), cfg.max_medications_per_encounter
        ):
            self._map_medication(medication, encounter_id, patient_id)

        for report in limit(
            self.index.diagnostic_reports_for(encounter.id),
            cfg.max_diagnostic_reports_per_encounter,
        ):
            self._pending_reports.append((report, encounter_id))

    def _map_observation(self, observation: Observation, encounter_id: str | None) -> None:
        ok, patient_id = self._foreign_key(
            EntityType.PATIENT, observation.patient_ref, f"Observation/{observation.id}"
        )
        if not ok:
            return
        observation_id = self.registry.resolve(EntityType.OBSERVATION, observation.id)
        self._emit(
            Table.OBSERVATIONS,
            project_observation(observation, observation_id, patient_id, encounter_id),
        )

    def _map_medication(
        self,
        medication: MedicationAdministration,
        encounter_id: str | None,
        patient_id: str | None,
    ) -> None:
        medication_id = self.registry.resolve(
            EntityType.MEDICATION_ADMINISTRATION, medication.id
        )
        self._emit(
            Table.MEDICATION_ADMINISTRATIONS,
            project_medication_administration(medication, medication_id, patient_id, encounter_id),
        )

    def _map_diagnostic_report(self, report: DiagnosticReport, encounter_id: str | None) -> None:
        ok, patient_id = self._foreign_key(
            EntityType.PATIENT, report.patient_ref, f"DiagnosticReport/{report.id}"
        )
        if not ok:
            return

        if not report.result_refs:
            report_id = self.registry.resolve(EntityType.DIAGNOSTIC_REPORT, report.id)
            self._emit(
                Table.DIAGNOSTIC_REPORTS,
                project_diagnostic_report(report, report_id, patient_id, encounter_id, None),
            )
            return

        # only results whose observation made it into this run
        emitted = [
            ref for ref in report.result_refs
            if self.registry.is_registered(EntityType.OBSERVATION, ref)
        ]
        if not emitted:
            return
        report_id = self.registry.resolve(EntityType.DIAGNOSTIC_REPORT, report.id)
        for ref in emitted:
            observation_id = self.registry.resolve(EntityType.OBSERVATION, ref)
            self._emit(
                Table.DIAGNOSTIC_REPORTS,
                project_diagnostic_report(report, report_id, patient_id, encounter_id, observation_id),
            )

    # ------------------------------------------------------------------
    # Orphans
    # ------------------------------------------------------------------

    def _map_orphans(self) -> None:
        """Children whose parent reference was never indexed."""
        cfg = self.config

        for patient_ref in self.index.orphan_encounter_groups():
            encounters = self._encounters_of(patient_ref)
            for encounter in limit(encounters, cfg.max_encounters_per_patient):
                ok, patient_id = self._foreign_key(
                    EntityType.PATIENT, encounter.patient_ref, f"Encounter/{encounter.id}"
                )
                if ok:
                    self._map_encounter(encounter, patient_id)

        for encounter_ref, observations in self.index.orphan_observation_groups().items():
            kept = [o for o in observations if not self._patient_trimmed(o.patient_ref)]
            for observation in limit(kept, cfg.max_observations_per_encounter):
                ok, encounter_id = self._foreign_key(
                    EntityType.ENCOUNTER, encounter_ref, f"Observation/{observation.id}"
                )
                if ok:
                    self._map_observation(observation, encounter_id)

        for encounter_ref, medications in self.index.orphan_medication_groups().items():
            kept = [m for m in medications if not self._patient_trimmed(m.patient_ref)]
            for medication in limit(kept, cfg.max_medications_per_encounter):
                referenced_by = f"MedicationAdministration/{medication.id}"
                ok, encounter_id = self._foreign_key(
                    EntityType.ENCOUNTER, encounter_ref, referenced_by
                )
                if not ok:
                    continue
                # no encounter to derive the patient from; fall back to the subject
                ok, patient_id = self._foreign_key(
                    EntityType.PATIENT, medication.patient_ref, referenced_by
                )
                if ok:
                    self._map_medication(medication, encounter_id, patient_id)

        for encounter_ref, reports in self.index.orphan_diagnostic_report_groups().items():
            kept = [r for r in reports if not self._patient_trimmed(r.patient_ref)]
            for report in limit(kept, cfg.max_diagnostic_reports_per_encounter):
                ok, encounter_id = self._foreign_key(
                    EntityType.ENCOUNTER, encounter_ref, f"DiagnosticReport/{report.id}"
                )
                if ok:
                    self._pending_reports.append((report, encounter_id))

    def _patient_trimmed(self, patient_ref: str | None) -> bool:
        """True if the patient exists but fell outside the patient cap."""
        key = normalize(patient_ref)
        return key in self.index.patients and key not in self._retained_patients

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _foreign_key(
        self,
        entity_type: EntityType,
        ref: str | None,
        referenced_by: str,
    ) -> tuple[bool, str | None]:
        """Resolve a parent key under the dangling policy.

        Returns ``(keep_row, key)``. ``key`` is None for a dangling
        reference; ``keep_row`` is False when the policy drops the row.
        """
        key = self.registry.lookup(entity_type, ref, referenced_by=referenced_by)
        if key is not None:
            return True, key
        if self._check_policy():
            return True, None
        self.report.skipped_rows += 1
        return False, None

    def _check_policy(self) -> bool:
        """Apply the dangling policy to the reference just recorded.

        Returns True if the row should still be written.
        """
        policy = self.config.dangling_policy
        if policy is DanglingPolicy.ABORT:
            raise DanglingReferenceError(self.registry.dangling[-1])
        return policy is DanglingPolicy.NULL_FILL

    def _emit(self, table: Table, row: Row) -> None:
        if not self.config.includes(table):
            return
        self.sink.write(table, row)
        self.report.rows[table] += 1


def map_directory(
    input_dir: str | Path,
    output_dir: str | Path,
    config: MapperConfig | None = None,
) -> MappingReport:
    """Map every bundle under *input_dir* to TSV tables in *output_dir*."""
    config = config or MapperConfig.full()
    bundles = iter_bundles(input_dir, sort=config.sort_inputs, clean_names=config.clean_names)
    with TsvOutput(output_dir, config.tables) as output:
        return MappingEngine(config).run(bundles, output)
