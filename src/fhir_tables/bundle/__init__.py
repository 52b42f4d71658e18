"""FHIR bundle loading: JSON documents in, typed immutable records out.

Usage:
    from fhir_tables.bundle import iter_bundles

    for bundle in iter_bundles("output/fhir"):
        print(bundle.source, len(bundle.resources))
"""

from .loader import SUPPORTED_TYPES, find_bundle_files, iter_bundles, load_bundle, parse_bundle
from .schemas import (
    DiagnosticReport,
    Encounter,
    FhirRecord,
    MedicationAdministration,
    Observation,
    Organization,
    ParsedBundle,
    Patient,
)

__all__ = [
    # Loading
    "SUPPORTED_TYPES",
    "find_bundle_files",
    "iter_bundles",
    "load_bundle",
    "parse_bundle",
    # Records
    "FhirRecord",
    "Patient",
    "Encounter",
    "Observation",
    "MedicationAdministration",
    "Organization",
    "DiagnosticReport",
    "ParsedBundle",
]
