"""Load FHIR R4 bundles from disk into typed records.

Walks a directory of Synthea-style bundle JSON files (patient bundles plus
the ``hospitalInformation*.json`` / ``practitionerInformation*.json``
batches that carry Organizations) and converts the resource types we map
into :mod:`fhir_tables.bundle.schemas` models. Unsupported resource types
are skipped.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from ..errors import MalformedBundleError
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

logger = logging.getLogger(__name__)


def find_bundle_files(bundle_dir: str | Path, sort: bool = True) -> list[Path]:
    """Discover bundle files under *bundle_dir* (recursively).

    With ``sort=False`` files come back in filesystem order, which differs
    between machines and makes surrogate ID assignment non-reproducible.
    """
    bundle_dir = Path(bundle_dir)
    files = [p for p in bundle_dir.rglob("*.json") if p.is_file()]
    if sort:
        files.sort()
    return files


def load_bundle(path: str | Path, clean_names: bool = False) -> ParsedBundle:
    """Read and parse one bundle file.

    Raises:
        MalformedBundleError: the file is not valid JSON or not a Bundle.
        OSError: the file cannot be read.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise MalformedBundleError(str(path), f"invalid JSON: {e}") from e
    return parse_bundle(data, source=str(path), clean_names=clean_names)


def iter_bundles(
    bundle_dir: str | Path,
    sort: bool = True,
    clean_names: bool = False,
) -> Iterator[ParsedBundle]:
    """Lazily load every bundle under *bundle_dir*."""
    for path in find_bundle_files(bundle_dir, sort=sort):
        logger.debug("[LOADER] Reading %s", path)
        yield load_bundle(path, clean_names=clean_names)


def parse_bundle(data: Any, source: str = "<memory>", clean_names: bool = False) -> ParsedBundle:
    """Convert a FHIR Bundle dict into a :class:`ParsedBundle`."""
    if not isinstance(data, dict) or data.get("resourceType") != "Bundle":
        raise MalformedBundleError(source, "document is not a FHIR Bundle")

    entries = data.get("entry") or []
    if not isinstance(entries, list):
        raise MalformedBundleError(source, "Bundle.entry is not a list")

    records: list[FhirRecord] = []
    skipped = 0
    for entry in entries:
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if not isinstance(resource, dict):
            raise MalformedBundleError(source, "bundle entry without a resource")

        parser = _PARSERS.get(resource.get("resourceType", ""))
        if parser is None:
            skipped += 1
            continue
        try:
            record = parser(resource)
        except ValidationError as e:
            rtype = resource.get("resourceType")
            raise MalformedBundleError(source, f"invalid {rtype} {resource.get('id')!r}: {e}") from e

        if clean_names and isinstance(record, Patient):
            record = _clean_patient_name(record)
        records.append(record)

    logger.debug("[LOADER] %s: %d records kept, %d skipped", source, len(records), skipped)
    return ParsedBundle(source=source, resources=tuple(records))


# -----------------------------------------------------------------------------
# FHIR JSON helpers
# -----------------------------------------------------------------------------


def _first(items: Any) -> dict:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _first_coding(concept: Any) -> dict:
    """First coding of a CodeableConcept (or of the first of a list of them)."""
    if isinstance(concept, list):
        concept = _first(concept)
    if not isinstance(concept, dict):
        return {}
    return _first(concept.get("coding"))


def _reference(obj: Any) -> str | None:
    if isinstance(obj, dict):
        return obj.get("reference")
    return None


def _date(value: Any) -> str | None:
    """Widen a partial FHIR date (``YYYY`` or ``YYYY-MM``) to its first day."""
    if not value:
        return None
    value = str(value)
    if len(value) == 4:
        return f"{value}-01-01"
    if len(value) == 7:
        return f"{value}-01"
    return value


def _timestamp(value: Any) -> str | None:
    """Widen a (partial) FHIR date to UTC midnight so it parses as an aware datetime.

    Full FHIR dateTimes always carry an offset, so widened values get one too
    and stay comparable with them.
    """
    value = _date(value)
    if value is None:
        return None
    if len(value) == 10:
        return f"{value}T00:00:00+00:00"
    return value


def _address_line(address: dict) -> str | None:
    if address.get("text"):
        return address["text"]
    lines = address.get("line") or []
    return ", ".join(str(line) for line in lines) or None


# -----------------------------------------------------------------------------
# Per-resource parsers
# -----------------------------------------------------------------------------


def _parse_patient(resource: dict) -> Patient:
    name = _first(resource.get("name"))
    given = name.get("given") or []
    address = _first(resource.get("address"))
    return Patient(
        id=resource.get("id", ""),
        birth_date=_date(resource.get("birthDate")),
        family_name=name.get("family"),
        given_name=given[0] if given else None,
        gender=resource.get("gender"),
        address_line=_address_line(address),
        city=address.get("city"),
        state=address.get("state"),
        postal_code=address.get("postalCode"),
        country=address.get("country"),
    )


def _parse_encounter(resource: dict) -> Encounter:
    period = resource.get("period") or {}
    type_coding = _first_coding(resource.get("type"))
    reason_coding = _first_coding(resource.get("reasonCode"))
    provider = resource.get("serviceProvider") or {}
    return Encounter(
        id=resource.get("id", ""),
        start=_timestamp(period.get("start")),
        end=_timestamp(period.get("end")),
        patient_ref=_reference(resource.get("subject")),
        type_code=type_coding.get("code"),
        type_display=type_coding.get("display"),
        reason_code=reason_coding.get("code"),
        reason_display=reason_coding.get("display"),
        service_provider_ref=provider.get("reference"),
        service_provider_display=provider.get("display"),
    )


def _parse_observation(resource: dict) -> Observation:
    code = _first_coding(resource.get("code"))
    category = _first_coding(resource.get("category"))
    quantity = resource.get("valueQuantity")
    value = unit = None
    if isinstance(quantity, dict) and quantity.get("value") is not None:
        # floats arrive as Decimal (parse_float) so the source digits survive
        value = quantity["value"]
        unit = quantity.get("unit") or quantity.get("code")
    return Observation(
        id=resource.get("id", ""),
        effective=_timestamp(resource.get("effectiveDateTime")),
        patient_ref=_reference(resource.get("subject")),
        encounter_ref=_reference(resource.get("encounter")),
        code=code.get("code"),
        code_display=code.get("display"),
        value=value,
        unit=unit,
        category=category.get("code"),
    )


def _parse_medication_administration(resource: dict) -> MedicationAdministration:
    medication = _first_coding(resource.get("medicationCodeableConcept"))
    effective = resource.get("effectiveDateTime")
    if not effective:
        effective = (resource.get("effectivePeriod") or {}).get("start")
    # R4 calls the encounter link "context"; accept "encounter" as well
    encounter = resource.get("context") or resource.get("encounter")
    return MedicationAdministration(
        id=resource.get("id", ""),
        status=resource.get("status"),
        effective=_timestamp(effective),
        patient_ref=_reference(resource.get("subject")),
        encounter_ref=_reference(encounter),
        medication_code=medication.get("code"),
        medication_system=medication.get("system"),
        medication_display=medication.get("display"),
    )


def _parse_organization(resource: dict) -> Organization:
    address = _first(resource.get("address"))
    type_coding = _first_coding(resource.get("type"))
    return Organization(
        id=resource.get("id", ""),
        name=resource.get("name"),
        address_line=_address_line(address),
        city=address.get("city"),
        state=address.get("state"),
        postal_code=address.get("postalCode"),
        type_code=type_coding.get("code"),
        type_system=type_coding.get("system"),
        type_display=type_coding.get("display"),
    )


def _parse_diagnostic_report(resource: dict) -> DiagnosticReport:
    results = tuple(
        ref for ref in (_reference(r) for r in resource.get("result") or []) if ref
    )
    return DiagnosticReport(
        id=resource.get("id", ""),
        issued=_timestamp(resource.get("issued")),
        effective=_timestamp(resource.get("effectiveDateTime")),
        patient_ref=_reference(resource.get("subject")),
        encounter_ref=_reference(resource.get("encounter")),
        result_refs=results,
    )


_PARSERS: dict[str, Callable[[dict], FhirRecord]] = {
    "Patient": _parse_patient,
    "Encounter": _parse_encounter,
    "Observation": _parse_observation,
    "MedicationAdministration": _parse_medication_administration,
    "Organization": _parse_organization,
    "DiagnosticReport": _parse_diagnostic_report,
}

SUPPORTED_TYPES = frozenset(_PARSERS)


_TRAILING_DIGITS_RE = re.compile(r"\d+$")


def _clean_patient_name(patient: Patient) -> Patient:
    """Strip Synthea-appended numbers from name parts.

    E.g. ``"Ladawn167"`` -> ``"Ladawn"``, ``"Spinka232"`` -> ``"Spinka"``.
    """
    updates = {}
    if patient.family_name:
        updates["family_name"] = _TRAILING_DIGITS_RE.sub("", patient.family_name)
    if patient.given_name:
        updates["given_name"] = _TRAILING_DIGITS_RE.sub("", patient.given_name)
    return patient.model_copy(update=updates)
