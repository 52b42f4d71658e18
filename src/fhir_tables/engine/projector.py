"""Row projection: one resolved entity -> one tuple of strings.

Each ``project_*`` function matches a fixed table schema in :data:`TABLES`.
Blank optional source fields are replaced with fixed defaults; the one
exception is the observation value triple, which stays empty for results
that are not quantities. Missing foreign keys (``None``) become empty cells;
flagging them is the engine's job.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from ..bundle.schemas import (
    DiagnosticReport,
    Encounter,
    MedicationAdministration,
    Observation,
    Organization,
    Patient,
)

Row = tuple[str, ...]


class Table(str, Enum):
    """Output tables; the value is the file stem."""

    PATIENTS = "patients"
    ENCOUNTERS = "encounters"
    OBSERVATIONS = "observations"
    MEDICATION_ADMINISTRATIONS = "medication_administrations"
    LOCATIONS = "locations"
    ENCOUNTER_LOCATIONS = "encounter_locations"
    DIAGNOSTIC_REPORTS = "diagnostic_reports"

    @property
    def filename(self) -> str:
        return f"{self.value}.tsv"

    @property
    def columns(self) -> tuple[str, ...]:
        return TABLES[self]


TABLES: dict[Table, tuple[str, ...]] = {
    Table.PATIENTS: (
        "id", "birth_date", "last_name", "first_name", "gender",
        "address", "city", "state", "zip_code", "country",
    ),
    Table.ENCOUNTERS: (
        "id", "start", "end", "patient_id", "type_code", "type_display",
        "reason_code", "reason_display", "location_id", "service_provider_display",
    ),
    Table.OBSERVATIONS: (
        "id", "effective", "patient_id", "encounter_id", "code", "code_display",
        "component_value", "component_unit", "component_type", "category",
    ),
    Table.MEDICATION_ADMINISTRATIONS: (
        "id", "status", "effective", "patient_id", "encounter_id",
        "medication_code", "medication_system", "medication_display",
    ),
    Table.LOCATIONS: (
        "id", "name", "address", "city", "state", "zip_code", "status",
        "type_code", "type_system", "type_display",
    ),
    Table.ENCOUNTER_LOCATIONS: ("encounter_id", "start", "end", "location_id"),
    Table.DIAGNOSTIC_REPORTS: (
        "id", "issued", "effective", "patient_id", "encounter_id", "observation_id",
    ),
}

CORE_TABLES = frozenset(t for t in Table if t is not Table.DIAGNOSTIC_REPORTS)

# Defaults for blank source fields
DEFAULT_GENDER = "female"
DEFAULT_ADDRESS = "4200 Fifth Ave"
DEFAULT_CITY = "Pittsburgh"
DEFAULT_STATE = "Pennsylvania"
DEFAULT_POSTAL_CODE = "15260"
DEFAULT_COUNTRY = "US"
DEFAULT_ENCOUNTER_TYPE_CODE = "394656005"
DEFAULT_ENCOUNTER_TYPE_DISPLAY = "Inpatient"
DEFAULT_REASON_CODE = "126598008"
DEFAULT_REASON_DISPLAY = "Neoplasm of connective tissues disorder"
DEFAULT_OBSERVATION_CATEGORY = "laboratory"
LOCATION_STATUS = "active"
NUMERIC_COMPONENT_TYPE = "numeric"


def value_or_default(value: str | None, default: str) -> str:
    """Return *value* unless it is None or whitespace only."""
    if value is None or not str(value).strip():
        return default
    return str(value)


def _text(value: object | None) -> str:
    return "" if value is None else str(value)


def format_date(value: date | None) -> str:
    """``MM/DD/YYYY``."""
    if value is None:
        return ""
    return value.strftime("%m/%d/%Y")


def format_datetime(value: datetime | None) -> str:
    """``MM/DD/YYYY hh:mm:ss AM``, in the timestamp's own offset.

    The meridiem is spelled out rather than taken from ``%p`` so output does
    not depend on the process locale.
    """
    if value is None:
        return ""
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value.strftime('%m/%d/%Y %I:%M:%S')} {meridiem}"


# =============================================================================
# Projections
# =============================================================================


def project_patient(patient: Patient, patient_id: str) -> Row:
    return (
        patient_id,
        format_date(patient.birth_date),
        _text(patient.family_name),
        _text(patient.given_name),
        value_or_default(patient.gender, DEFAULT_GENDER),
        value_or_default(patient.address_line, DEFAULT_ADDRESS),
        value_or_default(patient.city, DEFAULT_CITY),
        value_or_default(patient.state, DEFAULT_STATE),
        value_or_default(patient.postal_code, DEFAULT_POSTAL_CODE),
        value_or_default(patient.country, DEFAULT_COUNTRY),
    )


def project_encounter(
    encounter: Encounter,
    encounter_id: str,
    patient_id: str | None,
    location_id: str | None,
) -> Row:
    return (
        encounter_id,
        format_datetime(encounter.start),
        format_datetime(encounter.end),
        _text(patient_id),
        value_or_default(encounter.type_code, DEFAULT_ENCOUNTER_TYPE_CODE),
        value_or_default(encounter.type_display, DEFAULT_ENCOUNTER_TYPE_DISPLAY),
        value_or_default(encounter.reason_code, DEFAULT_REASON_CODE),
        value_or_default(encounter.reason_display, DEFAULT_REASON_DISPLAY),
        _text(location_id),
        _text(encounter.service_provider_display),
    )


def project_observation(
    observation: Observation,
    observation_id: str,
    patient_id: str | None,
    encounter_id: str | None,
) -> Row:
    if observation.has_quantity:
        # plain notation: Decimal("1E+2") is written as "100"
        value_triple = (
            format(observation.value, "f"),
            _text(observation.unit),
            NUMERIC_COMPONENT_TYPE,
        )
    else:
        # not a quantity: a real "no value", not a missing default
        value_triple = ("", "", "")
    return (
        observation_id,
        format_datetime(observation.effective),
        _text(patient_id),
        _text(encounter_id),
        _text(observation.code),
        _text(observation.code_display),
        *value_triple,
        value_or_default(observation.category, DEFAULT_OBSERVATION_CATEGORY),
    )


def project_medication_administration(
    medication: MedicationAdministration,
    medication_id: str,
    patient_id: str | None,
    encounter_id: str | None,
) -> Row:
    return (
        medication_id,
        _text(medication.status),
        format_datetime(medication.effective),
        _text(patient_id),
        _text(encounter_id),
        _text(medication.medication_code),
        _text(medication.medication_system),
        _text(medication.medication_display),
    )


def project_location(organization: Organization, location_id: str) -> Row:
    return (
        location_id,
        _text(organization.name),
        value_or_default(organization.address_line, DEFAULT_ADDRESS),
        value_or_default(organization.city, DEFAULT_CITY),
        value_or_default(organization.state, DEFAULT_STATE),
        value_or_default(organization.postal_code, DEFAULT_POSTAL_CODE),
        LOCATION_STATUS,
        _text(organization.type_code),
        _text(organization.type_system),
        _text(organization.type_display),
    )


def project_encounter_location(
    encounter_id: str,
    start: datetime,
    end: datetime,
    location_id: str | None,
) -> Row:
    return (encounter_id, format_datetime(start), format_datetime(end), _text(location_id))


def project_diagnostic_report(
    report: DiagnosticReport,
    report_id: str,
    patient_id: str | None,
    encounter_id: str | None,
    observation_id: str | None,
) -> Row:
    return (
        report_id,
        format_datetime(report.issued),
        format_datetime(report.effective),
        _text(patient_id),
        _text(encounter_id),
        _text(observation_id),
    )
