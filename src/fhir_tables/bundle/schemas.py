"""Pydantic models for the typed records read out of FHIR bundles.

Only the fields the output tables need are kept. References are stored raw
(``urn:uuid:...``, ``Organization?identifier=...|id``); normalization is the
engine's concern. Every model is frozen: the engine derives rows and never
mutates source records.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class FhirRecord(BaseModel):
    """Common base for all typed records."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Natural ID assigned by the source system", min_length=1)


# =============================================================================
# Clinical records
# =============================================================================


class Patient(FhirRecord):
    """Demographics from a FHIR Patient resource."""

    resource_type: Literal["Patient"] = "Patient"
    birth_date: date | None = Field(None, description="Patient.birthDate")
    family_name: str | None = Field(None, description="Patient.name[0].family")
    given_name: str | None = Field(None, description="Patient.name[0].given[0]")
    gender: str | None = Field(None, description="Patient.gender")
    address_line: str | None = Field(None, description="Patient.address[0] text or first line")
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class Encounter(FhirRecord):
    """A visit, linked to its patient and service provider."""

    resource_type: Literal["Encounter"] = "Encounter"
    start: datetime | None = Field(None, description="Encounter.period.start")
    end: datetime | None = Field(None, description="Encounter.period.end")
    patient_ref: str | None = Field(None, description="Encounter.subject.reference")
    type_code: str | None = None
    type_display: str | None = None
    reason_code: str | None = None
    reason_display: str | None = None
    service_provider_ref: str | None = Field(
        None, description="Encounter.serviceProvider.reference (an Organization)"
    )
    service_provider_display: str | None = None

    @property
    def duration_hours(self) -> float | None:
        """Length of stay in hours, or None without both timestamps."""
        if self.start is None or self.end is None:
            return None
        return (as_aware(self.end) - as_aware(self.start)).total_seconds() / 3600


class Observation(FhirRecord):
    """A measurement or finding recorded during an encounter."""

    resource_type: Literal["Observation"] = "Observation"
    effective: datetime | None = Field(None, description="Observation.effectiveDateTime")
    patient_ref: str | None = None
    encounter_ref: str | None = None
    code: str | None = None
    code_display: str | None = None
    value: Decimal | None = Field(
        None, description="valueQuantity.value; only set for quantity-typed results"
    )
    unit: str | None = Field(None, description="valueQuantity.unit")
    category: str | None = Field(None, description="Observation.category[0].coding[0].code")

    @property
    def has_quantity(self) -> bool:
        return self.value is not None


class MedicationAdministration(FhirRecord):
    """A medication given during an encounter."""

    resource_type: Literal["MedicationAdministration"] = "MedicationAdministration"
    status: str | None = None
    effective: datetime | None = Field(
        None, description="effectiveDateTime, or effectivePeriod.start"
    )
    patient_ref: str | None = None
    encounter_ref: str | None = Field(None, description="MedicationAdministration.context")
    medication_code: str | None = None
    medication_system: str | None = None
    medication_display: str | None = None


class Organization(FhirRecord):
    """A care provider; each one becomes a location row."""

    resource_type: Literal["Organization"] = "Organization"
    name: str | None = None
    address_line: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    type_code: str | None = None
    type_system: str | None = None
    type_display: str | None = None


class DiagnosticReport(FhirRecord):
    """A report grouping observation results for an encounter."""

    resource_type: Literal["DiagnosticReport"] = "DiagnosticReport"
    issued: datetime | None = None
    effective: datetime | None = None
    patient_ref: str | None = None
    encounter_ref: str | None = None
    result_refs: tuple[str, ...] = Field(
        default_factory=tuple, description="DiagnosticReport.result[].reference"
    )


Resource = Annotated[
    Union[
        Patient,
        Encounter,
        Observation,
        MedicationAdministration,
        Organization,
        DiagnosticReport,
    ],
    Field(discriminator="resource_type"),
]


class ParsedBundle(BaseModel):
    """Typed records of one document, in document order."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Where the bundle came from (usually a file path)")
    resources: tuple[Resource, ...] = Field(default_factory=tuple)

    def of_type(self, resource_type: str) -> list[FhirRecord]:
        """Records of one ``resource_type``, preserving document order."""
        return [r for r in self.resources if r.resource_type == resource_type]


def as_aware(value: datetime) -> datetime:
    """Read a datetime without an offset as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
