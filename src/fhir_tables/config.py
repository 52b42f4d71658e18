"""Mapping run configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum

from .engine.locations import LocationPolicy
from .engine.projector import CORE_TABLES, Table
from .engine.sampling import UNBOUNDED

# Caps of the small demo sample
REDUCED_CAPS: dict[str, int] = {
    "max_patients": 5,
    "max_encounters_per_patient": 10,
    "max_observations_per_encounter": 10,
    "max_medications_per_encounter": 10,
    "max_diagnostic_reports_per_encounter": 10,
}


class DanglingPolicy(str, Enum):
    """What to do with a row whose foreign key could not be resolved."""

    NULL_FILL = "null_fill"  # write the row with an empty key cell
    SKIP = "skip"  # leave the row out
    ABORT = "abort"  # raise DanglingReferenceError


@dataclass(frozen=True)
class MapperConfig:
    """Configuration for one mapping run.

    Caps are ``None`` (unbounded) or a non-negative int and apply per
    relationship: patients overall, encounters per patient, and
    observations / medication administrations / diagnostic reports per
    encounter.
    """

    # Sampling caps
    max_patients: int | None = UNBOUNDED
    max_encounters_per_patient: int | None = UNBOUNDED
    max_observations_per_encounter: int | None = UNBOUNDED
    max_medications_per_encounter: int | None = UNBOUNDED
    max_diagnostic_reports_per_encounter: int | None = UNBOUNDED

    # Output
    tables: frozenset[Table] = field(default_factory=lambda: CORE_TABLES)
    location_policy: LocationPolicy = LocationPolicy.DIRECT
    dangling_policy: DanglingPolicy = DanglingPolicy.NULL_FILL

    # Input handling
    sort_inputs: bool = True
    prioritize_encounters: bool = True
    clean_names: bool = False

    def __post_init__(self):
        for name in REDUCED_CAPS:
            cap = getattr(self, name)
            if cap is not None and cap < 0:
                raise ValueError(f"{name} must be >= 0, got {cap}")
        # frozen: coerce plain strings through object.__setattr__
        object.__setattr__(self, "tables", frozenset(Table(t) for t in self.tables))
        object.__setattr__(self, "location_policy", LocationPolicy(self.location_policy))
        object.__setattr__(self, "dangling_policy", DanglingPolicy(self.dangling_policy))

    @classmethod
    def full(cls, **overrides) -> MapperConfig:
        """Map everything, no caps."""
        return cls(**overrides)

    @classmethod
    def reduced(cls, **overrides) -> MapperConfig:
        """Small demo sample: 5 patients, 10 children per parent."""
        return cls(**{**REDUCED_CAPS, **overrides})

    def with_preset(self, preset: str) -> MapperConfig:
        """Apply the caps of a named preset (``full`` or ``reduced``) to a copy."""
        if preset == "reduced":
            return replace(self, **REDUCED_CAPS)
        if preset == "full":
            return replace(self, **{name: UNBOUNDED for name in REDUCED_CAPS})
        raise ValueError(f"Unknown preset: {preset}")

    def includes(self, table: Table) -> bool:
        return table in self.tables

    @classmethod
    def from_env(cls) -> MapperConfig:
        """Load configuration from environment variables."""
        tables = os.getenv("FHIR_TABLES_TABLES", "")
        return cls(
            max_patients=parse_cap(os.getenv("FHIR_TABLES_MAX_PATIENTS")),
            max_encounters_per_patient=parse_cap(os.getenv("FHIR_TABLES_MAX_ENCOUNTERS")),
            max_observations_per_encounter=parse_cap(os.getenv("FHIR_TABLES_MAX_OBSERVATIONS")),
            max_medications_per_encounter=parse_cap(os.getenv("FHIR_TABLES_MAX_MEDICATIONS")),
            max_diagnostic_reports_per_encounter=parse_cap(
                os.getenv("FHIR_TABLES_MAX_DIAGNOSTIC_REPORTS")
            ),
            tables=parse_tables(tables) if tables.strip() else CORE_TABLES,
            location_policy=os.getenv("FHIR_TABLES_LOCATION_POLICY", "direct").lower(),
            dangling_policy=os.getenv("FHIR_TABLES_DANGLING_POLICY", "null_fill").lower(),
            sort_inputs=_flag(os.getenv("FHIR_TABLES_SORT_INPUTS", "true")),
            prioritize_encounters=_flag(os.getenv("FHIR_TABLES_PRIORITIZE_ENCOUNTERS", "true")),
            clean_names=_flag(os.getenv("FHIR_TABLES_CLEAN_NAMES", "false")),
        )


def parse_cap(value: str | None) -> int | None:
    """``""``, ``"none"`` and ``"unbounded"`` mean no cap."""
    if value is None or value.strip().lower() in ("", "none", "unbounded"):
        return UNBOUNDED
    return int(value)


def parse_tables(value: str) -> frozenset[Table]:
    """Comma-separated table names (file stems), e.g. ``patients,encounters``."""
    return frozenset(Table(name.strip()) for name in value.split(",") if name.strip())


def _flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


# Global config instance
_config: MapperConfig | None = None


def get_config() -> MapperConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = MapperConfig.from_env()
    return _config
