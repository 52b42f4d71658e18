"""Location synthesis: location rows and per-encounter stay segments.

Two interchangeable policies:

- ``direct``: every Organization becomes a location; an encounter stays at
  its service provider for the whole visit.
- ``duration``: long stays are split across fixed hospital units by a
  decision table on length of stay; short stays fall back to the service
  provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from ..bundle.schemas import Encounter, Organization, as_aware
from .indexer import BundleIndex
from .references import normalize
from .registry import EntityType, SurrogateIdRegistry

logger = logging.getLogger(__name__)


class LocationPolicy(str, Enum):
    """How encounter stays are mapped to locations."""

    DIRECT = "direct"
    DURATION = "duration"


@dataclass(frozen=True)
class StaySegment:
    """One contiguous stretch of an encounter spent at one location."""

    start: datetime
    end: datetime
    location_id: str | None

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600


_UNIT_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-RoleCode"


def _unit(natural_id: str, name: str, code: str, display: str) -> Organization:
    return Organization(
        id=natural_id,
        name=name,
        type_code=code,
        type_system=_UNIT_SYSTEM,
        type_display=display,
    )


# Fixed units used by the duration heuristic (A-E in the decision table)
EMERGENCY_DEPARTMENT = _unit("synthetic-unit-ed", "Emergency Department", "ER", "Emergency room")
INTENSIVE_CARE_UNIT = _unit("synthetic-unit-icu", "Intensive Care Unit", "ICU", "Intensive care unit")
SURGICAL_SUITE = _unit("synthetic-unit-or", "Surgical Suite", "OR", "Operating room")
MEDICAL_WARD = _unit("synthetic-unit-ward", "Medical Ward", "HU", "Hospital unit")
RECOVERY_UNIT = _unit("synthetic-unit-recovery", "Recovery Unit", "RHU", "Rehabilitation hospital unit")

SYNTHETIC_UNITS: tuple[Organization, ...] = (
    EMERGENCY_DEPARTMENT,
    INTENSIVE_CARE_UNIT,
    SURGICAL_SUITE,
    MEDICAL_WARD,
    RECOVERY_UNIT,
)

LONG_STAY_HOURS = 10
MEDIUM_STAY_HOURS = 5
TRANSIT_GAP = timedelta(hours=1)


class DirectLocationSynthesizer:
    """Locations straight from Organizations; one segment per encounter."""

    policy = LocationPolicy.DIRECT

    def __init__(self, registry: SurrogateIdRegistry, index: BundleIndex):
        self._registry = registry
        self._index = index
        self._referenced: set[str] = set()

    def candidates(self) -> list[Organization]:
        """Every location that gets a key, in registration order."""
        return list(self._index.organizations.values())

    def locations(self) -> list[Organization]:
        """Source records for ``locations.tsv``.

        Only organizations some mapped encounter stays at, so a capped run
        does not list providers none of its encounters visited.
        """
        return [
            organization
            for key, organization in self._index.organizations.items()
            if key in self._referenced
        ]

    def register(self) -> None:
        """Assign location keys up front so they do not depend on encounter order."""
        for location in self.candidates():
            self._registry.resolve(EntityType.LOCATION, location.id)

    def home_location(self, encounter: Encounter) -> str | None:
        """Location key of the encounter's service provider.

        An encounter without a service provider has no location; one whose
        provider was never indexed is a dangling reference.
        """
        if not encounter.service_provider_ref:
            return None
        location_id = self._registry.lookup(
            EntityType.LOCATION,
            encounter.service_provider_ref,
            referenced_by=f"Encounter/{encounter.id}",
        )
        if location_id is not None:
            self._referenced.add(normalize(encounter.service_provider_ref))
        return location_id

    def segments(self, encounter: Encounter, home_location_id: str | None) -> list[StaySegment]:
        if encounter.start is None or encounter.end is None:
            logger.warning(
                "[LOCATIONS] Encounter %s has no complete period, no stay segments",
                encounter.id,
            )
            return []
        return [StaySegment(encounter.start, encounter.end, home_location_id)]


class DurationLocationSynthesizer(DirectLocationSynthesizer):
    """Split stays across fixed hospital units by length of stay.

    ============  ==================================================
    stay          segments
    ============  ==================================================
    > 10 h        ED 2 h, gap 1 h, ICU 3 h, gap 1 h, ward until end
    > 5 h         OR 3 h, gap 1 h, recovery until end
    otherwise     whole stay at the service provider
    ============  ==================================================

    The gaps are transit time not attributed to any location.
    """

    policy = LocationPolicy.DURATION

    def candidates(self) -> list[Organization]:
        return super().candidates() + list(SYNTHETIC_UNITS)

    def locations(self) -> list[Organization]:
        return super().locations() + list(SYNTHETIC_UNITS)

    def segments(self, encounter: Encounter, home_location_id: str | None) -> list[StaySegment]:
        hours = encounter.duration_hours
        if hours is None:
            return super().segments(encounter, home_location_id)

        start, end = as_aware(encounter.start), as_aware(encounter.end)
        if hours > LONG_STAY_HOURS:
            ed_end = start + timedelta(hours=2)
            icu_start = ed_end + TRANSIT_GAP
            icu_end = icu_start + timedelta(hours=3)
            return [
                StaySegment(start, ed_end, self._unit_id(EMERGENCY_DEPARTMENT)),
                StaySegment(icu_start, icu_end, self._unit_id(INTENSIVE_CARE_UNIT)),
                StaySegment(icu_end + TRANSIT_GAP, end, self._unit_id(MEDICAL_WARD)),
            ]
        if hours > MEDIUM_STAY_HOURS:
            or_end = start + timedelta(hours=3)
            return [
                StaySegment(start, or_end, self._unit_id(SURGICAL_SUITE)),
                StaySegment(or_end + TRANSIT_GAP, end, self._unit_id(RECOVERY_UNIT)),
            ]
        return [StaySegment(start, end, home_location_id)]

    def _unit_id(self, unit: Organization) -> str:
        return self._registry.resolve(EntityType.LOCATION, unit.id)


def make_synthesizer(
    policy: LocationPolicy | str,
    registry: SurrogateIdRegistry,
    index: BundleIndex,
) -> DirectLocationSynthesizer:
    """Build the synthesizer for *policy*."""
    policy = LocationPolicy(policy)
    if policy is LocationPolicy.DURATION:
        return DurationLocationSynthesizer(registry, index)
    return DirectLocationSynthesizer(registry, index)
