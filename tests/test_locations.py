import logging

import pytest

from fhir_tables.engine.indexer import build_index
from fhir_tables.engine.locations import (
    SYNTHETIC_UNITS,
    DirectLocationSynthesizer,
    DurationLocationSynthesizer,
    LocationPolicy,
    make_synthesizer,
)
from fhir_tables.engine.registry import EntityType, SurrogateIdRegistry

import fhir_factory as fx


def _setup(*resources, policy=LocationPolicy.DURATION):
    registry = SurrogateIdRegistry()
    index = build_index([fx.parsed(*resources)])
    synthesizer = make_synthesizer(policy, registry, index)
    synthesizer.register()
    return registry, index, synthesizer


def test_factory_picks_policy():
    registry, index = SurrogateIdRegistry(), build_index([])
    assert isinstance(make_synthesizer("direct", registry, index), DirectLocationSynthesizer)
    assert isinstance(make_synthesizer("duration", registry, index), DurationLocationSynthesizer)
    with pytest.raises(ValueError):
        make_synthesizer("random", registry, index)


def test_synthetic_units_register_after_organizations():
    registry, _, synthesizer = _setup(fx.organization("org1"), fx.organization("org2"))
    assert [loc.id for loc in synthesizer.candidates()][:2] == ["org1", "org2"]
    assert registry.resolve(EntityType.LOCATION, "org2") == "loc_2"
    assert registry.resolve(EntityType.LOCATION, SYNTHETIC_UNITS[0].id) == "loc_3"
    assert registry.count(EntityType.LOCATION) == 2 + len(SYNTHETIC_UNITS)


def test_direct_policy_has_no_synthetic_units():
    registry, _, synthesizer = _setup(fx.organization("org1"), policy=LocationPolicy.DIRECT)
    assert [loc.id for loc in synthesizer.candidates()] == ["org1"]
    assert registry.count(EntityType.LOCATION) == 1


def test_long_stay_splits_into_three_units_with_gaps():
    enc = fx.encounter("e1", start="2020-01-01T08:00:00+00:00", end="2020-01-01T20:00:00+00:00",
                       provider="org1")
    _, index, synthesizer = _setup(fx.organization("org1"), enc)
    encounter = index.encounters["e1"]
    segments = synthesizer.segments(encounter, "loc_1")

    assert [s.hours for s in segments] == [2, 3, 5]
    assert segments[0].start == encounter.start
    assert segments[-1].end == encounter.end
    for before, after in zip(segments, segments[1:]):
        assert (after.start - before.end).total_seconds() == 3600
    assert [s.location_id for s in segments] == ["loc_2", "loc_3", "loc_5"]


def test_medium_stay_uses_surgery_then_recovery():
    enc = fx.encounter("e1", start="2020-01-01T08:00:00+00:00", end="2020-01-01T14:00:00+00:00")
    _, index, synthesizer = _setup(enc)
    segments = synthesizer.segments(index.encounters["e1"], None)
    assert [s.hours for s in segments] == [3, 2]
    assert [s.location_id for s in segments] == ["loc_3", "loc_5"]


@pytest.mark.parametrize("end, count", [("18:00", 2), ("13:00", 1), ("09:00", 1)])
def test_thresholds_are_strictly_greater(end, count):
    enc = fx.encounter("e1", start="2020-01-01T08:00:00+00:00", end=f"2020-01-01T{end}:00+00:00")
    _, index, synthesizer = _setup(enc)
    assert len(synthesizer.segments(index.encounters["e1"], "loc_home")) == count


def test_short_stay_stays_at_home_location():
    enc = fx.encounter("e1", provider="org1")
    _, index, synthesizer = _setup(fx.organization("org1"), enc)
    encounter = index.encounters["e1"]
    home = synthesizer.home_location(encounter)
    assert home == "loc_1"
    (segment,) = synthesizer.segments(encounter, home)
    assert (segment.start, segment.end, segment.location_id) == (encounter.start, encounter.end, "loc_1")


def test_incomplete_period_has_no_segments(caplog):
    enc = fx.encounter("e1")
    enc["period"] = {"start": "2020-01-01T08:00:00+00:00"}
    _, index, synthesizer = _setup(enc)
    with caplog.at_level(logging.WARNING):
        assert synthesizer.segments(index.encounters["e1"], None) == []
    assert "no complete period" in caplog.text


def test_home_location_of_unknown_provider_is_dangling():
    registry, index, synthesizer = _setup(fx.encounter("e1", provider="ghost"))
    assert synthesizer.home_location(index.encounters["e1"]) is None
    (dangling,) = registry.dangling
    assert dangling.natural_id == "ghost"
    assert dangling.referenced_by == "Encounter/e1"


def test_encounter_without_provider_has_no_location():
    registry, index, synthesizer = _setup(fx.encounter("e1"))
    assert synthesizer.home_location(index.encounters["e1"]) is None
    assert registry.dangling == []


def test_locations_list_only_visited_organizations():
    registry, index, synthesizer = _setup(
        fx.organization("org1"),
        fx.organization("org2"),
        fx.encounter("e1", provider="org2"),
        policy=LocationPolicy.DIRECT,
    )
    assert synthesizer.locations() == []
    assert synthesizer.home_location(index.encounters["e1"]) == "loc_2"
    assert [loc.id for loc in synthesizer.locations()] == ["org2"]
    # keys were handed out up front, so org1 keeps loc_1 even though unused
    assert registry.count(EntityType.LOCATION) == 2


def test_duration_units_are_always_listed():
    _, _, synthesizer = _setup(fx.organization("org1"))
    assert [loc.id for loc in synthesizer.locations()] == [u.id for u in SYNTHETIC_UNITS]


def test_date_only_start_splits_like_midnight():
    enc = fx.encounter("e1", start="2020-01-01", end="2020-01-01T20:00:00+00:00")
    _, index, synthesizer = _setup(enc)
    segments = synthesizer.segments(index.encounters["e1"], None)
    assert [s.hours for s in segments] == [2, 3, 13]


def test_naive_bound_does_not_break_the_split():
    enc = fx.encounter("e1", start="2020-01-01T08:00:00", end="2020-01-01T14:00:00+00:00")
    _, index, synthesizer = _setup(enc)
    assert [s.hours for s in synthesizer.segments(index.encounters["e1"], None)] == [3, 2]
