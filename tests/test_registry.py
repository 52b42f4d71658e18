import logging

from fhir_tables.engine.registry import EntityType, SurrogateIdRegistry


def test_resolve_assigns_sequential_ids_in_first_seen_order():
    registry = SurrogateIdRegistry()
    assert registry.resolve(EntityType.PATIENT, "a") == "pat_1"
    assert registry.resolve(EntityType.PATIENT, "b") == "pat_2"
    assert registry.resolve(EntityType.PATIENT, "c") == "pat_3"


def test_resolve_is_idempotent():
    registry = SurrogateIdRegistry()
    first = registry.resolve(EntityType.ENCOUNTER, "e1")
    registry.resolve(EntityType.ENCOUNTER, "e2")
    assert registry.resolve(EntityType.ENCOUNTER, "e1") == first
    assert registry.count(EntityType.ENCOUNTER) == 2


def test_resolve_normalizes_references():
    registry = SurrogateIdRegistry()
    assert registry.resolve(EntityType.PATIENT, "urn:uuid:abc") == "pat_1"
    assert registry.resolve(EntityType.PATIENT, "abc") == "pat_1"
    assert registry.resolve(EntityType.PATIENT, "Patient/abc") == "pat_1"


def test_sequences_are_scoped_per_type():
    registry = SurrogateIdRegistry()
    assert registry.resolve(EntityType.PATIENT, "x") == "pat_1"
    assert registry.resolve(EntityType.ENCOUNTER, "x") == "enc_1"
    assert registry.resolve(EntityType.OBSERVATION, "x") == "obs_1"
    assert registry.resolve(EntityType.MEDICATION_ADMINISTRATION, "x") == "med_1"
    assert registry.resolve(EntityType.LOCATION, "x") == "loc_1"
    assert registry.resolve(EntityType.DIAGNOSTIC_REPORT, "x") == "diag_1"


def test_distinct_ids_get_distinct_surrogates():
    registry = SurrogateIdRegistry()
    surrogates = {registry.resolve(EntityType.OBSERVATION, f"o{i}") for i in range(50)}
    assert len(surrogates) == 50


def test_lookup_returns_existing_surrogate_without_warning(caplog):
    registry = SurrogateIdRegistry()
    registry.resolve(EntityType.ENCOUNTER, "e1")
    with caplog.at_level(logging.WARNING):
        assert registry.lookup(EntityType.ENCOUNTER, "urn:uuid:e1") == "enc_1"
    assert caplog.records == []
    assert registry.dangling == []


def test_lookup_miss_is_a_dangling_reference(caplog):
    registry = SurrogateIdRegistry()
    with caplog.at_level(logging.WARNING):
        result = registry.lookup(
            EntityType.ENCOUNTER, "urn:uuid:ghost", referenced_by="Observation/o1"
        )
    assert result is None
    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert "ghost" in record.getMessage()
    assert record.natural_id == "ghost"
    assert record.referenced_by == "Observation/o1"
    assert len(registry.dangling) == 1
    assert registry.dangling[0].natural_id == "ghost"
    assert registry.dangling[0].entity_type == "encounter"


def test_lookup_never_creates():
    registry = SurrogateIdRegistry()
    registry.lookup(EntityType.PATIENT, "p1")
    assert registry.count(EntityType.PATIENT) == 0
    assert not registry.is_registered(EntityType.PATIENT, "p1")
    # a later resolve still gets the first id
    assert registry.resolve(EntityType.PATIENT, "p1") == "pat_1"


def test_items_in_assignment_order():
    registry = SurrogateIdRegistry()
    registry.resolve(EntityType.LOCATION, "b")
    registry.resolve(EntityType.LOCATION, "a")
    assert registry.items(EntityType.LOCATION) == [("b", "loc_1"), ("a", "loc_2")]


def test_registries_are_independent():
    one, two = SurrogateIdRegistry(), SurrogateIdRegistry()
    one.resolve(EntityType.PATIENT, "a")
    assert two.resolve(EntityType.PATIENT, "z") == "pat_1"
