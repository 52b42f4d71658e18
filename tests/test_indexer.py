from fhir_tables.engine.indexer import GraphIndexer, build_index

import fhir_factory as fx


def test_first_patient_occurrence_wins():
    first = fx.patient("p1", gender="female")
    again = fx.patient("p1", gender="male")
    index = build_index([fx.parsed(first), fx.parsed(again)])
    assert list(index.patients) == ["p1"]
    assert index.patients["p1"].gender == "female"


def test_encounters_by_patient_keep_bundle_then_document_order():
    index = build_index([
        fx.parsed(
            fx.patient("p1"),
            fx.encounter("e2", patient_id="p1"),
            fx.encounter("e1", patient_id="p1"),
        ),
        fx.parsed(fx.encounter("e3", patient_id="p1")),
    ])
    assert [e.id for e in index.encounters_by_patient["p1"]] == ["e2", "e1", "e3"]


def test_children_keyed_by_normalized_parent_reference():
    index = build_index([
        fx.parsed(
            fx.encounter("e1"),
            fx.observation("o1", "e1"),
            fx.observation("o2", "e1", encounter={"reference": "Encounter/e1"}),
            fx.medication("m1", "e1"),
        )
    ])
    assert [o.id for o in index.observations_for("e1")] == ["o1", "o2"]
    assert [m.id for m in index.medications_for("urn:uuid:e1")] == ["m1"]


def test_duplicate_children_are_ignored():
    index = build_index([
        fx.parsed(fx.encounter("e1"), fx.observation("o1", "e1")),
        fx.parsed(fx.observation("o1", "e1")),
    ])
    assert len(index.observations_for("e1")) == 1


def test_organization_edge_follows_service_provider():
    index = build_index([
        fx.parsed(fx.organization("org1"), fx.encounter("e1", provider="org1"), fx.encounter("e2")),
    ])
    assert index.organization_for(index.encounters["e1"]).id == "org1"
    assert index.organization_for(index.encounters["e2"]) is None


def test_prioritized_encounters_use_three_stable_tiers():
    index = build_index([
        fx.parsed(
            fx.patient("p1"),
            fx.encounter("bare1", patient_id="p1"),
            fx.encounter("obs1", patient_id="p1"),
            fx.encounter("med1", patient_id="p1"),
            fx.encounter("bare2", patient_id="p1"),
            fx.encounter("obs2", patient_id="p1"),
            fx.encounter("med2", patient_id="p1"),
            fx.observation("o1", "obs1"),
            fx.observation("o2", "obs2"),
            fx.observation("o3", "med1"),
            fx.medication("m1", "med1"),
            fx.medication("m2", "med2"),
        )
    ])
    ordered = [e.id for e in index.prioritized_encounters("p1")]
    assert ordered == ["med1", "med2", "obs1", "obs2", "bare1", "bare2"]
    # the raw adjacency list is untouched
    assert [e.id for e in index.encounters_by_patient["p1"]][:2] == ["bare1", "obs1"]


def test_orphan_groups():
    index = build_index([
        fx.parsed(
            fx.patient("p1"),
            fx.encounter("e1", patient_id="p1"),
            fx.encounter("e9", patient_id="ghost"),
            fx.observation("o1", "e1"),
            fx.observation("o2", "missing"),
        )
    ])
    assert list(index.orphan_encounter_groups()) == ["ghost"]
    assert list(index.orphan_observation_groups()) == ["missing"]
    assert index.orphan_medication_groups() == {}


def test_incremental_indexing_counts_bundles():
    indexer = GraphIndexer()
    indexer.add_bundle(fx.parsed(fx.patient("p1")))
    indexer.add_bundle(fx.parsed(fx.patient("p2")))
    assert indexer.index.bundle_count == 2
    assert list(indexer.index.patients) == ["p1", "p2"]
