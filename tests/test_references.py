from fhir_tables.engine.references import normalize


def test_strips_urn_uuid():
    assert normalize("urn:uuid:1f2e3d") == "1f2e3d"


def test_strips_urn_oid():
    assert normalize("urn:oid:2.16.840.1") == "2.16.840.1"


def test_keeps_value_after_pipe_marker():
    ref = "Organization?identifier=https://github.com/synthetichealth/synthea|ef58ea08"
    assert normalize(ref) == "ef58ea08"


def test_relative_reference_to_mapped_type():
    assert normalize("Patient/123") == "123"
    assert normalize("Encounter/abc") == "abc"


def test_unknown_prefix_passes_through():
    assert normalize("Practitioner/77") == "Practitioner/77"
    assert normalize("custom:thing") == "custom:thing"


def test_bare_identifier_unchanged():
    assert normalize("nat_p1") == "nat_p1"


def test_total_on_empty_input():
    assert normalize(None) == ""
    assert normalize("") == ""


def test_strips_surrounding_whitespace():
    assert normalize("  urn:uuid:abc \n") == "abc"


def test_idempotent():
    once = normalize("urn:uuid:abc")
    assert normalize(once) == once
