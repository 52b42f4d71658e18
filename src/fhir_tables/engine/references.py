"""Normalization of FHIR cross-reference strings to bare identifiers."""

from __future__ import annotations

import re

URN_PREFIXES = ("urn:uuid:", "urn:oid:")

# Relative references such as ``Patient/123``; only the resource types we map
_RELATIVE_RE = re.compile(
    r"^(?:Patient|Encounter|Observation|MedicationAdministration"
    r"|Organization|DiagnosticReport)/(?P<id>[^/]+)$"
)


def normalize(ref: str | None) -> str:
    """Strip scheme prefixes from a raw reference.

    Handles ``urn:uuid:<id>``, ``urn:oid:<id>``, conditional references
    carrying a ``<system>|<id>`` marker (Synthea writes service providers as
    ``Organization?identifier=https://github.com/synthetichealth/synthea|<id>``)
    and relative ``ResourceType/<id>`` references. Anything else is returned
    unchanged apart from surrounding whitespace.

    >>> normalize("urn:uuid:abc")
    'abc'
    >>> normalize("Organization?identifier=https://example.org|42")
    '42'
    """
    if not ref:
        return ""
    value = ref.strip()

    if "|" in value:
        value = value.rsplit("|", 1)[1]

    for prefix in URN_PREFIXES:
        if value.startswith(prefix):
            return value[len(prefix):]

    match = _RELATIVE_RE.match(value)
    if match:
        return match.group("id")
    return value
