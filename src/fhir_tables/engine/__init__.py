"""Resource-graph-to-relational mapping components.

Leaf-first: reference normalization, surrogate IDs, graph indexing,
sampling, location synthesis and row projection. The orchestrating engine
lives in :mod:`fhir_tables.mapper`.
"""

from .indexer import BundleIndex, GraphIndexer, build_index
from .locations import (
    DirectLocationSynthesizer,
    DurationLocationSynthesizer,
    LocationPolicy,
    StaySegment,
    make_synthesizer,
)
from .projector import CORE_TABLES, TABLES, Table
from .references import normalize
from .registry import EntityType, SurrogateIdRegistry
from .sampling import UNBOUNDED, limit

__all__ = [
    "normalize",
    "EntityType",
    "SurrogateIdRegistry",
    "BundleIndex",
    "GraphIndexer",
    "build_index",
    "UNBOUNDED",
    "limit",
    "LocationPolicy",
    "StaySegment",
    "DirectLocationSynthesizer",
    "DurationLocationSynthesizer",
    "make_synthesizer",
    "Table",
    "TABLES",
    "CORE_TABLES",
]
