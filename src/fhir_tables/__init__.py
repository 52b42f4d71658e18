"""fhir-tables - map FHIR bundles onto flat, tab-delimited relational tables."""

from .config import DanglingPolicy, MapperConfig
from .engine import EntityType, LocationPolicy, SurrogateIdRegistry, Table
from .mapper import MappingEngine, MappingReport, map_directory

__version__ = "0.1.0"

__all__ = [
    "MapperConfig",
    "DanglingPolicy",
    "LocationPolicy",
    "EntityType",
    "SurrogateIdRegistry",
    "Table",
    "MappingEngine",
    "MappingReport",
    "map_directory",
]
