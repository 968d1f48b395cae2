"""Display topology discovery and coordinate transforms."""

from .topology import TopologyCache, normalize_topology, synthesize_default_topology
from .transform import CoordinateTransformer, ResolvedCoordinates
from .types import (
    Display,
    DisplayTopology,
    GlobalPoint,
    LocalPoint,
    NativePoint,
    NormalizedPoint,
    RawDisplay,
)

__all__ = [
    "CoordinateTransformer",
    "Display",
    "DisplayTopology",
    "GlobalPoint",
    "LocalPoint",
    "NativePoint",
    "NormalizedPoint",
    "RawDisplay",
    "ResolvedCoordinates",
    "TopologyCache",
    "normalize_topology",
    "synthesize_default_topology",
]
