"""Layer 1: Objects - Immutable data representations.

This layer contains only data structures. No I/O libraries, no geopandas,
no shapely, no requests, no matplotlib. Only standard library + numpy + pandas.
"""

from hydrosmith.objects.geocollection import CRSLike, GeometryCollection
from hydrosmith.objects.results import (
    LINEAR_UNITS,
    DistanceMeasurement,
    FetchBatch,
    FetchFailure,
    FilterResult,
    GeometryFailure,
    JoinResult,
    LayerManifest,
    NearestResult,
    NetworkTraversalResult,
    convert_distance,
)
from hydrosmith.objects.timeseries import ObservationPanel

__all__ = [
    "CRSLike",
    "DistanceMeasurement",
    "FetchBatch",
    "FetchFailure",
    "FilterResult",
    "GeometryCollection",
    "GeometryFailure",
    "JoinResult",
    "LINEAR_UNITS",
    "LayerManifest",
    "NearestResult",
    "NetworkTraversalResult",
    "ObservationPanel",
    "convert_distance",
]
