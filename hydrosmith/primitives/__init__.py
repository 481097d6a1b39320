"""Layer 2: Primitives - Algorithms on objects.

Primitives operate on GeometryCollection and ObservationPanel objects. They
may use shapely and pyproj but never touch files, the network or plotting.
"""

from hydrosmith.primitives.nearest import nearest_feature, within_distance
from hydrosmith.primitives.series import OBSERVED_COL, complete_daily_grid, gap_runs
from hydrosmith.primitives.spatial_join import (
    PREDICATES,
    filter_contained,
    filter_not_contained,
    spatial_join,
    validate_geometries,
)
from hydrosmith.primitives.spatial_reference import (
    WGS84,
    SpatialReference,
    crs_equal,
    ensure_same_crs,
    is_projected,
    linear_unit,
    lonlat_coordinates,
    reproject_collection,
    resolve_crs,
)

__all__ = [
    "OBSERVED_COL",
    "PREDICATES",
    "SpatialReference",
    "WGS84",
    "complete_daily_grid",
    "crs_equal",
    "ensure_same_crs",
    "filter_contained",
    "filter_not_contained",
    "gap_runs",
    "is_projected",
    "linear_unit",
    "lonlat_coordinates",
    "nearest_feature",
    "reproject_collection",
    "resolve_crs",
    "spatial_join",
    "validate_geometries",
    "within_distance",
]
