"""Nearest-feature resolution and distance-threshold joins.

Distances are planar, measured in the linear unit of the shared projected
CRS and optionally converted to another linear unit. Candidate search uses
a shapely STRtree, so each query costs well below a scan of all candidates.
"""

import logging
from typing import Optional

import numpy as np
import shapely
from shapely import STRtree

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import (
    LINEAR_UNITS,
    DistanceMeasurement,
    JoinResult,
    NearestResult,
)
from hydrosmith.primitives.spatial_join import assemble_join, validate_geometries
from hydrosmith.primitives.spatial_reference import ensure_same_crs, linear_unit
from hydrosmith.utils.errors import DataValidationError, raise_parameter_error

logger = logging.getLogger(__name__)


def _distance_scale(crs, unit: Optional[str]) -> tuple[str, float]:
    """Output unit and the factor turning native CRS distances into it."""
    native_key, metres_per_unit = linear_unit(crs)
    if unit is None:
        if native_key in LINEAR_UNITS:
            return native_key, 1.0
        unit = "m"
    if unit not in LINEAR_UNITS:
        raise_parameter_error("unit", unit, valid_values=list(LINEAR_UNITS))
    return unit, metres_per_unit / LINEAR_UNITS[unit]


def nearest_feature(
    query: GeometryCollection,
    candidates: GeometryCollection,
    unit: Optional[str] = None,
    query_id_col: Optional[str] = None,
    candidate_id_col: Optional[str] = None,
) -> NearestResult:
    """Resolve each query record to its single nearest candidate.

    When several candidates are at exactly the same minimum distance, the one
    with the lowest index in ``candidates`` wins, so repeated runs always agree.

    Args:
        query: Query records (e.g. dams).
        candidates: Candidate records (e.g. stream gauges).
        unit: Output distance unit ('m', 'km', 'ft', 'us-ft', 'mi'). Defaults
            to the CRS linear unit.
        query_id_col: Attribute column with query identifiers.
        candidate_id_col: Attribute column with candidate identifiers.

    Returns:
        NearestResult with one measurement per usable query record.

    Raises:
        CRSMismatchError: If the collections do not share a CRS.
        NonProjectedCRSError: If the shared CRS uses angular units.
        DataValidationError: If there are no usable candidates.

    Example:
        >>> result = nearest_feature(dams, gauges, unit="km",
        ...                          query_id_col="dam_id", candidate_id_col="site_no")
        >>> result.to_frame().head()
    """
    ensure_same_crs(query, candidates)
    out_unit, scale = _distance_scale(query.crs, unit)

    query_valid, failures = validate_geometries(query, side="query", id_col=query_id_col)
    cand_valid, cand_failures = validate_geometries(
        candidates, side="candidate", id_col=candidate_id_col
    )
    failures = failures + cand_failures
    cand_positions = np.flatnonzero(cand_valid)
    if len(cand_positions) == 0:
        raise DataValidationError(
            f"No usable candidates in '{candidates.name or 'candidates'}' "
            f"({len(candidates)} records)",
            suggestion="Nearest-feature resolution needs at least one valid candidate",
        )

    query_positions = np.flatnonzero(query_valid)
    if len(query_positions) == 0:
        return NearestResult(
            measurements=[], candidate_index=np.empty(0, dtype=int), failures=failures
        )

    tree = STRtree(candidates.geometries[cand_positions])
    (input_idx, tree_idx), distances = tree.query_nearest(
        query.geometries[query_positions], return_distance=True, all_matches=True
    )
    # all_matches returns every equidistant candidate; keep the lowest index.
    order = np.lexsort((tree_idx, input_idx))
    input_idx, tree_idx, distances = input_idx[order], tree_idx[order], distances[order]
    _, first = np.unique(input_idx, return_index=True)

    query_ids = query.ids(query_id_col)
    cand_ids = candidates.ids(candidate_id_col)
    winners = cand_positions[tree_idx[first]]
    measurements = [
        DistanceMeasurement(
            query_id=query_ids[q_pos],
            candidate_id=cand_ids[c_pos],
            distance=float(dist) * scale,
            unit=out_unit,
        )
        for q_pos, c_pos, dist in zip(query_positions, winners, distances[first])
    ]
    logger.info(
        f"Resolved nearest '{candidates.name}' for {len(measurements)} "
        f"'{query.name}' records"
    )
    return NearestResult(
        measurements=measurements,
        candidate_index=winners.astype(int),
        failures=failures,
    )


def within_distance(
    query: GeometryCollection,
    candidates: GeometryCollection,
    max_distance: float,
    unit: Optional[str] = None,
    how: str = "inner",
    distance_col: str = "distance",
    query_id_col: Optional[str] = None,
) -> JoinResult:
    """Pair every query record with every candidate within ``max_distance``.

    This is a 1:many relation: a query record may appear many times or, with
    ``how='inner'``, not at all.

    Args:
        query: Query records; their geometries are kept.
        candidates: Candidate records; their attributes are transferred.
        max_distance: Inclusive distance threshold, in ``unit``.
        unit: Unit of ``max_distance`` and of the distance column. Defaults to
            the CRS linear unit.
        how: 'inner' or 'left' (unmatched query records with null candidate
            attributes and null distance).
        distance_col: Name of the distance column added to the result.
        query_id_col: Attribute column with query identifiers.

    Returns:
        JoinResult ordered by query index, then candidate index.

    Raises:
        CRSMismatchError: If the collections do not share a CRS.
        NonProjectedCRSError: If the shared CRS uses angular units.
        ParameterError: If ``max_distance`` is negative or ``how`` is unknown.
        SchemaMismatchError: If the joined attributes already have the distance
            columns or ``index_right``.
    """
    if max_distance < 0:
        raise_parameter_error(
            "max_distance", max_distance, constraint="must be >= 0"
        )
    if how not in ("inner", "left"):
        raise_parameter_error("how", how, valid_values=["inner", "left"])
    ensure_same_crs(query, candidates)
    out_unit, scale = _distance_scale(query.crs, unit)
    native_max = max_distance / scale

    query_valid, failures = validate_geometries(query, side="query", id_col=query_id_col)
    cand_valid, cand_failures = validate_geometries(candidates, side="candidate")
    failures = failures + cand_failures
    query_positions = np.flatnonzero(query_valid)
    cand_positions = np.flatnonzero(cand_valid)

    left_idx = np.empty(0, dtype=int)
    right_idx = np.empty(0, dtype=int)
    if len(query_positions) and len(cand_positions):
        tree = STRtree(candidates.geometries[cand_positions])
        input_idx, tree_idx = tree.query(
            query.geometries[query_positions], predicate="dwithin", distance=native_max
        )
        left_idx = query_positions[input_idx]
        right_idx = cand_positions[tree_idx]

    native = shapely.distance(
        query.geometries[left_idx], candidates.geometries[right_idx]
    ).astype(float)
    keep = native <= native_max
    left_idx, right_idx, native = left_idx[keep], right_idx[keep], native[keep]

    if how == "left":
        matched = np.zeros(len(query), dtype=bool)
        matched[left_idx] = True
        unmatched = np.flatnonzero(query_valid & ~matched)
        left_idx = np.concatenate([left_idx, unmatched]).astype(int)
        right_idx = np.concatenate([right_idx, np.full(len(unmatched), -1)]).astype(int)
        native = np.concatenate([native, np.full(len(unmatched), np.nan)])

    order = np.lexsort((right_idx, left_idx))
    left_idx, right_idx, native = left_idx[order], right_idx[order], native[order]

    result = assemble_join(
        query,
        candidates,
        left_idx,
        right_idx,
        how,
        failures,
        added_cols=(distance_col, f"{distance_col}_unit"),
    )
    result.collection.attributes[distance_col] = native * scale
    result.collection.attributes[f"{distance_col}_unit"] = out_unit
    logger.info(
        f"Found {len(result) - result.n_unmatched} pairs within {max_distance} "
        f"{out_unit} between '{query.name}' and '{candidates.name}'"
    )
    return result
