"""Spatial filtering and joins between two geometry collections.

Provides tools for:
- Containment filters and their complement
- Predicate joins with explicit inner/left cardinality
- Per-record geometry validation that never aborts a batch

Candidate search goes through a shapely STRtree built on the right-hand
collection. Both inputs must share a CRS.
"""

import logging
from typing import Literal, Optional

import numpy as np
import pandas as pd
import shapely
from shapely import STRtree
from shapely.errors import GEOSException

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import FilterResult, GeometryFailure, JoinResult
from hydrosmith.primitives.spatial_reference import ensure_same_crs
from hydrosmith.utils.errors import (
    InvalidGeometryError,
    SchemaMismatchError,
    raise_parameter_error,
)

logger = logging.getLogger(__name__)

PREDICATES = (
    "intersects",
    "within",
    "contains",
    "touches",
    "covered_by",
    "covers",
    "crosses",
    "overlaps",
)

JoinHow = Literal["inner", "left"]


def _check_predicate(predicate: str) -> None:
    if predicate not in PREDICATES:
        raise_parameter_error(
            "predicate",
            predicate,
            valid_values=list(PREDICATES),
        )


def validate_geometries(
    collection: GeometryCollection,
    side: str = "left",
    id_col: Optional[str] = None,
) -> tuple[np.ndarray, list[GeometryFailure]]:
    """Split a collection into usable records and per-record failures.

    A record fails when its geometry is missing, empty or invalid
    (e.g. a self-intersecting polygon).

    Args:
        collection: Collection to check.
        side: Label stored on each failure ('left', 'right', 'subject', ...).
        id_col: Optional identifier column for failure reporting.

    Returns:
        Tuple of (boolean mask of usable records, list of failures).
    """
    ids = collection.ids(id_col)
    valid = np.ones(len(collection), dtype=bool)
    failures: list[GeometryFailure] = []

    for i, geom in enumerate(collection.geometries):
        reason = None
        if geom is None:
            reason = "missing geometry"
        elif not isinstance(geom, shapely.Geometry):
            reason = f"not a geometry: {type(geom).__name__}"
        elif geom.is_empty:
            reason = "empty geometry"
        elif not shapely.is_valid(geom):
            reason = shapely.is_valid_reason(geom)

        if reason is not None:
            valid[i] = False
            failures.append(
                GeometryFailure(
                    index=i,
                    record_id=ids[i],
                    error=InvalidGeometryError(
                        f"Record {ids[i]!r} of '{collection.name or side}': {reason}",
                        index=i,
                    ),
                    side=side,
                )
            )

    if failures:
        logger.warning(
            f"{len(failures)} of {len(collection)} {side} records have unusable "
            f"geometries and were skipped"
        )
    return valid, failures


def _query_pairs(
    left: GeometryCollection,
    left_valid: np.ndarray,
    right: GeometryCollection,
    right_valid: np.ndarray,
    predicate: str,
    left_id_col: Optional[str] = None,
) -> tuple[np.ndarray, np.ndarray, list[GeometryFailure]]:
    """Find (left, right) index pairs satisfying ``predicate``.

    Returns pairs sorted by left index then right index, plus failures for
    left records whose predicate evaluation raised.
    """
    left_positions = np.flatnonzero(left_valid)
    right_positions = np.flatnonzero(right_valid)
    failures: list[GeometryFailure] = []

    if len(left_positions) == 0 or len(right_positions) == 0:
        empty = np.empty(0, dtype=int)
        return empty, empty, failures

    tree = STRtree(right.geometries[right_positions])
    try:
        input_idx, tree_idx = tree.query(
            left.geometries[left_positions], predicate=predicate
        )
    except GEOSException:
        # Fall back to one record at a time so a bad record is isolated.
        ids = left.ids(left_id_col)
        inputs, hits = [], []
        for k, pos in enumerate(left_positions):
            try:
                matched = tree.query(left.geometries[pos], predicate=predicate)
            except GEOSException as e:
                failures.append(
                    GeometryFailure(
                        index=int(pos),
                        record_id=ids[pos],
                        error=InvalidGeometryError(
                            f"Predicate '{predicate}' failed for record {ids[pos]!r}: {e}",
                            index=int(pos),
                        ),
                        side="left",
                    )
                )
                continue
            inputs.extend([k] * len(matched))
            hits.extend(matched.tolist())
        input_idx = np.asarray(inputs, dtype=int)
        tree_idx = np.asarray(hits, dtype=int)

    left_idx = left_positions[input_idx]
    right_idx = right_positions[tree_idx]
    order = np.lexsort((right_idx, left_idx))
    return left_idx[order], right_idx[order], failures


def _filter(
    subject: GeometryCollection,
    boundary: GeometryCollection,
    predicate: str,
    contained: bool,
    id_col: Optional[str],
) -> FilterResult:
    _check_predicate(predicate)
    ensure_same_crs(subject, boundary)

    subject_valid, failures = validate_geometries(subject, side="subject", id_col=id_col)
    boundary_valid, boundary_failures = validate_geometries(boundary, side="boundary")
    left_idx, _, eval_failures = _query_pairs(
        subject, subject_valid, boundary, boundary_valid, predicate, left_id_col=id_col
    )

    for failure in eval_failures:
        subject_valid[failure.index] = False
    failures = failures + eval_failures + boundary_failures

    matched = np.zeros(len(subject), dtype=bool)
    matched[np.unique(left_idx)] = True
    keep = matched if contained else (subject_valid & ~matched)
    source_index = np.flatnonzero(keep)

    return FilterResult(
        collection=subject.take(source_index),
        source_index=source_index,
        failures=failures,
    )


def filter_contained(
    subject: GeometryCollection,
    boundary: GeometryCollection,
    predicate: str = "within",
    id_col: Optional[str] = None,
) -> FilterResult:
    """Keep subject records that satisfy ``predicate`` against any boundary record.

    Args:
        subject: Records to filter (e.g. stations).
        boundary: Boundary geometries (e.g. state or county polygons).
        predicate: Spatial predicate, 'within' by default; 'intersects' keeps
            records touching a boundary edge too.
        id_col: Optional subject identifier column for failure reporting.

    Returns:
        FilterResult with the kept records (original order) and failures.

    Raises:
        CRSMismatchError: If the collections do not share a CRS.
        ParameterError: If the predicate is unknown.

    Example:
        >>> inside = filter_contained(stations, states, predicate="within")
        >>> outside = filter_not_contained(stations, states)
        >>> assert len(inside) + len(outside) == len(stations)
    """
    return _filter(subject, boundary, predicate, contained=True, id_col=id_col)


def filter_not_contained(
    subject: GeometryCollection,
    boundary: GeometryCollection,
    predicate: str = "within",
    id_col: Optional[str] = None,
) -> FilterResult:
    """Keep subject records that satisfy ``predicate`` against no boundary record.

    Complement of :func:`filter_contained`: together they partition the
    usable subject records. Records with unusable geometries appear in
    neither result, only in ``failures``.
    """
    return _filter(subject, boundary, predicate, contained=False, id_col=id_col)


def merge_attributes(
    left_attrs: pd.DataFrame,
    right_attrs: pd.DataFrame,
    lsuffix: str = "left",
    rsuffix: str = "right",
) -> pd.DataFrame:
    """Column-wise union of two attribute tables, suffixing collisions."""
    overlap = set(left_attrs.columns) & set(right_attrs.columns)
    if overlap:
        left_attrs = left_attrs.rename(columns={c: f"{c}_{lsuffix}" for c in overlap})
        right_attrs = right_attrs.rename(columns={c: f"{c}_{rsuffix}" for c in overlap})
    return pd.concat([left_attrs, right_attrs], axis=1)


def assemble_join(
    left: GeometryCollection,
    right: GeometryCollection,
    left_idx: np.ndarray,
    right_idx: np.ndarray,
    how: str,
    failures: list[GeometryFailure],
    lsuffix: str = "left",
    rsuffix: str = "right",
    added_cols: tuple[str, ...] = (),
) -> JoinResult:
    """Build a JoinResult from matched (left, right) positional pairs.

    ``right_idx`` is -1 for left records kept without a match; those rows get
    null right attributes. ``index_right`` and ``added_cols`` are columns the
    caller is about to add; none of them may already be present.

    Raises:
        SchemaMismatchError: If a merged attribute column has one of those names.
    """
    left_attrs = left.attributes.iloc[left_idx].reset_index(drop=True)
    # reindex with -1 yields all-null rows for unmatched left records
    right_attrs = right.attributes.reindex(right_idx).reset_index(drop=True)
    attributes = merge_attributes(left_attrs, right_attrs, lsuffix, rsuffix)
    taken = [c for c in ("index_right", *added_cols) if c in attributes.columns]
    if taken:
        raise SchemaMismatchError(
            f"Joined attributes of '{left.name}' and '{right.name}' already have "
            f"column(s) {taken}",
            suggestion="Drop or rename those columns before joining",
        )
    attributes["index_right"] = pd.array(
        [int(i) if i >= 0 else None for i in right_idx], dtype="Int64"
    )

    collection = GeometryCollection(
        geometries=left.geometries[left_idx],
        attributes=attributes,
        crs=left.crs,
        name=left.name,
    )
    return JoinResult(
        collection=collection,
        left_index=np.asarray(left_idx, dtype=int),
        right_index=np.asarray(right_idx, dtype=int),
        how=how,
        failures=failures,
    )


def spatial_join(
    left: GeometryCollection,
    right: GeometryCollection,
    predicate: str = "within",
    how: JoinHow = "left",
    lsuffix: str = "left",
    rsuffix: str = "right",
    left_id_col: Optional[str] = None,
) -> JoinResult:
    """Join right attributes onto left records by a spatial predicate.

    For each left record every right record satisfying
    ``predicate(left, right)`` produces one joined row; a point on a shared
    boundary that matches two polygons yields two rows. Rows are ordered by
    left index, then right index.

    Args:
        left: Left collection; its geometries are kept.
        right: Right collection; its attributes are transferred.
        predicate: Spatial predicate, default 'within'.
        how: 'inner' drops unmatched left records; 'left' keeps them with null
            right attributes.
        lsuffix: Suffix for left columns that collide with right columns.
        rsuffix: Suffix for right columns that collide with left columns.
        left_id_col: Optional left identifier column for failure reporting.

    Returns:
        JoinResult with an ``index_right`` column (null when unmatched).

    Raises:
        CRSMismatchError: If the collections do not share a CRS.
        ParameterError: If the predicate or ``how`` is unknown.
        SchemaMismatchError: If the joined attributes already have ``index_right``.
    """
    _check_predicate(predicate)
    if how not in ("inner", "left"):
        raise_parameter_error("how", how, valid_values=["inner", "left"])
    ensure_same_crs(left, right)

    left_valid, failures = validate_geometries(left, side="left", id_col=left_id_col)
    right_valid, right_failures = validate_geometries(right, side="right")
    left_idx, right_idx, eval_failures = _query_pairs(
        left, left_valid, right, right_valid, predicate, left_id_col=left_id_col
    )
    for failure in eval_failures:
        left_valid[failure.index] = False
    failures = failures + eval_failures + right_failures

    if how == "left":
        matched = np.zeros(len(left), dtype=bool)
        matched[left_idx] = True
        unmatched = np.flatnonzero(left_valid & ~matched)
        left_idx = np.concatenate([left_idx, unmatched]).astype(int)
        right_idx = np.concatenate([right_idx, np.full(len(unmatched), -1)]).astype(int)
        order = np.lexsort((right_idx, left_idx))
        left_idx, right_idx = left_idx[order], right_idx[order]

    result = assemble_join(
        left, right, left_idx, right_idx, how, failures, lsuffix, rsuffix
    )
    logger.info(
        f"Joined '{left.name}' to '{right.name}' ({predicate}, {how}): "
        f"{len(result)} rows, {result.n_unmatched} unmatched, "
        f"{len(failures)} failures"
    )
    return result
