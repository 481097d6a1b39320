"""Coordinate Reference System (CRS) handling for spatial operations.

Provides standardized CRS handling using pyproj. Every cross-collection
operation validates CRS equality through this module; nothing assumes an
ambient "current" CRS.
"""

from __future__ import annotations

import logging

import numpy as np
import shapely
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from hydrosmith.objects.geocollection import CRSLike, GeometryCollection
from hydrosmith.utils.errors import (
    CRSMismatchError,
    NonProjectedCRSError,
    UnknownCRSError,
)

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

# pyproj unit names mapped onto the distance unit keys used in results.
_UNIT_KEYS = {
    "metre": "m",
    "meter": "m",
    "kilometre": "km",
    "foot": "ft",
    "US survey foot": "us-ft",
}


def resolve_crs(crs: CRSLike | CRS) -> CRS:
    """Resolve a user CRS specification into a pyproj CRS.

    Args:
        crs: EPSG code (int or 'EPSG:5070'), WKT, PROJ string or CRS object.

    Returns:
        pyproj CRS object.

    Raises:
        UnknownCRSError: If PROJ does not recognize the identifier.
    """
    if isinstance(crs, CRS):
        return crs
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise UnknownCRSError(
            f"Unrecognized CRS: {crs!r}",
            suggestion="Use an EPSG code such as 'EPSG:5070' or a valid PROJ/WKT string",
            details={"crs": crs, "reason": str(e)},
        ) from e


def crs_equal(a: CRSLike | CRS, b: CRSLike | CRS) -> bool:
    """Check whether two CRS specifications describe the same CRS.

    Axis order is ignored because all transforms use x/y (lon/lat) order.

    Raises:
        UnknownCRSError: If either identifier is unrecognized.
    """
    crs_a = resolve_crs(a)
    crs_b = resolve_crs(b)
    return crs_a.equals(crs_b, ignore_axis_order=True)


def ensure_same_crs(*collections: GeometryCollection) -> CRSLike:
    """Validate that all collections share one CRS.

    Returns:
        The shared CRS specification (from the first collection).

    Raises:
        CRSMismatchError: If any two collections differ.
        UnknownCRSError: If a CRS identifier is unrecognized.
    """
    if not collections:
        raise ValueError("At least one collection is required")
    first = collections[0]
    for other in collections[1:]:
        if not crs_equal(first.crs, other.crs):
            raise CRSMismatchError(
                f"CRS mismatch: '{first.name or 'collection'}' is in {first.crs} but "
                f"'{other.name or 'collection'}' is in {other.crs}",
                suggestion="Reproject both collections with HarmonizeTask first",
            )
    return first.crs


def is_projected(crs: CRSLike | CRS) -> bool:
    """True if the CRS has linear (not angular) horizontal units."""
    crs_obj = resolve_crs(crs)
    if crs_obj.is_geographic:
        return False
    axis_info = crs_obj.axis_info
    if not axis_info:
        return False
    return axis_info[0].unit_name not in ("degree", "radian", "grad")


def linear_unit(crs: CRSLike | CRS) -> tuple[str, float]:
    """Linear unit of a projected CRS.

    Args:
        crs: CRS specification.

    Returns:
        Tuple of (unit key, metres per unit). The key is one of the
        ``LINEAR_UNITS`` keys when the unit is known, otherwise the pyproj
        unit name.

    Raises:
        NonProjectedCRSError: If the CRS uses angular units.
    """
    crs_obj = resolve_crs(crs)
    if not is_projected(crs_obj):
        raise NonProjectedCRSError(
            f"CRS {crs} uses angular units; distances in degrees are not meaningful",
            suggestion="Reproject to a projected CRS (e.g. 'EPSG:5070') before "
            "measuring distances",
        )
    axis = crs_obj.axis_info[0]
    key = _UNIT_KEYS.get(axis.unit_name, axis.unit_name)
    return key, float(axis.unit_conversion_factor)


class SpatialReference:
    """Manages the CRS of a collection and transforms into other CRSs.

    Example:
        >>> ref = SpatialReference("EPSG:4326")
        >>> ref.get_epsg()
        4326
    """

    def __init__(self, crs: CRSLike | CRS):
        """Initialize spatial reference.

        Args:
            crs: EPSG code (int or string like 'EPSG:32633'), CRS object or
                PROJ/WKT string.

        Raises:
            UnknownCRSError: If the CRS is unrecognized.
        """
        self._crs = resolve_crs(crs)

    @property
    def crs(self) -> CRS:
        """Get the CRS object."""
        return self._crs

    def transformer_to(self, target_crs: CRSLike | CRS) -> Transformer:
        """Transformer from this CRS into ``target_crs`` (x/y order)."""
        return Transformer.from_crs(self._crs, resolve_crs(target_crs), always_xy=True)

    def transform(self, coordinates: np.ndarray, target_crs: CRSLike | CRS) -> np.ndarray:
        """Transform coordinates to target CRS.

        Args:
            coordinates: Input coordinates [N, 2] or [N, 3] (x, y, [z]).
            target_crs: Target CRS.

        Returns:
            Transformed coordinates with the same shape. Z is passed through.
        """
        coordinates = np.asarray(coordinates, dtype=float)
        transformer = self.transformer_to(target_crs)
        x_new, y_new = transformer.transform(coordinates[:, 0], coordinates[:, 1])
        if coordinates.shape[1] == 2:
            return np.column_stack([x_new, y_new])
        return np.column_stack([x_new, y_new, coordinates[:, 2:]])

    def get_epsg(self) -> int | None:
        """Get EPSG code if available."""
        return self._crs.to_epsg()

    def __repr__(self) -> str:
        """String representation."""
        epsg = self.get_epsg()
        if epsg:
            return f"SpatialReference(crs=EPSG:{epsg})"
        return f"SpatialReference(crs={self._crs.name})"


def reproject_collection(
    collection: GeometryCollection, target_crs: CRSLike
) -> GeometryCollection:
    """Re-express every geometry of a collection in ``target_crs``.

    Geometry count and attributes are unchanged. A collection already in the
    target CRS is returned as-is, without running an identity transform.

    Args:
        collection: Collection to reproject.
        target_crs: Target CRS specification.

    Returns:
        Collection in ``target_crs``.

    Raises:
        UnknownCRSError: If either CRS identifier is unrecognized.
    """
    if crs_equal(collection.crs, target_crs):
        return collection

    ref = SpatialReference(collection.crs)
    geometries = shapely.transform(
        collection.geometries, lambda coords: ref.transform(coords, target_crs)
    )
    logger.debug(
        f"Reprojected {len(collection)} records of '{collection.name}' "
        f"from {collection.crs} to {target_crs}"
    )
    return collection.with_geometries(geometries, target_crs)


def lonlat_coordinates(collection: GeometryCollection) -> np.ndarray:
    """Representative (lon, lat) of each record in WGS84.

    Points use their own coordinates; other geometries use a point guaranteed
    to lie on the geometry. Missing geometries give NaN.

    Returns:
        Array [N, 2] of (lon, lat).
    """
    wgs84 = reproject_collection(collection, WGS84)
    coords = np.full((len(wgs84), 2), np.nan)
    for i, geom in enumerate(wgs84.geometries):
        if geom is None or geom.is_empty:
            continue
        point = geom if geom.geom_type == "Point" else geom.representative_point()
        coords[i] = (point.x, point.y)
    return coords
