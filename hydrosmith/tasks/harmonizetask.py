"""CRS harmonization task.

Layer 3: Tasks - User intent translation.
"""

import logging

from hydrosmith.objects.geocollection import CRSLike, GeometryCollection
from hydrosmith.primitives.spatial_reference import (
    crs_equal,
    is_projected,
    reproject_collection,
    resolve_crs,
)

logger = logging.getLogger(__name__)


class HarmonizeTask:
    """Bring collections into one common CRS before they are compared.

    Example:
        >>> task = HarmonizeTask("EPSG:5070")
        >>> stations, states = task.harmonize_all(stations, states)
        >>> stations.crs == states.crs
        True
    """

    def __init__(self, target_crs: CRSLike):
        """Initialize the task.

        Args:
            target_crs: CRS every collection is converted into.

        Raises:
            UnknownCRSError: If the target CRS is unrecognized.
        """
        resolve_crs(target_crs)
        self.target_crs = target_crs

    @property
    def is_projected(self) -> bool:
        return is_projected(self.target_crs)

    def harmonize(self, collection: GeometryCollection) -> GeometryCollection:
        """Return ``collection`` expressed in the target CRS.

        Already-harmonized collections are returned unchanged.
        """
        if crs_equal(collection.crs, self.target_crs):
            logger.debug(f"'{collection.name}' already in {self.target_crs}")
            return collection
        logger.info(
            f"Reprojecting '{collection.name}' ({len(collection)} records) "
            f"from {collection.crs} to {self.target_crs}"
        )
        return reproject_collection(collection, self.target_crs)

    def harmonize_all(
        self, *collections: GeometryCollection
    ) -> tuple[GeometryCollection, ...]:
        """Harmonize several collections, preserving argument order."""
        return tuple(self.harmonize(c) for c in collections)
