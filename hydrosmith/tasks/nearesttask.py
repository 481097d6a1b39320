"""Nearest-feature task.

Layer 3: Tasks - User intent translation.
"""

import logging
from typing import Optional

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import JoinResult, NearestResult
from hydrosmith.primitives.nearest import nearest_feature, within_distance
from hydrosmith.tasks.harmonizetask import HarmonizeTask
from hydrosmith.utils.errors import NonProjectedCRSError

logger = logging.getLogger(__name__)


class NearestTask:
    """Resolve query records to candidate records by planar distance.

    Both inputs are harmonized into ``projected_crs`` first, so callers may
    pass collections in geographic coordinates.

    Example:
        >>> task = NearestTask("EPSG:5070", unit="km",
        ...                    query_id_col="dam_id", candidate_id_col="STAID")
        >>> nearest = task.resolve(dams, gauges)
        >>> pairs = task.within(dams, gauges, max_distance=25)
    """

    def __init__(
        self,
        projected_crs,
        unit: Optional[str] = None,
        query_id_col: Optional[str] = None,
        candidate_id_col: Optional[str] = None,
    ):
        """Initialize the task.

        Args:
            projected_crs: CRS with linear units used for measuring.
            unit: Output distance unit; defaults to the CRS unit.
            query_id_col: Identifier column of query records.
            candidate_id_col: Identifier column of candidate records.

        Raises:
            NonProjectedCRSError: If ``projected_crs`` uses angular units.
        """
        self.harmonizer = HarmonizeTask(projected_crs)
        if not self.harmonizer.is_projected:
            raise NonProjectedCRSError(
                f"NearestTask needs a projected CRS, got {projected_crs}",
                suggestion="Use an equal-area or UTM CRS such as 'EPSG:5070'",
            )
        self.unit = unit
        self.query_id_col = query_id_col
        self.candidate_id_col = candidate_id_col

    def resolve(
        self, query: GeometryCollection, candidates: GeometryCollection
    ) -> NearestResult:
        """Single nearest candidate per query record."""
        query, candidates = self.harmonizer.harmonize_all(query, candidates)
        return nearest_feature(
            query,
            candidates,
            unit=self.unit,
            query_id_col=self.query_id_col,
            candidate_id_col=self.candidate_id_col,
        )

    def within(
        self,
        query: GeometryCollection,
        candidates: GeometryCollection,
        max_distance: float,
        how: str = "inner",
    ) -> JoinResult:
        """Every (query, candidate) pair within ``max_distance``."""
        query, candidates = self.harmonizer.harmonize_all(query, candidates)
        return within_distance(
            query,
            candidates,
            max_distance,
            unit=self.unit,
            how=how,
            query_id_col=self.query_id_col,
        )
