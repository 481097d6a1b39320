"""Spatial filter/join task.

Layer 3: Tasks - User intent translation.
"""

import logging
from typing import Optional

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import FilterResult, JoinResult
from hydrosmith.primitives.spatial_join import (
    filter_contained,
    filter_not_contained,
    spatial_join,
)
from hydrosmith.tasks.harmonizetask import HarmonizeTask

logger = logging.getLogger(__name__)


class JoinTask:
    """Containment filters and attribute joins between two collections.

    The task is configured once with a predicate and cardinality policy.
    With ``harmonizer`` set, both inputs are reprojected to its CRS first;
    otherwise they must already share a CRS.

    Example:
        >>> task = JoinTask(predicate="within", how="inner")
        >>> joined = task.join(stations, states)
        >>> outside = task.outside(stations, states)
    """

    def __init__(
        self,
        predicate: str = "within",
        how: str = "inner",
        harmonizer: Optional[HarmonizeTask] = None,
        id_col: Optional[str] = None,
    ):
        """Initialize the task.

        Args:
            predicate: Spatial predicate ('within', 'intersects', ...).
            how: 'inner' or 'left' join policy.
            harmonizer: Optional HarmonizeTask applied to both inputs.
            id_col: Left/subject identifier column used in failure reports.
        """
        self.predicate = predicate
        self.how = how
        self.harmonizer = harmonizer
        self.id_col = id_col

    def _prepare(
        self, left: GeometryCollection, right: GeometryCollection
    ) -> tuple[GeometryCollection, GeometryCollection]:
        if self.harmonizer is None:
            return left, right
        return self.harmonizer.harmonize_all(left, right)  # type: ignore[return-value]

    def inside(
        self, subject: GeometryCollection, boundary: GeometryCollection
    ) -> FilterResult:
        """Subject records satisfying the predicate against the boundary."""
        subject, boundary = self._prepare(subject, boundary)
        result = filter_contained(subject, boundary, self.predicate, id_col=self.id_col)
        logger.info(f"{len(result)} of {len(subject)} '{subject.name}' records inside")
        return result

    def outside(
        self, subject: GeometryCollection, boundary: GeometryCollection
    ) -> FilterResult:
        """Subject records satisfying the predicate against no boundary record."""
        subject, boundary = self._prepare(subject, boundary)
        result = filter_not_contained(
            subject, boundary, self.predicate, id_col=self.id_col
        )
        logger.info(f"{len(result)} of {len(subject)} '{subject.name}' records outside")
        return result

    def join(self, left: GeometryCollection, right: GeometryCollection) -> JoinResult:
        """Join right attributes onto left records."""
        left, right = self._prepare(left, right)
        return spatial_join(
            left, right, predicate=self.predicate, how=self.how, left_id_col=self.id_col
        )
