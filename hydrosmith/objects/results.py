"""Result containers returned by joins, nearest-feature searches and fetches.

Layer 1: Objects. A partial result always travels with its failure list.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd

from hydrosmith.objects.geocollection import CRSLike, GeometryCollection

# Metres per unit for the linear units distances may be reported in.
LINEAR_UNITS: dict[str, float] = {
    "m": 1.0,
    "km": 1000.0,
    "ft": 0.3048,
    "us-ft": 1200.0 / 3937.0,
    "mi": 1609.344,
}


def convert_distance(value: float, from_unit: str, to_unit: str) -> float:
    """Convert a distance between linear units.

    Args:
        value: Distance in ``from_unit``.
        from_unit: Source unit key from ``LINEAR_UNITS``.
        to_unit: Target unit key from ``LINEAR_UNITS``.

    Returns:
        Distance expressed in ``to_unit``.

    Raises:
        ValueError: If either unit is unknown.
    """
    for unit in (from_unit, to_unit):
        if unit not in LINEAR_UNITS:
            raise ValueError(
                f"Unknown linear unit '{unit}'. Choose: {', '.join(LINEAR_UNITS)}"
            )
    if from_unit == to_unit:
        return value
    return value * LINEAR_UNITS[from_unit] / LINEAR_UNITS[to_unit]


@dataclass(frozen=True)
class GeometryFailure:
    """A record skipped because its geometry could not be evaluated.

    Attributes:
        index: Positional index of the record in its source collection.
        record_id: Identifier of the record (index if no id column).
        error: The InvalidGeometryError describing the problem.
        side: Which input the record came from ('left', 'right', 'subject').
    """

    index: int
    record_id: Any
    error: Exception
    side: str = "left"


@dataclass
class FilterResult:
    """Records kept by a containment filter, with skipped records."""

    collection: GeometryCollection
    source_index: np.ndarray
    failures: list[GeometryFailure] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.collection)


@dataclass
class JoinResult:
    """Left records paired with zero, one or many right records.

    Attributes:
        collection: Joined records; left geometry, union of both attribute sets.
        left_index: Positional index into the left collection per joined row.
        right_index: Positional index into the right collection, -1 if unmatched.
        how: Cardinality policy used ('inner' or 'left').
        failures: Records skipped because of invalid geometries.
    """

    collection: GeometryCollection
    left_index: np.ndarray
    right_index: np.ndarray
    how: str
    failures: list[GeometryFailure] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.collection)

    @property
    def n_unmatched(self) -> int:
        return int((self.right_index < 0).sum())

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"JoinResult(how='{self.how}', n_rows={len(self)}, "
            f"n_unmatched={self.n_unmatched}, n_failures={len(self.failures)})"
        )


@dataclass(frozen=True)
class DistanceMeasurement:
    """Distance from one query record to one candidate record."""

    query_id: Any
    candidate_id: Any
    distance: float
    unit: str

    def to(self, unit: str) -> "DistanceMeasurement":
        """Return the same measurement expressed in ``unit``."""
        return DistanceMeasurement(
            query_id=self.query_id,
            candidate_id=self.candidate_id,
            distance=convert_distance(self.distance, self.unit, unit),
            unit=unit,
        )


@dataclass
class NearestResult:
    """Exactly one nearest candidate per query record.

    Attributes:
        measurements: One DistanceMeasurement per query record, in query order.
        candidate_index: Positional index of the winning candidate per query.
        failures: Query records skipped because of invalid geometries.
    """

    measurements: list[DistanceMeasurement]
    candidate_index: np.ndarray
    failures: list[GeometryFailure] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.measurements)

    @property
    def distances(self) -> np.ndarray:
        return np.array([m.distance for m in self.measurements], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """Measurements as a DataFrame (query_id, candidate_id, distance, unit)."""
        return pd.DataFrame(
            [
                {
                    "query_id": m.query_id,
                    "candidate_id": m.candidate_id,
                    "distance": m.distance,
                    "unit": m.unit,
                }
                for m in self.measurements
            ],
            columns=["query_id", "candidate_id", "distance", "unit"],
        )


@dataclass
class NetworkTraversalResult:
    """Linked river-network data for one origin point.

    Attributes:
        origin_id: Identifier of the origin record.
        comid: Identifier of the network segment the origin snapped to.
        sites: Monitoring sites found along the traversal.
        flowlines: Flowline segments covered by the traversal.
        direction: Navigation mode ('UM', 'UT', 'DM', 'DD').
        distance_km: Maximum traversal distance in kilometres.
    """

    origin_id: Any
    comid: Optional[str]
    sites: GeometryCollection
    flowlines: GeometryCollection
    direction: str
    distance_km: float

    @property
    def is_empty(self) -> bool:
        return self.comid is None and len(self.sites) == 0 and len(self.flowlines) == 0

    def site_ids(self, id_col: str = "identifier") -> list[Any]:
        return self.sites.ids(id_col) if len(self.sites) else []

    @classmethod
    def empty(
        cls,
        origin_id: Any,
        direction: str,
        distance_km: float,
        crs: CRSLike = "EPSG:4326",
    ) -> "NetworkTraversalResult":
        """Placeholder returned for an origin whose fetch failed."""
        return cls(
            origin_id=origin_id,
            comid=None,
            sites=GeometryCollection.empty(crs, name="sites"),
            flowlines=GeometryCollection.empty(crs, name="flowlines"),
            direction=direction,
            distance_km=distance_km,
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"NetworkTraversalResult(origin_id={self.origin_id!r}, comid={self.comid}, "
            f"n_sites={len(self.sites)}, n_flowlines={len(self.flowlines)}, "
            f"direction='{self.direction}', distance_km={self.distance_km})"
        )


@dataclass(frozen=True)
class FetchFailure:
    """An origin whose network fetch failed."""

    origin_index: int
    origin_id: Any
    error: Exception


@dataclass
class FetchBatch:
    """Network traversal results for many origins, in origin order."""

    results: list[NetworkTraversalResult]
    failures: list[FetchFailure] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> list[NetworkTraversalResult]:
        failed = {f.origin_index for f in self.failures}
        return [r for i, r in enumerate(self.results) if i not in failed]

    def all_site_ids(self, id_col: str = "identifier") -> list[Any]:
        """Unique site identifiers across all results, first-seen order."""
        seen: dict[Any, None] = {}
        for result in self.results:
            for site_id in result.site_ids(id_col):
                seen.setdefault(site_id, None)
        return list(seen)


@dataclass
class LayerManifest:
    """Layers written to one container file, with their record counts."""

    container_path: Path
    layers: dict[str, int] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.layers

    def __repr__(self) -> str:
        """String representation."""
        return f"LayerManifest(path='{self.container_path}', layers={self.layers})"
