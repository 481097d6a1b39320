"""GeometryCollection: geometries plus attributes under one CRS.

Layer 1: Objects. Geometries are held as a numpy object array (shapely
geometries, or None for a missing geometry). This module never imports
shapely or geopandas itself.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

import numpy as np
import pandas as pd

CRSLike = Union[str, int]


@dataclass(frozen=True)
class GeometryCollection:
    """Ordered records, each a geometry with a row of attributes.

    The CRS is stored once for the whole collection. Records are aligned
    positionally: ``geometries[i]`` belongs to ``attributes.iloc[i]``.

    Attributes:
        geometries: 1-D object array of geometries (shapely objects or None).
        attributes: DataFrame with one row per geometry.
        crs: CRS specification understood by pyproj (e.g. 'EPSG:5070', 4326).
        name: Optional label used in logs, maps and export layer names.
    """

    geometries: np.ndarray
    attributes: pd.DataFrame
    crs: CRSLike
    name: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate GeometryCollection parameters."""
        geoms = self.geometries
        if not isinstance(geoms, np.ndarray) or geoms.dtype != object:
            arr = np.empty(len(geoms), dtype=object)
            arr[:] = list(geoms)
            geoms = arr
        if geoms.ndim != 1:
            raise ValueError(f"geometries must be 1-D, got shape {geoms.shape}")
        object.__setattr__(self, "geometries", geoms)

        if not isinstance(self.attributes, pd.DataFrame):
            raise ValueError(
                f"attributes must be pandas DataFrame, got {type(self.attributes)}"
            )
        if len(self.attributes) != len(geoms):
            raise ValueError(
                f"attributes length ({len(self.attributes)}) must match "
                f"number of geometries ({len(geoms)})"
            )
        # Positional alignment is the contract, so drop any caller index.
        object.__setattr__(
            self, "attributes", self.attributes.reset_index(drop=True)
        )

        if self.crs is None or (isinstance(self.crs, str) and not self.crs.strip()):
            raise ValueError("crs is required; every collection carries its CRS")

    def __len__(self) -> int:
        return len(self.geometries)

    def take(self, indices: Sequence[int]) -> "GeometryCollection":
        """Return the records at ``indices`` (positional), keeping the CRS."""
        idx = np.asarray(indices, dtype=int)
        return GeometryCollection(
            geometries=self.geometries[idx],
            attributes=self.attributes.iloc[idx],
            crs=self.crs,
            name=self.name,
        )

    def with_geometries(
        self, geometries: Sequence[Any], crs: CRSLike
    ) -> "GeometryCollection":
        """Return a copy with new geometries in ``crs`` and the same attributes."""
        return GeometryCollection(
            geometries=np.asarray(geometries, dtype=object),
            attributes=self.attributes.copy(),
            crs=crs,
            name=self.name,
        )

    def rename(self, name: str) -> "GeometryCollection":
        return GeometryCollection(
            geometries=self.geometries,
            attributes=self.attributes,
            crs=self.crs,
            name=name,
        )

    def ids(self, id_col: Optional[str] = None) -> list[Any]:
        """Identifier for each record.

        Args:
            id_col: Attribute column holding identifiers. When None (or absent),
                the positional index is used.

        Returns:
            List of identifiers in record order.
        """
        if id_col is not None and id_col in self.attributes.columns:
            return self.attributes[id_col].tolist()
        return list(range(len(self)))

    def geometry_types(self) -> list[Optional[str]]:
        """Geometry type name of each record (None for missing geometries)."""
        return [
            getattr(geom, "geom_type", None) if geom is not None else None
            for geom in self.geometries
        ]

    @classmethod
    def empty(
        cls,
        crs: CRSLike,
        columns: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
    ) -> "GeometryCollection":
        """Create an empty collection with the given CRS and columns."""
        return cls(
            geometries=np.empty(0, dtype=object),
            attributes=pd.DataFrame(columns=list(columns or [])),
            crs=crs,
            name=name,
        )

    def __repr__(self) -> str:
        """String representation."""
        name_str = f"name='{self.name}', " if self.name else ""
        return (
            f"GeometryCollection({name_str}n_records={len(self)}, "
            f"crs={self.crs}, columns={list(self.attributes.columns)})"
        )
