"""Network traversal and daily-value fetching task.

Layer 3: Tasks - User intent translation.

The remote index is reached through the ``LinkedDataSource`` protocol so the
task runs against the USGS NLDI client in production and against an
in-memory fake in tests. Each origin is an isolated unit of work: one failed
origin yields an empty result plus a FetchFailure, never an aborted batch.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional, Protocol, Sequence

import numpy as np
import pandas as pd
from shapely.geometry import shape

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import (
    FetchBatch,
    FetchFailure,
    NetworkTraversalResult,
)
from hydrosmith.objects.timeseries import ObservationPanel
from hydrosmith.primitives.spatial_reference import WGS84, lonlat_coordinates
from hydrosmith.utils.errors import (
    HydroSmithError,
    InvalidGeometryError,
    MalformedGeometryError,
    RemoteFetchError,
)

# USGS parameter codes used with daily values.
DISCHARGE = "00060"
GAGE_HEIGHT = "00065"
WATER_TEMPERATURE = "00010"

DAILY_VALUE_COLUMNS = [
    "agency_cd",
    "site_no",
    "station_nm",
    "parameter_cd",
    "date",
    "value",
    "qualifiers",
]


class LinkedDataSource(Protocol):
    """Remote network-linked data index."""

    def comid_at(self, lon: float, lat: float) -> str:
        """Identifier of the network segment nearest to a WGS84 position."""
        ...

    def navigate(
        self, comid: str, mode: str, data_source: str, distance_km: float
    ) -> list[dict[str, Any]]:
        """GeoJSON features linked to ``comid`` along a navigation."""
        ...

    def daily_values(
        self,
        site_ids: Sequence[str],
        parameter_code: str,
        start_date: str,
        end_date: Optional[str] = None,
    ) -> pd.DataFrame:
        """Daily observations with ``DAILY_VALUE_COLUMNS``."""
        ...


def strip_agency_prefix(site_id: Any) -> str:
    """'USGS-05428500' -> '05428500'; other identifiers unchanged."""
    site_id = str(site_id)
    if "-" in site_id:
        agency, number = site_id.split("-", 1)
        if agency.isalpha() and agency.isupper():
            return number
    return site_id


def features_to_collection(
    features: list[dict[str, Any]], name: str, crs=WGS84
) -> GeometryCollection:
    """Convert GeoJSON feature dicts into a GeometryCollection.

    Raises:
        MalformedGeometryError: If a feature lacks a parseable geometry.
    """
    geometries = []
    rows = []
    for i, feature in enumerate(features):
        try:
            geometries.append(shape(feature["geometry"]))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedGeometryError(
                f"Feature {i} of '{name}' has no usable geometry: {e}"
            ) from e
        rows.append(feature.get("properties") or {})
    return GeometryCollection(
        geometries=geometries,
        attributes=pd.DataFrame(rows),
        crs=crs,
        name=name,
    )


class FetchTask:
    """Fetch upstream/downstream network data and daily series.

    Example:
        >>> from hydrosmith.workflows.nldi import NLDIClient
        >>> task = FetchTask(NLDIClient(), direction="UM", distance_km=50)
        >>> batch = task.fetch_many(gauges, id_col="STAID")
        >>> panel = task.fetch_daily_values(batch.all_site_ids(), "2020-01-01", "00060")
    """

    def __init__(
        self,
        source: LinkedDataSource,
        direction: str = "UM",
        distance_km: float = 50.0,
        data_source: str = "nwissite",
        max_workers: int = 1,
    ):
        """Initialize the task.

        Args:
            source: Remote index (e.g. NLDIClient) or a test double.
            direction: Navigation mode: 'UM' upstream main stem, 'UT' upstream
                with tributaries, 'DM' downstream main stem, 'DD' downstream
                with diversions.
            distance_km: Maximum traversal distance.
            data_source: Linked-data source for sites along the traversal.
            max_workers: Concurrent origins; 1 runs sequentially.
        """
        self.source = source
        self.direction = direction
        self.distance_km = distance_km
        self.data_source = data_source
        self.max_workers = max_workers
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch_network(self, origin_id: Any, lon: float, lat: float) -> NetworkTraversalResult:
        """Traverse the network from one WGS84 position.

        Raises:
            RemoteFetchError: If the index cannot be reached or has no segment
                near the origin.
        """
        comid = self.source.comid_at(lon, lat)
        if not comid:
            raise RemoteFetchError(f"No network segment found near ({lon}, {lat})")
        site_features = self.source.navigate(
            comid, self.direction, self.data_source, self.distance_km
        )
        flowline_features = self.source.navigate(
            comid, self.direction, "flowlines", self.distance_km
        )
        result = NetworkTraversalResult(
            origin_id=origin_id,
            comid=str(comid),
            sites=features_to_collection(site_features, name="sites"),
            flowlines=features_to_collection(flowline_features, name="flowlines"),
            direction=self.direction,
            distance_km=self.distance_km,
        )
        self.logger.debug(f"Fetched {result}")
        return result

    def _fetch_one(self, index: int, origin_id: Any, lon: float, lat: float):
        try:
            if np.isnan(lon) or np.isnan(lat):
                raise InvalidGeometryError(
                    f"Origin {origin_id!r} has no usable geometry", index=index
                )
            return self.fetch_network(origin_id, lon, lat), None
        except HydroSmithError as e:
            return self._failed(index, origin_id, e)
        except Exception as e:
            error = RemoteFetchError(
                f"Fetch failed for origin {origin_id!r}: {type(e).__name__}: {e}"
            )
            error.__cause__ = e
            return self._failed(index, origin_id, error)

    def _failed(self, index: int, origin_id: Any, error: HydroSmithError):
        self.logger.warning(f"Fetch failed for origin {origin_id!r}: {error}")
        empty = NetworkTraversalResult.empty(origin_id, self.direction, self.distance_km)
        return empty, FetchFailure(origin_index=index, origin_id=origin_id, error=error)

    def fetch_many(
        self, origins: GeometryCollection, id_col: Optional[str] = None
    ) -> FetchBatch:
        """Traverse the network from every origin record.

        Results come back in origin order regardless of completion order.
        Failed origins get an empty result and a matching FetchFailure.
        """
        coords = lonlat_coordinates(origins)
        ids = origins.ids(id_col)
        jobs = [(i, ids[i], float(lon), float(lat)) for i, (lon, lat) in enumerate(coords)]

        if self.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(lambda job: self._fetch_one(*job), jobs))
        else:
            outcomes = [self._fetch_one(*job) for job in jobs]

        batch = FetchBatch(
            results=[result for result, _ in outcomes],
            failures=[failure for _, failure in outcomes if failure is not None],
        )
        self.logger.info(
            f"Fetched network data for {len(batch) - len(batch.failures)} of "
            f"{len(batch)} origins ({self.direction}, {self.distance_km} km)"
        )
        return batch

    def fetch_daily_values(
        self,
        site_ids: Sequence[Any],
        start_date: str,
        parameter_code: str = DISCHARGE,
        end_date: Optional[str] = None,
    ) -> ObservationPanel:
        """Daily observations for sites, as an ObservationPanel.

        Sites without data for the window simply contribute no rows.

        Raises:
            RemoteFetchError: If the daily-values service cannot be reached.
        """
        sites = list(dict.fromkeys(strip_agency_prefix(s) for s in site_ids))
        if sites:
            data = self.source.daily_values(sites, parameter_code, start_date, end_date)
        else:
            data = pd.DataFrame(columns=DAILY_VALUE_COLUMNS)

        data = data.reindex(columns=DAILY_VALUE_COLUMNS)
        data["date"] = pd.to_datetime(data["date"])
        data["value"] = pd.to_numeric(data["value"], errors="coerce")

        without_data = set(sites) - set(data["site_no"].astype(str))
        if without_data:
            self.logger.info(
                f"{len(without_data)} sites returned no {parameter_code} values"
            )
        return ObservationPanel(
            data=data,
            entity_col="site_no",
            date_col="date",
            value_cols=("value",),
            metadata_cols=("agency_cd", "station_nm"),
            parameter_col="parameter_cd",
        )
