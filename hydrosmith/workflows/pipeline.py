"""Config-driven gauge pipeline.

Layer 4: Workflows - Public entry points.

Runs the stages in order: load, harmonize, join/filter, nearest, fetch,
normalize, then render and export. Each stage is a public method so the
pipeline can also be driven one step at a time.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from hydrosmith.config import PipelineConfig, load_config
from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import (
    FetchBatch,
    FetchFailure,
    FilterResult,
    GeometryFailure,
    JoinResult,
    LayerManifest,
    NearestResult,
)
from hydrosmith.objects.timeseries import ObservationPanel
from hydrosmith.primitives.series import complete_daily_grid, gap_runs
from hydrosmith.primitives.spatial_reference import reproject_collection
from hydrosmith.tasks.fetchtask import FetchTask, LinkedDataSource
from hydrosmith.tasks.harmonizetask import HarmonizeTask
from hydrosmith.tasks.jointask import JoinTask
from hydrosmith.tasks.nearesttask import NearestTask
from hydrosmith.utils.errors import ExportWriteError
from hydrosmith.workflows.io import (
    export_layers,
    group_by_attribute,
    read_point_tables,
    read_polygons,
)
from hydrosmith.workflows.nldi import NLDIClient
from hydrosmith.workflows.plotting import LayerStyle, MapLayer, render_map

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outputs of one pipeline run.

    Stages that are disabled in the config leave their fields as None.
    ``geometry_failures`` and ``fetch_failures`` hold every per-record and
    per-origin error collected along the way.
    """

    points: GeometryCollection
    boundaries: GeometryCollection
    joined: JoinResult
    outside: FilterResult
    origins: Optional[GeometryCollection] = None
    nearest: Optional[NearestResult] = None
    proximity: Optional[JoinResult] = None
    network: Optional[FetchBatch] = None
    observations: Optional[ObservationPanel] = None
    daily: Optional[pd.DataFrame] = None
    gaps: Optional[pd.DataFrame] = None
    image: Optional[bytes] = None
    image_path: Optional[Path] = None
    manifest: Optional[LayerManifest] = None
    geometry_failures: list[GeometryFailure] = field(default_factory=list)
    fetch_failures: list[FetchFailure] = field(default_factory=list)

    @property
    def n_failures(self) -> int:
        return len(self.geometry_failures) + len(self.fetch_failures)

    def summary(self) -> dict[str, int]:
        """Record counts per stage."""
        counts = {
            "points": len(self.points),
            "boundaries": len(self.boundaries),
            "joined": len(self.joined),
            "outside": len(self.outside),
            "failures": self.n_failures,
        }
        if self.nearest is not None:
            counts["nearest"] = len(self.nearest)
        if self.proximity is not None:
            counts["proximity_pairs"] = len(self.proximity)
        if self.network is not None:
            counts["sites"] = len(self.network.all_site_ids())
        if self.daily is not None:
            counts["daily_rows"] = len(self.daily)
        return counts


def merge_collections(
    collections: list[GeometryCollection], crs, name: str
) -> GeometryCollection:
    """Concatenate collections into one, reprojecting each into ``crs``."""
    parts = [reproject_collection(c, crs) for c in collections if len(c)]
    if not parts:
        return GeometryCollection.empty(crs, name=name)
    return GeometryCollection(
        geometries=np.concatenate([p.geometries for p in parts]),
        attributes=pd.concat([p.attributes for p in parts], ignore_index=True),
        crs=crs,
        name=name,
    )


class GaugePipeline:
    """Station/boundary integration with optional network and series fetch.

    Example:
        >>> pipeline = GaugePipeline.from_file("pipeline.yaml")
        >>> result = pipeline.run()
        >>> result.summary()
        {'points': 412, 'boundaries': 2, 'joined': 398, ...}
    """

    def __init__(
        self, config: PipelineConfig, source: Optional[LinkedDataSource] = None
    ):
        """Initialize the pipeline.

        Args:
            config: Validated pipeline configuration.
            source: Remote index used by the fetch stage. Defaults to an
                NLDIClient built from ``config.fetch``.
        """
        self.config = config
        self._source = source
        self.harmonizer = HarmonizeTask(config.target_crs)
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_file(
        cls, file_path: Union[str, Path], source: Optional[LinkedDataSource] = None
    ) -> "GaugePipeline":
        return cls(load_config(file_path), source=source)

    @property
    def source(self) -> LinkedDataSource:
        if self._source is None:
            self._source = NLDIClient.from_config(self.config.fetch)
        return self._source

    def load(
        self,
    ) -> tuple[GeometryCollection, GeometryCollection, Optional[GeometryCollection]]:
        """Read stations, boundaries and optional query origins."""
        max_workers = self.config.fetch.max_workers if self.config.fetch else 1
        points = read_point_tables(self.config.points, max_workers=max_workers)
        boundaries = read_polygons(self.config.boundaries)
        origins = None
        if self.config.origins is not None:
            origins = read_point_tables(self.config.origins, max_workers=max_workers)
        return points, boundaries, origins

    def harmonize(self, *collections: Optional[GeometryCollection]):
        """Reproject collections into the target CRS (None passes through)."""
        return tuple(
            None if c is None else self.harmonizer.harmonize(c) for c in collections
        )

    def join(
        self, points: GeometryCollection, boundaries: GeometryCollection
    ) -> tuple[JoinResult, FilterResult]:
        """Attach boundary attributes to stations and list stations outside."""
        task = JoinTask(
            predicate=self.config.join_predicate,
            how=self.config.join_how,
            id_col=self.config.points.id_col,
        )
        return task.join(points, boundaries), task.outside(points, boundaries)

    def nearest(
        self, origins: GeometryCollection, points: GeometryCollection
    ) -> tuple[NearestResult, Optional[JoinResult]]:
        """Resolve each origin to its nearest station.

        With ``max_distance`` configured, also returns every origin/station
        pair within that distance.
        """
        id_col = self.config.origins.id_col if self.config.origins else None
        task = NearestTask(
            self.config.target_crs,
            unit=self.config.nearest_unit,
            query_id_col=id_col,
            candidate_id_col=self.config.points.id_col,
        )
        nearest = task.resolve(origins, points)
        proximity = None
        if self.config.max_distance is not None:
            proximity = task.within(origins, points, self.config.max_distance)
        return nearest, proximity

    def fetch(
        self, origins: GeometryCollection
    ) -> tuple[FetchBatch, Optional[ObservationPanel]]:
        """Traverse the river network from each origin and fetch daily values.

        Daily values are only requested when a start date is configured.
        """
        fetch_config = self.config.fetch
        task = FetchTask(
            self.source,
            direction=fetch_config.direction,
            distance_km=fetch_config.distance_km,
            data_source=fetch_config.data_source,
            max_workers=fetch_config.max_workers,
        )
        id_col = self.config.origins.id_col if self.config.origins else self.config.points.id_col
        batch = task.fetch_many(origins, id_col=id_col)

        panel = None
        if fetch_config.start_date is not None:
            panel = task.fetch_daily_values(
                batch.all_site_ids(),
                fetch_config.start_date,
                parameter_code=fetch_config.parameter_code,
                end_date=fetch_config.end_date,
            )
        return batch, panel

    def normalize(self, panel: ObservationPanel) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Daily grid of the fetched values plus a summary of the gaps."""
        daily = complete_daily_grid(panel)
        return daily, gap_runs(daily, panel.group_cols, date_col=panel.date_col)

    def network_layers(
        self, batch: FetchBatch
    ) -> tuple[GeometryCollection, GeometryCollection]:
        """All fetched sites and flowlines, each merged into the target CRS."""
        crs = self.config.target_crs
        sites = merge_collections([r.sites for r in batch.results], crs, "network_sites")
        flowlines = merge_collections(
            [r.flowlines for r in batch.results], crs, "flowlines"
        )
        return sites, flowlines

    def render(
        self,
        boundaries: GeometryCollection,
        joined: JoinResult,
        outside: FilterResult,
        batch: Optional[FetchBatch] = None,
    ) -> bytes:
        """Render boundaries, flowlines and stations to PNG."""
        render_config = self.config.render
        boundary_style = LayerStyle(
            color="#f2f2f2", edgecolor="#444444", linewidth=0.8, label=boundaries.name
        )
        layers = [MapLayer(boundaries, kind="polygon", style=boundary_style)]

        if batch is not None:
            sites, flowlines = self.network_layers(batch)
            if len(flowlines):
                style = LayerStyle(color="#3a7bd5", linewidth=1.0, label="Flowlines")
                layers.append(MapLayer(flowlines, kind="line", style=style))
            if len(sites):
                style = LayerStyle(
                    color="#2ca02c",
                    edgecolor="black",
                    marker="^",
                    size=20,
                    linewidth=0.3,
                    label="Network sites",
                )
                layers.append(MapLayer(sites, kind="point", style=style))

        if len(outside):
            style = LayerStyle(
                color="#9e9e9e", edgecolor="#616161", size=10, linewidth=0.2, label="Outside"
            )
            layers.append(MapLayer(outside.collection, kind="point", style=style))
        station_style = LayerStyle(
            color="#d62728",
            edgecolor="black",
            size=16,
            linewidth=0.3,
            label=self.config.points.name,
        )
        layers.append(MapLayer(joined.collection, kind="point", style=station_style))

        return render_map(
            layers,
            width_in=render_config.width_in,
            height_in=render_config.height_in,
            dpi=render_config.dpi,
            title=render_config.title,
            output=render_config.output,
        )

    def export(
        self,
        joined: JoinResult,
        outside: FilterResult,
        batch: Optional[FetchBatch] = None,
    ) -> LayerManifest:
        """Write stations (optionally grouped), outside stations and network layers.

        Raises:
            ExportWriteError: If a group name equals the name of another layer
                in the same export.
        """
        export_config = self.config.export
        name = self.config.points.name
        if export_config.group_by is not None:
            groups = group_by_attribute(joined.collection, export_config.group_by)
        else:
            groups = {name: joined.collection}
        extra = []
        if len(outside):
            extra.append((f"{name}_outside", outside.collection))
        if batch is not None:
            extra.extend(
                (layer.name, layer) for layer in self.network_layers(batch) if len(layer)
            )
        for layer, collection in extra:
            if layer in groups:
                raise ExportWriteError(
                    f"Two export layers are named '{layer}'",
                    layer=layer,
                    suggestion="Rename the group value or the points source",
                )
            groups[layer] = collection
        return export_layers(groups, export_config.path, driver=export_config.driver)

    def run(self) -> PipelineResult:
        """Run every configured stage.

        Returns:
            PipelineResult with each stage's output and the collected
            per-record and per-origin failures.

        Raises:
            HydroSmithError: On structural errors (missing inputs, schema
                mismatch, unknown or non-projected CRS, failed export).
        """
        config = self.config
        self.logger.info(f"Running pipeline into {config.target_crs}")

        points, boundaries, origins = self.load()
        points, boundaries, origins = self.harmonize(points, boundaries, origins)

        joined, outside = self.join(points, boundaries)
        result = PipelineResult(
            points=points,
            boundaries=boundaries,
            joined=joined,
            outside=outside,
            origins=origins,
            geometry_failures=list(joined.failures),
        )

        if origins is not None:
            result.nearest, result.proximity = self.nearest(origins, points)
            result.geometry_failures.extend(result.nearest.failures)
            if result.proximity is not None:
                result.geometry_failures.extend(result.proximity.failures)

        if config.fetch is not None and config.fetch.enabled:
            fetch_origins = origins if origins is not None else joined.collection
            result.network, result.observations = self.fetch(fetch_origins)
            result.fetch_failures = list(result.network.failures)
            if result.observations is not None:
                result.daily, result.gaps = self.normalize(result.observations)

        if config.render is not None:
            result.image = self.render(boundaries, joined, outside, result.network)
            result.image_path = config.render.output

        if config.export is not None:
            result.manifest = self.export(joined, outside, result.network)

        self.logger.info(f"Pipeline finished: {result.summary()}")
        if result.n_failures:
            self.logger.warning(
                f"{len(result.geometry_failures)} geometry failures, "
                f"{len(result.fetch_failures)} fetch failures"
            )
        return result
