"""Static maps, hydrographs and interactive maps.

Layer 4: Workflows - Public entry points with plotting.

Static maps are rendered with matplotlib and returned as PNG bytes.
Interactive maps use folium when installed.
"""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

import numpy as np
import pandas as pd

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.primitives.spatial_reference import (
    WGS84,
    ensure_same_crs,
    reproject_collection,
)
from hydrosmith.utils.errors import raise_dependency_error, raise_parameter_error
from hydrosmith.workflows.io import to_geodataframe

if TYPE_CHECKING:
    from matplotlib.axes import Axes

logger = logging.getLogger(__name__)

# Optional matplotlib dependency
try:
    import matplotlib.patches as mpatches
    import matplotlib.pyplot as plt
    from matplotlib.lines import Line2D

    MATPLOTLIB_AVAILABLE = True
except ImportError:
    MATPLOTLIB_AVAILABLE = False
    plt = None  # type: ignore
    Line2D = None  # type: ignore
    mpatches = None  # type: ignore
    logger.warning(
        "matplotlib not available. Plotting functions require matplotlib. "
        "Install with: pip install matplotlib"
    )

# Optional Folium dependency
try:
    import folium

    FOLIUM_AVAILABLE = True
except ImportError:
    FOLIUM_AVAILABLE = False
    folium = None  # type: ignore
    logger.debug(
        "folium not available. Interactive maps require folium. "
        "Install with: pip install hydrosmith[interactive]"
    )

# Draw order: later kinds are drawn on top.
STACK_ORDER = {"polygon": 1, "line": 2, "point": 3}

_KIND_BY_GEOM_TYPE = {
    "Polygon": "polygon",
    "MultiPolygon": "polygon",
    "LineString": "line",
    "MultiLineString": "line",
    "LinearRing": "line",
    "Point": "point",
    "MultiPoint": "point",
}


@dataclass
class LayerStyle:
    """Drawing style of one map layer.

    ``color`` is the fill of polygons and points and the stroke of lines.
    """

    color: str = "#1f77b4"
    edgecolor: Optional[str] = None
    marker: str = "o"
    size: float = 16.0
    linewidth: float = 1.0
    alpha: float = 1.0
    label: Optional[str] = None


DEFAULT_STYLES = {
    "polygon": LayerStyle(color="#e8e8e8", edgecolor="#555555", linewidth=0.8),
    "line": LayerStyle(color="#3a7bd5", linewidth=1.2),
    "point": LayerStyle(color="#d62728", edgecolor="black", size=18.0, linewidth=0.4),
}


def infer_kind(collection: GeometryCollection) -> str:
    """Layer kind from the first non-missing geometry ('point' if none)."""
    for geom_type in collection.geometry_types():
        if geom_type is not None:
            return _KIND_BY_GEOM_TYPE.get(geom_type, "point")
    return "point"


@dataclass
class MapLayer:
    """A collection drawn as one map layer.

    Attributes:
        collection: Records to draw.
        kind: 'polygon', 'line' or 'point'; inferred from the geometries
            when None.
        style: Drawing style; the kind's default when None.
    """

    collection: GeometryCollection
    kind: Optional[str] = None
    style: Optional[LayerStyle] = field(default=None)

    def __post_init__(self) -> None:
        if self.kind is None:
            self.kind = infer_kind(self.collection)
        if self.kind not in STACK_ORDER:
            raise_parameter_error("kind", self.kind, valid_values=list(STACK_ORDER))
        if self.style is None:
            self.style = DEFAULT_STYLES[self.kind]

    @property
    def label(self) -> str:
        return self.style.label or self.collection.name or self.kind  # type: ignore[union-attr]


def _drawable(collection: GeometryCollection):
    gdf = to_geodataframe(collection)
    keep = gdf.geometry.notna() & ~gdf.geometry.is_empty
    return gdf[keep]


def _draw_layer(ax: "Axes", layer: MapLayer, zorder: int) -> None:
    style = layer.style
    gdf = _drawable(layer.collection)
    if gdf.empty:
        logger.debug(f"Layer '{layer.label}' has nothing to draw")
        return

    if layer.kind == "polygon":
        gdf.plot(
            ax=ax,
            facecolor=style.color,
            edgecolor=style.edgecolor or style.color,
            linewidth=style.linewidth,
            alpha=style.alpha,
            zorder=zorder,
        )
    elif layer.kind == "line":
        gdf.plot(
            ax=ax,
            color=style.color,
            linewidth=style.linewidth,
            alpha=style.alpha,
            zorder=zorder,
        )
    else:
        gdf.plot(
            ax=ax,
            color=style.color,
            edgecolor=style.edgecolor or style.color,
            marker=style.marker,
            markersize=style.size,
            linewidth=style.linewidth,
            alpha=style.alpha,
            zorder=zorder,
        )


def _legend_handle(layer: MapLayer):
    style = layer.style
    if layer.kind == "polygon":
        return mpatches.Patch(
            facecolor=style.color,
            edgecolor=style.edgecolor or style.color,
            alpha=style.alpha,
            label=layer.label,
        )
    if layer.kind == "line":
        return Line2D(
            [], [], color=style.color, linewidth=style.linewidth, label=layer.label
        )
    return Line2D(
        [],
        [],
        color=style.color,
        marker=style.marker,
        markeredgecolor=style.edgecolor or style.color,
        linestyle="",
        label=layer.label,
    )


def render_map(
    layers: Sequence[MapLayer],
    width_in: float = 8.0,
    height_in: float = 6.0,
    dpi: int = 150,
    title: Optional[str] = None,
    output: Optional[Union[str, Path]] = None,
) -> bytes:
    """Render layers to a PNG image.

    Polygons are always drawn beneath lines and lines beneath points,
    whatever order the layers are passed in. Layers of the same kind keep
    their relative order. The input collections are not modified.

    Args:
        layers: Layers to draw; all must share one CRS.
        width_in: Figure width in inches.
        height_in: Figure height in inches.
        dpi: Resolution.
        title: Optional title.
        output: Optional path the PNG is also written to.

    Returns:
        PNG-encoded image bytes.

    Raises:
        ParameterError: If no layers are given or a dimension is not positive.
        CRSMismatchError: If the layers do not share a CRS.
        DependencyError: If matplotlib is not installed.

    Example:
        >>> png = render_map([MapLayer(states), MapLayer(gauges, style=LayerStyle(label="Gauges"))],
        ...                  title="Stream gauges", output="outputs/gauges.png")
    """
    if not MATPLOTLIB_AVAILABLE:
        raise_dependency_error("matplotlib", install_command="pip install matplotlib")
    if not layers:
        raise_parameter_error("layers", layers, constraint="at least one layer is required")
    for name, value in (("width_in", width_in), ("height_in", height_in), ("dpi", dpi)):
        if value <= 0:
            raise_parameter_error(name, value, constraint="must be > 0")

    ensure_same_crs(*(layer.collection for layer in layers))

    ordered = sorted(
        enumerate(layers), key=lambda item: (STACK_ORDER[item[1].kind], item[0])
    )

    fig, ax = plt.subplots(figsize=(width_in, height_in), dpi=dpi)
    for zorder, (_, layer) in enumerate(ordered, start=1):
        _draw_layer(ax, layer, zorder)

    ax.set_aspect("equal", adjustable="datalim")
    ax.tick_params(labelsize=7)
    if title:
        ax.set_title(title, fontweight="bold")
    handles = [_legend_handle(layer) for _, layer in ordered if layer.style.label]
    if handles:
        ax.legend(handles=handles, loc="best", fontsize=8, framealpha=0.9)
    fig.tight_layout()

    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=dpi)
    plt.close(fig)
    png = buffer.getvalue()

    if output is not None:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(png)
        logger.info(f"Saved map with {len(layers)} layers to {output}")
    return png


def plot_hydrograph(
    daily: pd.DataFrame,
    entity_col: str = "site_no",
    date_col: str = "date",
    value_col: str = "value",
    label_col: Optional[str] = None,
    title: Optional[str] = None,
    ylabel: Optional[str] = None,
    figsize: tuple[float, float] = (10, 4),
    output: Optional[Union[str, Path]] = None,
) -> Any:
    """Plot one line per site from a daily series.

    Missing days should be present as NaN rows (see ``complete_daily_grid``)
    so the line breaks at each gap instead of bridging it.

    Args:
        daily: Long-form daily values.
        entity_col: Site identifier column.
        date_col: Date column.
        value_col: Value column.
        label_col: Optional column used for legend labels (e.g. station name).
        title: Optional title.
        ylabel: Y-axis label, defaults to ``value_col``.
        figsize: Figure size in inches.
        output: Optional PNG path.

    Returns:
        matplotlib Figure.
    """
    if not MATPLOTLIB_AVAILABLE:
        raise_dependency_error("matplotlib", install_command="pip install matplotlib")
    missing = [c for c in (entity_col, date_col, value_col) if c not in daily.columns]
    if missing:
        raise_parameter_error(
            "daily", f"columns {list(daily.columns)}", constraint=f"needs columns {missing}"
        )

    fig, ax = plt.subplots(figsize=figsize)
    for entity, group in daily.groupby(entity_col, sort=False):
        group = group.sort_values(date_col)
        label = str(entity)
        if label_col is not None and label_col in group.columns:
            names = group[label_col].dropna()
            if not names.empty:
                label = f"{entity} {names.iloc[0]}"
        ax.plot(
            pd.to_datetime(group[date_col]).to_numpy(),
            group[value_col].to_numpy(dtype=float),
            linewidth=1.0,
            label=label,
        )

    ax.set_xlabel("Date")
    ax.set_ylabel(ylabel or value_col)
    ax.grid(True, alpha=0.3)
    if title:
        ax.set_title(title, fontweight="bold")
    if daily[entity_col].nunique() > 0:
        ax.legend(loc="best", fontsize=8)
    fig.autofmt_xdate()
    fig.tight_layout()

    if output is not None:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output, format="png")
        logger.info(f"Saved hydrograph to {output}")
    return fig


def _tooltip_fields(gdf, limit: int = 4) -> list[str]:
    fields = []
    for col in gdf.columns:
        if col == gdf.geometry.name:
            continue
        if pd.api.types.is_object_dtype(gdf[col]) or pd.api.types.is_numeric_dtype(gdf[col]):
            fields.append(col)
        if len(fields) == limit:
            break
    return fields


def create_interactive_map(
    layers: Sequence[MapLayer],
    output: Optional[Union[str, Path]] = None,
    zoom_start: int = 6,
    tiles: str = "OpenStreetMap",
) -> Optional[Any]:
    """Create an interactive Leaflet map of the layers.

    Layers are reprojected to WGS84 and added in the same stacking order as
    :func:`render_map`, each toggleable from a layer control.

    Args:
        layers: Layers to show (any CRS).
        output: Optional HTML path.
        zoom_start: Initial zoom level.
        tiles: Base tile layer.

    Returns:
        Folium map object, or None if folium not available.
    """
    if not FOLIUM_AVAILABLE:
        logger.warning("folium not available, cannot create interactive map")
        return None
    if not layers:
        raise_parameter_error("layers", layers, constraint="at least one layer is required")

    ordered = sorted(
        enumerate(layers), key=lambda item: (STACK_ORDER[item[1].kind], item[0])
    )
    frames = [
        (layer, _drawable(reproject_collection(layer.collection, WGS84)))
        for _, layer in ordered
    ]
    bounds = [gdf.total_bounds for _, gdf in frames if not gdf.empty]
    if bounds:
        stacked = np.vstack(bounds)
        minx, miny = stacked[:, 0].min(), stacked[:, 1].min()
        maxx, maxy = stacked[:, 2].max(), stacked[:, 3].max()
    else:
        minx, miny, maxx, maxy = -125.0, 24.0, -66.0, 50.0

    m = folium.Map(
        location=[float((miny + maxy) / 2), float((minx + maxx) / 2)],
        zoom_start=zoom_start,
        tiles=tiles,
    )

    for layer, gdf in frames:
        if gdf.empty:
            continue
        style = layer.style
        fields = _tooltip_fields(gdf)
        kwargs: dict[str, Any] = {
            "name": layer.label,
            "style_function": lambda _, s=style: {
                "color": s.edgecolor or s.color,
                "fillColor": s.color,
                "weight": s.linewidth,
                "fillOpacity": 0.4 * s.alpha,
            },
        }
        if fields:
            kwargs["tooltip"] = folium.GeoJsonTooltip(fields=fields)
        if layer.kind == "point":
            kwargs["marker"] = folium.CircleMarker(radius=5, fill=True)
        folium.GeoJson(gdf.to_json(), **kwargs).add_to(m)

    if bounds:
        m.fit_bounds([[float(miny), float(minx)], [float(maxy), float(maxx)]])
    folium.LayerControl().add_to(m)

    if output is not None:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        m.save(str(output))
        logger.info(f"Saved interactive map to {output}")
    return m
