"""Layer 4: Workflows - Public entry points.

Workflows provide the public entry points users call. Workflows can import
I/O libraries, HTTP clients and plotting libraries. Put file loading and
saving here. Put network access here. Put plotting here.
"""

from hydrosmith.workflows.io import (
    export_layers,
    from_geodataframe,
    group_by_attribute,
    list_layers,
    read_point_frame,
    read_point_tables,
    read_polygons,
    to_geodataframe,
    write_layer,
)
from hydrosmith.workflows.nldi import NLDIClient, parse_daily_values
from hydrosmith.workflows.pipeline import (
    GaugePipeline,
    PipelineResult,
    merge_collections,
)
from hydrosmith.workflows.plotting import (
    LayerStyle,
    MapLayer,
    create_interactive_map,
    plot_hydrograph,
    render_map,
)

__all__ = [
    "create_interactive_map",
    "export_layers",
    "from_geodataframe",
    "GaugePipeline",
    "group_by_attribute",
    "LayerStyle",
    "list_layers",
    "MapLayer",
    "merge_collections",
    "NLDIClient",
    "parse_daily_values",
    "PipelineResult",
    "plot_hydrograph",
    "read_point_frame",
    "read_point_tables",
    "read_polygons",
    "render_map",
    "to_geodataframe",
    "write_layer",
]
