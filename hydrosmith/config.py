"""Configuration for HydroSmith pipelines.

Pipelines are configured from YAML or JSON files. Every section maps onto a
dataclass with required fields; unknown keys, missing keys and bad values
are rejected when the file is loaded, not when a stage first needs them.

Example config::

    target_crs: "EPSG:5070"
    points:
      paths: [data/gages_co.csv, data/gages_ut.csv]
      x_col: LON
      y_col: LAT
      crs: "EPSG:4269"
      id_col: STAID
    boundaries:
      path: data/states.shp
    fetch:
      parameter_code: "00060"
      start_date: "2020-01-01"
"""

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from hydrosmith.utils.errors import ParameterError, raise_parameter_error

logger = logging.getLogger(__name__)

NAVIGATION_MODES = ("UM", "UT", "DM", "DD")
DEFAULT_NLDI_URL = "https://api.water.usgs.gov/nldi/linked-data"
DEFAULT_NWIS_DV_URL = "https://waterservices.usgs.gov/nwis/dv/"


@dataclass
class PointSourceConfig:
    """Delimited point tables sharing one schema.

    Attributes:
        paths: Files to read; rows are merged in this order.
        x_col: Column with x (or longitude) coordinates.
        y_col: Column with y (or latitude) coordinates.
        crs: CRS the coordinates are expressed in.
        id_col: Optional identifier column (validated when given).
        source_col: Column added with each row's file stem; None to skip.
        delimiter: Field delimiter.
        encoding: Text encoding of the files.
        dtype: Optional column dtypes passed to pandas (keep ids as strings).
        name: Collection name used in logs and layer names.
    """

    paths: list[Path]
    x_col: str
    y_col: str
    crs: Union[str, int]
    id_col: Optional[str] = None
    source_col: Optional[str] = "source"
    delimiter: str = ","
    encoding: str = "utf-8"
    dtype: dict[str, str] = field(default_factory=dict)
    name: str = "points"

    def __post_init__(self) -> None:
        if isinstance(self.paths, (str, Path)):
            self.paths = [self.paths]
        self.paths = [Path(p) for p in self.paths]
        if not self.paths:
            raise_parameter_error("paths", self.paths, constraint="at least one path")
        if self.x_col == self.y_col:
            raise_parameter_error(
                "y_col", self.y_col, constraint="must differ from x_col"
            )
        if self.id_col is not None:
            self.dtype.setdefault(self.id_col, "str")


@dataclass
class PolygonSourceConfig:
    """A polygon vector file (shapefile, GeoPackage, GeoJSON, ...)."""

    path: Path
    layer: Optional[str] = None
    name: str = "boundaries"

    def __post_init__(self) -> None:
        self.path = Path(self.path)


@dataclass
class FetchConfig:
    """Remote linked-data index and daily-values settings."""

    enabled: bool = True
    nldi_url: str = DEFAULT_NLDI_URL
    nwis_url: str = DEFAULT_NWIS_DV_URL
    direction: str = "UM"
    distance_km: float = 50.0
    data_source: str = "nwissite"
    parameter_code: str = "00060"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    timeout: float = 30.0
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.direction not in NAVIGATION_MODES:
            raise_parameter_error(
                "direction", self.direction, valid_values=list(NAVIGATION_MODES)
            )
        if self.distance_km <= 0:
            raise_parameter_error(
                "distance_km", self.distance_km, constraint="must be > 0"
            )
        if self.timeout <= 0:
            raise_parameter_error("timeout", self.timeout, constraint="must be > 0")
        if self.max_workers < 1:
            raise_parameter_error(
                "max_workers", self.max_workers, constraint="must be >= 1"
            )
        self.parameter_code = str(self.parameter_code).zfill(5)


@dataclass
class RenderConfig:
    """Static map image settings."""

    output: Optional[Path] = None
    width_in: float = 8.0
    height_in: float = 6.0
    dpi: int = 150
    title: Optional[str] = None

    def __post_init__(self) -> None:
        if self.output is not None:
            self.output = Path(self.output)
        for name in ("width_in", "height_in", "dpi"):
            if getattr(self, name) <= 0:
                raise_parameter_error(name, getattr(self, name), constraint="must be > 0")


@dataclass
class ExportConfig:
    """Multi-layer container output."""

    path: Path
    driver: str = "GPKG"
    group_by: Optional[str] = None

    def __post_init__(self) -> None:
        self.path = Path(self.path)


@dataclass
class PipelineConfig:
    """Complete pipeline configuration.

    Attributes:
        points: Station tables to load.
        boundaries: Polygons used for filtering and joining.
        target_crs: Projected CRS every collection is harmonized into.
        origins: Optional query points resolved to their nearest station and
            used as traversal origins; defaults to the stations themselves.
        join_predicate: Spatial predicate for the point/polygon join.
        join_how: 'inner' or 'left'.
        nearest_unit: Unit for nearest-feature distances.
        max_distance: Optional threshold for a 1:many proximity join.
        fetch: Remote data settings; None disables fetching.
        render: Map settings; None disables rendering.
        export: Container settings; None disables export.
    """

    points: PointSourceConfig
    boundaries: PolygonSourceConfig
    target_crs: Union[str, int] = "EPSG:5070"
    origins: Optional[PointSourceConfig] = None
    join_predicate: str = "within"
    join_how: str = "inner"
    nearest_unit: str = "km"
    max_distance: Optional[float] = None
    fetch: Optional[FetchConfig] = None
    render: Optional[RenderConfig] = None
    export: Optional[ExportConfig] = None

    def __post_init__(self) -> None:
        if self.join_how not in ("inner", "left"):
            raise_parameter_error("join_how", self.join_how, valid_values=["inner", "left"])
        if self.max_distance is not None and self.max_distance < 0:
            raise_parameter_error(
                "max_distance", self.max_distance, constraint="must be >= 0"
            )


_SECTIONS = {
    "points": PointSourceConfig,
    "origins": PointSourceConfig,
    "boundaries": PolygonSourceConfig,
    "fetch": FetchConfig,
    "render": RenderConfig,
    "export": ExportConfig,
}

_PATH_KEYS = {"paths", "path", "output"}


def _resolve_paths(section: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    resolved = dict(section)
    for key in _PATH_KEYS & resolved.keys():
        value = resolved[key]
        if value is None:
            continue
        if isinstance(value, list):
            resolved[key] = [base_dir / Path(v) for v in value]
        else:
            resolved[key] = base_dir / Path(value)
    return resolved


def _build(cls: type, data: Any, section: str) -> Any:
    """Instantiate a config dataclass, rejecting unknown and missing keys."""
    if not isinstance(data, dict):
        raise ParameterError(
            f"Config section '{section}' must be a mapping, got {type(data).__name__}"
        )
    fields = {f.name: f for f in dataclasses.fields(cls)}
    unknown = set(data) - set(fields)
    if unknown:
        raise ParameterError(
            f"Unknown keys in config section '{section}': {sorted(unknown)}",
            suggestion=f"Valid keys: {', '.join(fields)}",
        )
    missing = [
        name
        for name, f in fields.items()
        if f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING  # type: ignore[misc]
        and name not in data
    ]
    if missing:
        raise ParameterError(f"Missing required keys in config section '{section}': {missing}")
    try:
        return cls(**data)
    except (TypeError, ValueError) as e:
        raise ParameterError(f"Invalid config section '{section}': {e}") from e


def config_from_dict(data: dict[str, Any], base_dir: Optional[Path] = None) -> PipelineConfig:
    """Build a PipelineConfig from a plain dictionary.

    Args:
        data: Parsed configuration.
        base_dir: Directory relative paths are resolved against. Defaults to
            the current working directory.

    Returns:
        Validated PipelineConfig.

    Raises:
        ParameterError: On unknown keys, missing keys or invalid values.
    """
    base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
    if not isinstance(data, dict):
        raise ParameterError("Pipeline config must be a mapping at the top level")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key in _SECTIONS and value is not None:
            kwargs[key] = _build(_SECTIONS[key], _resolve_paths(value, base_dir), key)
        else:
            kwargs[key] = value
    return _build(PipelineConfig, kwargs, "pipeline")


def load_config(file_path: Union[str, Path]) -> PipelineConfig:
    """Load a pipeline configuration from a YAML or JSON file.

    Relative paths inside the file are resolved against the file's directory.

    Args:
        file_path: Path to a .yaml, .yml or .json file.

    Returns:
        Validated PipelineConfig.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ParameterError: If the format is unsupported or the content invalid.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    suffix = file_path.suffix.lower()
    with open(file_path) as f:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise ParameterError(
                f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .json"
            )

    config = config_from_dict(data or {}, base_dir=file_path.parent)
    logger.info(f"Loaded pipeline config from {file_path}")
    return config


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Basic console logging for scripts and examples."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
