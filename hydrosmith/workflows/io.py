"""File I/O for point tables, polygon layers and multi-layer containers.

Layer 4: Workflows - file loading and saving lives here.
"""

import logging
import os
import shutil
import tempfile
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import pyogrio
from pyogrio.errors import DataLayerError, DataSourceError
from shapely.geometry import Point

from hydrosmith.config import PointSourceConfig, PolygonSourceConfig
from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.objects.results import LayerManifest
from hydrosmith.primitives.spatial_reference import resolve_crs
from hydrosmith.utils.errors import (
    ExportWriteError,
    MalformedGeometryError,
    SchemaMismatchError,
    SourceNotFoundError,
)

logger = logging.getLogger(__name__)


def _require_file(path: Path, allow_directory: bool = False) -> Path:
    path = Path(path)
    if allow_directory and path.is_dir():
        return path
    if not path.is_file():
        raise SourceNotFoundError(
            f"Input file not found: {path}",
            suggestion="Check the path, or resolve it against the config file directory",
        )
    return path


def read_point_frame(
    df: pd.DataFrame, source: PointSourceConfig, label: Optional[str] = None
) -> GeometryCollection:
    """Attach point geometries to a DataFrame of coordinate rows.

    All original columns are kept as attributes. Rows with a blank coordinate
    get a missing geometry; they are reported per record by later stages.

    Args:
        df: Rows with the configured coordinate columns.
        source: Column names and CRS of the coordinates.
        label: Value stored in ``source.source_col`` (e.g. the file stem).

    Returns:
        GeometryCollection in ``source.crs``.

    Raises:
        SchemaMismatchError: If declared columns are absent or coordinates are
            not numeric.
        UnknownCRSError: If the CRS is unrecognized.
    """
    resolve_crs(source.crs)
    required = [source.x_col, source.y_col]
    if source.id_col is not None:
        required.append(source.id_col)
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise SchemaMismatchError(
            f"Columns {missing} not found in '{label or source.name}'",
            suggestion=f"Available columns: {list(df.columns)}",
        )

    coords = {}
    for col in (source.x_col, source.y_col):
        values = pd.to_numeric(df[col], errors="coerce")
        bad = values.isna() & df[col].notna()
        if bad.any():
            raise SchemaMismatchError(
                f"Column '{col}' of '{label or source.name}' has "
                f"{int(bad.sum())} non-numeric coordinates",
                details={"examples": df.loc[bad, col].head(3).tolist()},
            )
        coords[col] = values.to_numpy(dtype=float)

    geometries = np.empty(len(df), dtype=object)
    for i, (x, y) in enumerate(zip(coords[source.x_col], coords[source.y_col])):
        geometries[i] = None if np.isnan(x) or np.isnan(y) else Point(x, y)

    attributes = df.reset_index(drop=True).copy()
    if source.source_col is not None and label is not None:
        attributes[source.source_col] = label
    return GeometryCollection(
        geometries=geometries, attributes=attributes, crs=source.crs, name=source.name
    )


def _read_table(path: Path, source: PointSourceConfig) -> pd.DataFrame:
    try:
        return pd.read_csv(
            path,
            sep=source.delimiter,
            dtype=source.dtype or None,
            encoding=source.encoding,
        )
    except UnicodeDecodeError as e:
        raise SchemaMismatchError(
            f"Cannot decode point table {path} as {source.encoding}: {e}",
            suggestion="Set 'encoding' on the point source (e.g. 'latin-1')",
        ) from e
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise SchemaMismatchError(f"Cannot parse point table {path}: {e}") from e


def read_point_tables(
    source: PointSourceConfig, max_workers: int = 1
) -> GeometryCollection:
    """Read per-region point tables into one GeometryCollection.

    Files may be read concurrently; rows are always merged in the order the
    paths are listed.

    Args:
        source: Paths, coordinate columns and CRS.
        max_workers: Concurrent file reads; 1 reads sequentially.

    Returns:
        GeometryCollection with every row of every file.

    Raises:
        SourceNotFoundError: If a path does not exist.
        SchemaMismatchError: If declared columns are absent, coordinates are
            not numeric, or files disagree on their columns.
        UnknownCRSError: If the CRS is unrecognized.

    Example:
        >>> source = PointSourceConfig(paths=["co.csv", "ut.csv"], x_col="LON",
        ...                            y_col="LAT", crs="EPSG:4269", id_col="STAID")
        >>> gauges = read_point_tables(source)
    """
    paths = [_require_file(p) for p in source.paths]
    resolve_crs(source.crs)

    if max_workers > 1 and len(paths) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            frames = list(executor.map(lambda p: _read_table(p, source), paths))
    else:
        frames = [_read_table(p, source) for p in paths]

    columns = list(frames[0].columns)
    for path, frame in zip(paths[1:], frames[1:]):
        if set(frame.columns) != set(columns):
            raise SchemaMismatchError(
                f"Columns of {path} differ from {paths[0]}",
                details={
                    "missing": sorted(set(columns) - set(frame.columns)),
                    "extra": sorted(set(frame.columns) - set(columns)),
                },
            )

    parts = [
        read_point_frame(frame[columns], source, label=path.stem)
        for path, frame in zip(paths, frames)
    ]
    collection = GeometryCollection(
        geometries=np.concatenate([p.geometries for p in parts]),
        attributes=pd.concat([p.attributes for p in parts], ignore_index=True),
        crs=source.crs,
        name=source.name,
    )
    logger.info(
        f"Loaded {len(collection)} '{source.name}' records from {len(paths)} files"
    )
    return collection


def from_geodataframe(gdf: gpd.GeoDataFrame, name: Optional[str] = None) -> GeometryCollection:
    """Convert a GeoDataFrame into a GeometryCollection.

    Raises:
        MalformedGeometryError: If the GeoDataFrame has no CRS.
    """
    if gdf.crs is None:
        raise MalformedGeometryError(
            f"Layer '{name}' has no CRS",
            suggestion="Add a .prj file or set the CRS when the data is produced",
        )
    epsg = gdf.crs.to_epsg()
    crs = f"EPSG:{epsg}" if epsg else gdf.crs.to_wkt()
    return GeometryCollection(
        geometries=gdf.geometry.to_numpy(),
        attributes=pd.DataFrame(gdf.drop(columns=gdf.geometry.name)),
        crs=crs,
        name=name,
    )


def to_geodataframe(collection: GeometryCollection) -> gpd.GeoDataFrame:
    """Convert a GeometryCollection into a GeoDataFrame."""
    return gpd.GeoDataFrame(
        collection.attributes.copy(),
        geometry=gpd.GeoSeries(list(collection.geometries), crs=collection.crs),
    )


def read_polygons(
    source: Union[PolygonSourceConfig, str, Path],
    layer: Optional[str] = None,
    name: Optional[str] = None,
) -> GeometryCollection:
    """Read polygon boundaries from a vector file.

    Args:
        source: PolygonSourceConfig or a path (shapefile, GeoPackage, GeoJSON,
            or a file geodatabase directory).
        layer: Layer name for multi-layer files (overrides the config).
        name: Collection name (overrides the config).

    Returns:
        GeometryCollection in the file's CRS.

    Raises:
        SourceNotFoundError: If the path does not exist.
        MalformedGeometryError: If the file cannot be parsed or has no CRS.
    """
    if not isinstance(source, PolygonSourceConfig):
        source = PolygonSourceConfig(path=Path(source))
    path = _require_file(source.path, allow_directory=True)
    layer = layer or source.layer
    name = name or source.name

    try:
        gdf = gpd.read_file(path, layer=layer, engine="pyogrio")
    except (DataSourceError, DataLayerError, ValueError) as e:
        raise MalformedGeometryError(f"Cannot read vector file {path}: {e}") from e

    collection = from_geodataframe(gdf, name=name)
    logger.info(f"Loaded {len(collection)} '{name}' features from {path.name}")
    return collection


def group_by_attribute(
    collection: GeometryCollection, column: str
) -> dict[str, GeometryCollection]:
    """Split a collection into named groups by an attribute value.

    Groups are ordered by first appearance; missing values are grouped under
    'unassigned'.

    Raises:
        SchemaMismatchError: If ``column`` is absent, or if two distinct values
            share a group name (e.g. ``1`` and ``"1"``).
    """
    if column not in collection.attributes.columns:
        raise SchemaMismatchError(
            f"Column '{column}' not found in '{collection.name}'",
            suggestion=f"Available columns: {list(collection.attributes.columns)}",
        )
    keys = collection.attributes[column].astype(object).where(
        collection.attributes[column].notna(), "unassigned"
    )
    groups: dict[str, GeometryCollection] = {}
    seen: dict[str, Any] = {}
    for key in pd.unique(keys):
        group = str(key)
        if group in seen:
            raise SchemaMismatchError(
                f"Values {seen[group]!r} and {key!r} of column '{column}' "
                f"both map to group '{group}'",
                suggestion=f"Normalize '{column}' to one type before grouping",
            )
        seen[group] = key
        positions = np.flatnonzero((keys == key).to_numpy())
        groups[group] = collection.take(positions).rename(group)
    return groups


def list_layers(container_path: Union[str, Path]) -> list[str]:
    """Layer names in a container file (empty if the file does not exist)."""
    path = Path(container_path)
    if not path.exists():
        return []
    return [str(row[0]) for row in pyogrio.list_layers(path)]


def write_layer(
    collection: GeometryCollection,
    container_path: Union[str, Path],
    layer: str,
    driver: str = "GPKG",
) -> int:
    """Write one layer, replacing any layer of the same name.

    The container is copied, the layer is written into the copy, and the copy
    is moved over the original with ``os.replace``. A failed write leaves the
    original container and all its layers untouched.

    Returns:
        Number of records written.

    Raises:
        ExportWriteError: If the layer cannot be written.
    """
    path = Path(container_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=path.suffix, dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)

    try:
        if path.exists():
            shutil.copy2(path, tmp_path)
        else:
            # GDAL refuses to open a zero-byte file as a container.
            tmp_path.unlink()
        to_geodataframe(collection).to_file(
            tmp_path, layer=layer, driver=driver, engine="pyogrio"
        )
        os.replace(tmp_path, path)
    except Exception as e:
        raise ExportWriteError(
            f"Failed to write layer '{layer}' to {path}: {e}", layer=layer
        ) from e
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.debug(f"Wrote layer '{layer}' ({len(collection)} records) to {path}")
    return len(collection)


def export_layers(
    groups: Mapping[str, GeometryCollection],
    container_path: Union[str, Path],
    driver: str = "GPKG",
) -> LayerManifest:
    """Write each named group as its own layer in one container file.

    Existing layers with the same name are replaced, never appended to.
    Layers not named in ``groups`` are kept.

    Args:
        groups: Layer name -> collection.
        container_path: Container file (e.g. 'outputs/gauges.gpkg').
        driver: OGR driver supporting multiple layers.

    Returns:
        LayerManifest with the record count of each written layer.

    Raises:
        ExportWriteError: On the first layer that fails; layers written
            before it are complete and the failed layer's old content is intact.
    """
    manifest = LayerManifest(container_path=Path(container_path))
    for layer, collection in groups.items():
        manifest.layers[layer] = write_layer(collection, container_path, layer, driver)
    logger.info(f"Exported {len(manifest.layers)} layers to {container_path}")
    return manifest
