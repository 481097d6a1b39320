"""Tests for static map rendering, hydrographs and interactive maps."""

import pandas as pd
import pytest
from shapely.geometry import LineString, Point

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.primitives.spatial_reference import reproject_collection
from hydrosmith.workflows.plotting import (
    LayerStyle,
    MapLayer,
    create_interactive_map,
    infer_kind,
    plot_hydrograph,
    render_map,
)
from hydrosmith.utils.errors import CRSMismatchError, ParameterError

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def river():
    return GeometryCollection(
        geometries=[LineString([(0, 5), (30, 5)])],
        attributes=pd.DataFrame({"name": ["main stem"]}),
        crs="EPSG:5070",
        name="rivers",
    )


class TestMapLayer:
    """Tests for MapLayer and kind inference."""

    def test_infer_kind(self, squares, stations, river):
        """Test inferring the layer kind from geometry types."""
        assert infer_kind(squares) == "polygon"
        assert infer_kind(river) == "line"
        assert infer_kind(stations) == "point"

    def test_empty_collection_is_point(self):
        """Test the fallback kind of an empty collection."""
        assert infer_kind(GeometryCollection.empty("EPSG:5070")) == "point"

    def test_bad_kind(self, stations):
        """Test that unknown kinds are rejected."""
        with pytest.raises(ParameterError, match="kind"):
            MapLayer(stations, kind="raster")

    def test_label(self, stations):
        """Test that the label falls back to the collection name."""
        assert MapLayer(stations).label == "stations"
        assert MapLayer(stations, style=LayerStyle(label="Gauges")).label == "Gauges"


class TestRenderMap:
    """Tests for render_map."""

    def test_exported_from_workflows(self, squares, stations):
        """Test rendering through the package-level workflow exports."""
        from hydrosmith import workflows

        assert workflows.render_map is render_map
        image = workflows.render_map(
            [workflows.MapLayer(squares), workflows.MapLayer(stations)], dpi=50
        )
        assert image.startswith(PNG_MAGIC)

    def test_returns_png(self, squares, stations, river):
        """Test that rendering yields PNG bytes."""
        png = render_map([MapLayer(stations), MapLayer(river), MapLayer(squares)], dpi=50)
        assert png.startswith(PNG_MAGIC)

    def test_writes_output(self, squares, stations, tmp_path):
        """Test writing the image to a file in a new directory."""
        output = tmp_path / "maps" / "stations.png"
        png = render_map(
            [MapLayer(squares), MapLayer(stations, style=LayerStyle(label="Stations"))],
            title="Stations",
            dpi=50,
            output=output,
        )
        assert output.read_bytes() == png

    def test_inputs_unchanged(self, squares, stations):
        """Test that rendering does not modify the collections."""
        before = stations.attributes.copy()
        geoms = list(stations.geometries)
        render_map([MapLayer(squares), MapLayer(stations)], dpi=50)
        pd.testing.assert_frame_equal(stations.attributes, before)
        assert all(a.equals(b) for a, b in zip(stations.geometries, geoms))

    def test_missing_geometries_skipped(self, squares):
        """Test that records without geometry are not drawn and do not fail."""
        points = GeometryCollection(
            geometries=[Point(5, 5), None],
            attributes=pd.DataFrame({"id": [1, 2]}),
            crs="EPSG:5070",
        )
        assert render_map([MapLayer(squares), MapLayer(points, kind="point")], dpi=50).startswith(
            PNG_MAGIC
        )

    def test_crs_mismatch(self, squares, stations):
        """Test that layers in different CRSs are rejected."""
        lonlat = reproject_collection(stations, "EPSG:4326")
        with pytest.raises(CRSMismatchError):
            render_map([MapLayer(squares), MapLayer(lonlat)])

    def test_no_layers(self):
        """Test that at least one layer is required."""
        with pytest.raises(ParameterError, match="layers"):
            render_map([])

    def test_bad_dimensions(self, stations):
        """Test that non-positive sizes are rejected."""
        with pytest.raises(ParameterError, match="width_in"):
            render_map([MapLayer(stations)], width_in=0)


class TestPlotHydrograph:
    """Tests for plot_hydrograph."""

    def test_one_line_per_site(self, tmp_path):
        """Test plotting a gap-filled daily series."""
        import matplotlib.pyplot as plt

        daily = pd.DataFrame(
            {
                "site_no": ["01"] * 3 + ["02"] * 2,
                "station_nm": ["UPPER"] * 3 + ["LOWER"] * 2,
                "date": pd.to_datetime(
                    ["2020-01-01", "2020-01-02", "2020-01-03", "2020-01-01", "2020-01-02"]
                ),
                "value": [1.0, None, 3.0, 5.0, 6.0],
            }
        )
        output = tmp_path / "hydrograph.png"
        fig = plot_hydrograph(daily, label_col="station_nm", output=output)
        ax = fig.axes[0]
        assert len(ax.get_lines()) == 2
        assert ax.get_lines()[0].get_label() == "01 UPPER"
        assert output.read_bytes().startswith(PNG_MAGIC)
        plt.close(fig)

    def test_missing_columns(self):
        """Test that required columns are checked."""
        with pytest.raises(ParameterError, match="daily"):
            plot_hydrograph(pd.DataFrame({"site_no": ["01"]}))


class TestInteractiveMap:
    """Tests for create_interactive_map."""

    def test_html_output(self, squares, stations, tmp_path):
        """Test writing an interactive map."""
        pytest.importorskip("folium")
        output = tmp_path / "map.html"
        m = create_interactive_map([MapLayer(stations), MapLayer(squares)], output=output)
        assert m is not None
        html = output.read_text()
        assert "leaflet" in html.lower()
        assert "stations" in html

    def test_no_layers(self):
        """Test that at least one layer is required."""
        pytest.importorskip("folium")
        with pytest.raises(ParameterError):
            create_interactive_map([])
