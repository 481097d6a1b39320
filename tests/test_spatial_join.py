"""Tests for containment filters and spatial joins."""

import sys

import numpy as np
import pandas as pd
import pytest
from shapely import STRtree
from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.primitives.spatial_join import (
    filter_contained,
    filter_not_contained,
    spatial_join,
    validate_geometries,
)
from hydrosmith.tasks.harmonizetask import HarmonizeTask
from hydrosmith.tasks.jointask import JoinTask
from hydrosmith.utils.errors import (
    CRSMismatchError,
    InvalidGeometryError,
    ParameterError,
    SchemaMismatchError,
)


def _with_point(stations, point, staid="EDGE"):
    return GeometryCollection(
        geometries=list(stations.geometries) + [point],
        attributes=pd.concat(
            [stations.attributes, pd.DataFrame({"STAID": [staid], "kind": ["ST"]})],
            ignore_index=True,
        ),
        crs=stations.crs,
        name=stations.name,
    )


class TestFilters:
    """Tests for filter_contained / filter_not_contained."""

    def test_contained(self, stations, squares):
        """Test that stations inside any square are kept in order."""
        inside = filter_contained(stations, squares)
        assert inside.collection.ids("STAID") == ["A", "B"]
        assert inside.source_index.tolist() == [0, 1]
        assert inside.failures == []

    def test_not_contained(self, stations, squares):
        """Test the complement keeps only the outside station."""
        outside = filter_not_contained(stations, squares)
        assert outside.collection.ids("STAID") == ["C"]

    def test_partition(self, stations, squares):
        """Test that inside and outside partition the stations."""
        inside = filter_contained(stations, squares)
        outside = filter_not_contained(stations, squares)
        combined = sorted(inside.source_index.tolist() + outside.source_index.tolist())
        assert combined == list(range(len(stations)))

    def test_within_excludes_edge_point(self, stations, squares):
        """Test that a point on an edge is not 'within' but does 'intersect'."""
        edged = _with_point(stations, Point(10, 5))
        assert "EDGE" not in filter_contained(edged, squares, "within").collection.ids("STAID")
        assert "EDGE" in filter_contained(edged, squares, "intersects").collection.ids("STAID")

    def test_unknown_predicate(self, stations, squares):
        """Test that unknown predicates raise ParameterError."""
        with pytest.raises(ParameterError, match="predicate"):
            filter_contained(stations, squares, predicate="near")

    def test_crs_mismatch(self, stations, squares):
        """Test that un-harmonized inputs are rejected."""
        lonlat = HarmonizeTask("EPSG:4326").harmonize(squares)
        with pytest.raises(CRSMismatchError):
            filter_contained(stations, lonlat)


class TestSpatialJoin:
    """Tests for spatial_join."""

    def test_inner_join(self, stations, squares):
        """Test that inner joins drop unmatched stations."""
        result = spatial_join(stations, squares, how="inner")
        assert len(result) == 2
        assert result.collection.attributes["region"].tolist() == ["west", "east"]
        assert result.n_unmatched == 0

    def test_left_join(self, stations, squares):
        """Test that left joins keep unmatched stations with null attributes."""
        result = spatial_join(stations, squares, how="left")
        attrs = result.collection.attributes
        assert len(result) == 3
        assert attrs["STAID"].tolist() == ["A", "B", "C"]
        assert pd.isna(attrs.loc[2, "region"])
        assert pd.isna(attrs.loc[2, "index_right"])
        assert result.right_index.tolist() == [0, 1, -1]
        assert result.n_unmatched == 1

    def test_boundary_point_matches_every_polygon(self, stations, squares):
        """Test that a point on a shared edge yields one row per polygon."""
        edged = _with_point(stations, Point(10, 5))
        result = spatial_join(edged, squares, predicate="intersects", how="inner")
        edge_rows = result.collection.attributes[
            result.collection.attributes["STAID"] == "EDGE"
        ]
        assert len(edge_rows) == 2
        assert sorted(edge_rows["region"]) == ["east", "west"]

    def test_rows_ordered_by_left_then_right(self, stations, squares):
        """Test deterministic row order."""
        edged = _with_point(stations, Point(10, 5))
        result = spatial_join(edged, squares, predicate="intersects", how="left")
        pairs = list(zip(result.left_index.tolist(), result.right_index.tolist()))
        assert pairs == sorted(pairs, key=lambda p: (p[0], p[1] if p[1] >= 0 else 1e9))

    def test_colliding_columns_suffixed(self, stations):
        """Test that shared attribute names get suffixes."""
        zones = GeometryCollection(
            geometries=[Polygon([(0, 0), (40, 0), (40, 10), (0, 10)])],
            attributes=pd.DataFrame({"kind": ["zone"]}),
            crs="EPSG:5070",
        )
        result = spatial_join(stations, zones, how="inner")
        columns = result.collection.attributes.columns
        assert "kind_left" in columns and "kind_right" in columns

    def test_inputs_not_modified(self, stations, squares):
        """Test that joins leave their inputs untouched."""
        before = stations.attributes.copy()
        spatial_join(stations, squares, how="left")
        pd.testing.assert_frame_equal(stations.attributes, before)

    def test_unknown_how(self, stations, squares):
        """Test that unknown cardinality policies are rejected."""
        with pytest.raises(ParameterError, match="how"):
            spatial_join(stations, squares, how="outer")

    def test_joining_a_joined_result(self, stations, squares):
        """Test that an existing index_right column is not overwritten."""
        joined = spatial_join(stations, squares, how="inner").collection
        with pytest.raises(SchemaMismatchError, match="index_right"):
            spatial_join(joined, squares, how="inner")


class TestInvalidGeometries:
    """Tests for per-record geometry failures."""

    @pytest.fixture
    def with_bad_records(self, stations):
        bowtie = Polygon([(0, 0), (10, 10), (10, 0), (0, 10)])
        return GeometryCollection(
            geometries=list(stations.geometries) + [None, bowtie],
            attributes=pd.DataFrame(
                {"STAID": ["A", "B", "C", "NOGEOM", "BOWTIE"], "kind": ["ST"] * 5}
            ),
            crs=stations.crs,
            name="stations",
        )

    def test_validate_geometries(self, with_bad_records):
        """Test that missing and invalid geometries are flagged."""
        mask, failures = validate_geometries(with_bad_records, id_col="STAID")
        assert mask.tolist() == [True, True, True, False, False]
        assert [f.record_id for f in failures] == ["NOGEOM", "BOWTIE"]
        assert all(isinstance(f.error, InvalidGeometryError) for f in failures)
        assert failures[1].error.index == 4

    def test_join_skips_bad_records(self, with_bad_records, squares):
        """Test that bad records do not abort the join."""
        result = spatial_join(with_bad_records, squares, how="left", left_id_col="STAID")
        assert result.collection.ids("STAID") == ["A", "B", "C"]
        assert len(result.failures) == 2

    def test_filters_exclude_bad_records(self, with_bad_records, squares):
        """Test that bad records appear in neither filter result."""
        inside = filter_contained(with_bad_records, squares, id_col="STAID")
        outside = filter_not_contained(with_bad_records, squares, id_col="STAID")
        kept = set(inside.source_index.tolist()) | set(outside.source_index.tolist())
        assert kept == {0, 1, 2}
        assert len(inside.failures) == 2

    def test_predicate_error_isolated_per_record(self, stations, squares, monkeypatch):
        """Test that a record whose predicate raises is reported, not fatal."""
        bad = Point(15, 5)

        class FailingTree(STRtree):
            def query(self, geometry, predicate=None, distance=None):
                if isinstance(geometry, np.ndarray) or geometry.equals(bad):
                    raise GEOSException("TopologyException: side location conflict")
                return super().query(geometry, predicate=predicate, distance=distance)

        monkeypatch.setattr(sys.modules["hydrosmith.primitives.spatial_join"], "STRtree", FailingTree)
        result = spatial_join(stations, squares, how="left", left_id_col="STAID")

        assert result.collection.ids("STAID") == ["A", "C"]
        assert result.right_index.tolist() == [0, -1]
        assert [f.record_id for f in result.failures] == ["B"]
        failure = result.failures[0]
        assert failure.side == "left"
        assert failure.index == 1
        assert isinstance(failure.error, InvalidGeometryError)
        assert "side location conflict" in str(failure.error)


class TestJoinTask:
    """Tests for JoinTask."""

    def test_harmonizes_inputs(self, stations, squares):
        """Test that the task reprojects inputs when given a harmonizer."""
        lonlat_squares = HarmonizeTask("EPSG:4326").harmonize(squares)
        task = JoinTask(how="inner", harmonizer=HarmonizeTask("EPSG:5070"))
        result = task.join(stations, lonlat_squares)
        assert result.collection.ids("STAID") == ["A", "B"]
        assert result.collection.crs == "EPSG:5070"

    def test_inside_outside(self, stations, squares):
        """Test the task's filter shortcuts."""
        task = JoinTask(id_col="STAID")
        assert len(task.inside(stations, squares)) == 2
        assert task.outside(stations, squares).collection.ids("STAID") == ["C"]

    def test_left_index_points_back(self, stations, squares):
        """Test that left_index maps rows to source records."""
        result = JoinTask(how="inner").join(stations, squares)
        assert np.array_equal(result.left_index, [0, 1])
