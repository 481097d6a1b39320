"""Shared fixtures: small collections and an in-memory linked-data index."""

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest
from shapely.geometry import Point, box

from hydrosmith.objects.geocollection import GeometryCollection
from hydrosmith.tasks.fetchtask import DAILY_VALUE_COLUMNS
from hydrosmith.utils.errors import RemoteFetchError


class FakeLinkedDataSource:
    """LinkedDataSource backed by dictionaries.

    Origins are looked up by (lon, lat) rounded to 3 decimals; unknown
    origins raise RemoteFetchError like a missing NLDI segment does.
    """

    def __init__(self, comids=None, sites=None, flowlines=None, daily=None):
        self.comids = comids or {}
        self.sites = sites or {}
        self.flowlines = flowlines or {}
        self.daily = daily if daily is not None else pd.DataFrame(columns=DAILY_VALUE_COLUMNS)
        self.navigate_calls = []
        self.daily_calls = []

    def comid_at(self, lon, lat):
        key = (round(lon, 3), round(lat, 3))
        if key not in self.comids:
            raise RemoteFetchError(f"No flowline found at {key}", status_code=404)
        return self.comids[key]

    def navigate(self, comid, mode, data_source, distance_km):
        self.navigate_calls.append((comid, mode, data_source, distance_km))
        table = self.flowlines if data_source == "flowlines" else self.sites
        return list(table.get(comid, []))

    def daily_values(self, site_ids, parameter_code, start_date, end_date=None):
        self.daily_calls.append((list(site_ids), parameter_code, start_date, end_date))
        rows = self.daily[
            self.daily["site_no"].isin(site_ids)
            & (self.daily["parameter_cd"] == parameter_code)
        ]
        return rows.reset_index(drop=True)


def site_feature(identifier, lon, lat, name=None):
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": {
            "identifier": identifier,
            "name": name or identifier,
            "source": "nwissite",
        },
    }


def flowline_feature(comid, coords):
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": coords},
        "properties": {"nhdplus_comid": comid},
    }


@pytest.fixture
def squares():
    """Two adjacent 10 x 10 squares sharing the edge x = 10 (EPSG:5070)."""
    return GeometryCollection(
        geometries=[box(0, 0, 10, 10), box(10, 0, 20, 10)],
        attributes=pd.DataFrame({"region": ["west", "east"]}),
        crs="EPSG:5070",
        name="regions",
    )


@pytest.fixture
def stations():
    """One station in each square and one outside both (EPSG:5070)."""
    return GeometryCollection(
        geometries=[Point(5, 5), Point(15, 5), Point(30, 5)],
        attributes=pd.DataFrame({"STAID": ["A", "B", "C"], "kind": ["ST", "ST", "LK"]}),
        crs="EPSG:5070",
        name="stations",
    )


@pytest.fixture
def fake_source():
    """Index knowing two origins in WGS84; a third origin is unknown."""
    daily = pd.DataFrame(
        {
            "agency_cd": ["USGS"] * 4,
            "site_no": ["0001", "0001", "0001", "0002"],
            "station_nm": ["UPPER CREEK"] * 3 + ["LOWER CREEK"],
            "parameter_cd": ["00060"] * 4,
            "date": pd.to_datetime(["2020-01-01", "2020-01-02", "2020-01-05", "2020-01-01"]),
            "value": [10.0, 11.0, 14.0, 3.5],
            "qualifiers": ["A"] * 4,
        }
    )
    return FakeLinkedDataSource(
        comids={(-104.5, 39.5): "101", (-103.5, 39.5): "202"},
        sites={
            "101": [site_feature("USGS-0001", -104.6, 39.6, "UPPER CREEK")],
            "202": [
                site_feature("USGS-0002", -103.6, 39.6, "LOWER CREEK"),
                site_feature("USGS-0001", -104.6, 39.6, "UPPER CREEK"),
            ],
        },
        flowlines={
            "101": [flowline_feature(101, [[-104.5, 39.5], [-104.6, 39.6]])],
            "202": [flowline_feature(202, [[-103.5, 39.5], [-103.6, 39.6]])],
        },
        daily=daily,
    )
