"""Tests for the NLDI/NWIS client with a stubbed HTTP session."""

import math

import pandas as pd
import pytest
import requests

from hydrosmith.config import FetchConfig
from hydrosmith.tasks.fetchtask import DAILY_VALUE_COLUMNS, FetchTask
from hydrosmith.workflows.nldi import NLDIClient, parse_daily_values
from hydrosmith.utils.errors import RemoteFetchError


class StubResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._payload


class StubSession:
    """Returns canned responses by URL suffix and records every request."""

    def __init__(self, routes=None, error=None):
        self.headers = {}
        self.routes = routes or {}
        self.error = error
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                return response
        return StubResponse(404)


def _waterml(site="05428500", values=(("2020-01-01T00:00:00.000", "12.5"),)):
    return {
        "value": {
            "timeSeries": [
                {
                    "sourceInfo": {
                        "siteName": "YAHARA RIVER",
                        "siteCode": [{"value": site, "agencyCode": "USGS"}],
                    },
                    "variable": {
                        "variableCode": [{"value": "00060"}],
                        "noDataValue": -999999.0,
                    },
                    "values": [
                        {
                            "value": [
                                {"value": v, "qualifiers": ["A"], "dateTime": d}
                                for d, v in values
                            ]
                        }
                    ],
                }
            ]
        }
    }


class TestNLDIClient:
    """Tests for NLDIClient requests and parsing."""

    def test_comid_at(self):
        """Test resolving the COMID at a position."""
        session = StubSession(
            {"/comid/position": StubResponse(payload={"features": [{"properties": {"comid": 13293750}}]})}
        )
        client = NLDIClient(nldi_url="https://nldi.test/linked-data/", session=session)
        assert client.comid_at(-89.4, 43.1) == "13293750"
        url, params, _ = session.requests[0]
        assert url == "https://nldi.test/linked-data/comid/position"
        assert params == {"coords": "POINT(-89.4 43.1)"}

    def test_comid_not_found(self):
        """Test that a position off the network raises RemoteFetchError."""
        client = NLDIClient(session=StubSession())
        with pytest.raises(RemoteFetchError, match="No flowline"):
            client.comid_at(0.0, 0.0)

    def test_navigate(self):
        """Test the navigation URL and returned features."""
        features = [{"type": "Feature", "geometry": None, "properties": {}}]
        session = StubSession(
            {"/comid/101/navigation/UM/nwissite": StubResponse(payload={"features": features})}
        )
        client = NLDIClient(nldi_url="https://nldi.test", session=session)
        assert client.navigate("101", "UM", "nwissite", 50) == features
        assert session.requests[0][1] == {"distance": 50}

    def test_navigate_nothing_found(self):
        """Test that a 404 navigation is an empty list."""
        client = NLDIClient(session=StubSession())
        assert client.navigate("101", "UM", "flowlines", 10) == []

    def test_server_error(self):
        """Test that 5xx responses raise with the status code."""
        session = StubSession({"/navigation/UM/nwissite": StubResponse(503)})
        client = NLDIClient(session=session)
        with pytest.raises(RemoteFetchError) as excinfo:
            client.navigate("101", "UM", "nwissite", 10)
        assert excinfo.value.status_code == 503

    def test_timeout(self):
        """Test that a timeout becomes RemoteFetchError."""
        client = NLDIClient(timeout=0.5, session=StubSession(error=requests.exceptions.Timeout()))
        with pytest.raises(RemoteFetchError, match="Timed out"):
            client.comid_at(-89.4, 43.1)

    def test_invalid_json(self):
        """Test that an unparseable body raises RemoteFetchError."""
        session = StubSession({"/comid/position": StubResponse(invalid_json=True)})
        with pytest.raises(RemoteFetchError, match="Invalid JSON"):
            NLDIClient(session=session).comid_at(-89.4, 43.1)

    def test_from_config(self):
        """Test building a client from FetchConfig."""
        client = NLDIClient.from_config(FetchConfig(timeout=5, nldi_url="https://nldi.test/"))
        assert client.timeout == 5
        assert client.nldi_url == "https://nldi.test"

    def test_daily_values_request(self):
        """Test the NWIS daily-values query parameters."""
        session = StubSession({"/nwis/dv/": StubResponse(payload=_waterml())})
        client = NLDIClient(session=session)
        df = client.daily_values(["05428500"], "00060", "2020-01-01", "2020-01-31")
        _, params, _ = session.requests[0]
        assert params["sites"] == "05428500"
        assert params["parameterCd"] == "00060"
        assert params["startDT"] == "2020-01-01"
        assert params["endDT"] == "2020-01-31"
        assert len(df) == 1

    def test_timeout_isolated_per_origin(self):
        """Test that a timing-out client yields per-origin failures in a batch."""
        from shapely.geometry import Point

        from hydrosmith.objects.geocollection import GeometryCollection

        client = NLDIClient(session=StubSession(error=requests.exceptions.Timeout()))
        origins = GeometryCollection(
            geometries=[Point(-89.4, 43.1), Point(-90.0, 44.0)],
            attributes=pd.DataFrame({"id": ["a", "b"]}),
            crs="EPSG:4326",
        )
        batch = FetchTask(client).fetch_many(origins, id_col="id")
        assert len(batch.failures) == 2
        assert all(r.is_empty for r in batch.results)


class TestParseDailyValues:
    """Tests for parse_daily_values."""

    def test_parse(self):
        """Test flattening WaterML JSON."""
        df = parse_daily_values(
            _waterml(values=(("2020-01-01T00:00:00.000", "12.5"), ("2020-01-02T00:00:00.000", "13")))
        )
        assert list(df.columns) == DAILY_VALUE_COLUMNS
        assert df["site_no"].tolist() == ["05428500", "05428500"]
        assert df["station_nm"].iloc[0] == "YAHARA RIVER"
        assert df["date"].tolist() == [pd.Timestamp("2020-01-01"), pd.Timestamp("2020-01-02")]
        assert df["value"].tolist() == [12.5, 13.0]
        assert df["qualifiers"].iloc[0] == "A"

    def test_no_data_value(self):
        """Test that the no-data sentinel becomes NaN."""
        df = parse_daily_values(_waterml(values=(("2020-01-01T00:00:00.000", "-999999"),)))
        assert math.isnan(df["value"].iloc[0])

    def test_empty(self):
        """Test that a missing payload gives an empty frame."""
        df = parse_daily_values(None)
        assert df.empty
        assert list(df.columns) == DAILY_VALUE_COLUMNS

    def test_no_series(self):
        """Test a response with no time series."""
        df = parse_daily_values({"value": {"timeSeries": []}})
        assert df.empty
