"""Client for the USGS Network Linked Data Index and NWIS daily values.

Layer 4: Workflows - network access lives here.

Endpoints used:
- ``{nldi}/comid/position?coords=POINT(lon lat)``: network segment at a point
- ``{nldi}/comid/{comid}/navigation/{mode}/{source}?distance=km``: linked
  features (sites, flowlines) along an upstream/downstream navigation
- ``{nwis}?format=json&sites=...&parameterCd=...&startDT=...``: daily values
"""

import logging
from typing import Any, Optional, Sequence

import pandas as pd
import requests

from hydrosmith.config import DEFAULT_NLDI_URL, DEFAULT_NWIS_DV_URL, FetchConfig
from hydrosmith.tasks.fetchtask import DAILY_VALUE_COLUMNS
from hydrosmith.utils.errors import RemoteFetchError

logger = logging.getLogger(__name__)

USER_AGENT = "hydrosmith (python-requests)"
# NWIS statistic code for the daily mean
DAILY_MEAN = "00003"


class NLDIClient:
    """Implements the LinkedDataSource protocol against USGS web services.

    Example:
        >>> client = NLDIClient(timeout=30)
        >>> comid = client.comid_at(-105.27, 40.01)
        >>> sites = client.navigate(comid, "UM", "nwissite", distance_km=50)
    """

    def __init__(
        self,
        nldi_url: str = DEFAULT_NLDI_URL,
        nwis_url: str = DEFAULT_NWIS_DV_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            nldi_url: Base URL of the NLDI linked-data API.
            nwis_url: URL of the NWIS daily-values service.
            timeout: Per-request timeout in seconds.
            session: Optional requests Session (shared connection pool).
        """
        self.nldi_url = nldi_url.rstrip("/")
        self.nwis_url = nwis_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    @classmethod
    def from_config(cls, config: FetchConfig) -> "NLDIClient":
        return cls(nldi_url=config.nldi_url, nwis_url=config.nwis_url, timeout=config.timeout)

    def _get_json(
        self, url: str, params: Optional[dict[str, Any]] = None, allow_404: bool = False
    ) -> Optional[dict[str, Any]]:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise RemoteFetchError(f"Timed out after {self.timeout}s: {url}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteFetchError(f"Request failed: {url}: {e}") from e

        if response.status_code == 404 and allow_404:
            return None
        if response.status_code >= 400:
            raise RemoteFetchError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteFetchError(f"Invalid JSON from {url}") from e

    def comid_at(self, lon: float, lat: float) -> str:
        """NHDPlus COMID of the flowline at a WGS84 position.

        Raises:
            RemoteFetchError: If the request fails or no flowline is found.
        """
        payload = self._get_json(
            f"{self.nldi_url}/comid/position",
            params={"coords": f"POINT({lon} {lat})"},
            allow_404=True,
        )
        features = (payload or {}).get("features") or []
        if not features:
            raise RemoteFetchError(f"No flowline found at ({lon}, {lat})", status_code=404)
        props = features[0].get("properties") or {}
        comid = props.get("comid") or props.get("identifier")
        if comid is None:
            raise RemoteFetchError(f"Response for ({lon}, {lat}) has no COMID")
        logger.debug(f"({lon}, {lat}) -> COMID {comid}")
        return str(comid)

    def navigate(
        self, comid: str, mode: str, data_source: str, distance_km: float
    ) -> list[dict[str, Any]]:
        """GeoJSON features along a navigation from ``comid``.

        A navigation that finds nothing returns an empty list.
        """
        url = f"{self.nldi_url}/comid/{comid}/navigation/{mode}/{data_source}"
        payload = self._get_json(url, params={"distance": distance_km}, allow_404=True)
        features = (payload or {}).get("features") or []
        logger.debug(f"{mode} {data_source} from COMID {comid}: {len(features)} features")
        return features

    def daily_values(
        self,
        site_ids: Sequence[str],
        parameter_code: str,
        start_date: str,
        end_date: Optional[str] = None,
    ) -> pd.DataFrame:
        """Daily values for sites, one row per site/parameter/day.

        Sites or windows without data produce no rows.
        """
        params = {
            "format": "json",
            "sites": ",".join(site_ids),
            "parameterCd": parameter_code,
            "statCd": DAILY_MEAN,
            "startDT": start_date,
            "siteStatus": "all",
        }
        if end_date is not None:
            params["endDT"] = end_date
        payload = self._get_json(self.nwis_url, params=params, allow_404=True)
        return parse_daily_values(payload)


def parse_daily_values(payload: Optional[dict[str, Any]]) -> pd.DataFrame:
    """Flatten an NWIS WaterML-JSON response into long-form rows.

    No-data sentinel values become NaN.
    """
    if not payload:
        return pd.DataFrame(columns=DAILY_VALUE_COLUMNS)

    rows = []
    for series in payload.get("value", {}).get("timeSeries", []):
        source_info = series.get("sourceInfo", {})
        site_code = (source_info.get("siteCode") or [{}])[0]
        variable = series.get("variable", {})
        parameter = (variable.get("variableCode") or [{}])[0].get("value")
        no_data = variable.get("noDataValue")

        for block in series.get("values", []):
            for obs in block.get("value", []):
                try:
                    value = float(obs.get("value"))
                except (TypeError, ValueError):
                    value = float("nan")
                if no_data is not None and value == no_data:
                    value = float("nan")
                rows.append(
                    {
                        "agency_cd": site_code.get("agencyCode"),
                        "site_no": site_code.get("value"),
                        "station_nm": source_info.get("siteName"),
                        "parameter_cd": parameter,
                        "date": obs.get("dateTime"),
                        "value": value,
                        "qualifiers": ",".join(obs.get("qualifiers") or []),
                    }
                )

    df = pd.DataFrame(rows, columns=DAILY_VALUE_COLUMNS)
    # daily values carry midnight timestamps; keep the calendar day only
    df["date"] = pd.to_datetime(df["date"].astype(str).str.slice(0, 10))
    return df
