"""Layer 3: Tasks - User intent translation.

Tasks translate user intent into object creation and primitive calls.
Tasks must not import matplotlib, geopandas or requests; remote access goes
through the LinkedDataSource protocol.
"""

from hydrosmith.tasks.fetchtask import (
    DISCHARGE,
    GAGE_HEIGHT,
    WATER_TEMPERATURE,
    FetchTask,
    LinkedDataSource,
    features_to_collection,
    strip_agency_prefix,
)
from hydrosmith.tasks.harmonizetask import HarmonizeTask
from hydrosmith.tasks.jointask import JoinTask
from hydrosmith.tasks.nearesttask import NearestTask

__all__ = [
    "DISCHARGE",
    "FetchTask",
    "GAGE_HEIGHT",
    "HarmonizeTask",
    "JoinTask",
    "LinkedDataSource",
    "NearestTask",
    "WATER_TEMPERATURE",
    "features_to_collection",
    "strip_agency_prefix",
]
