"""Gap-aware normalization of irregular daily series.

Expanding each entity onto a complete daily calendar makes missing days
explicit rows, so a line plot breaks at a gap instead of drawing a straight
segment across it. Measurement values are never invented; only entity
metadata is carried onto the inserted rows.
"""

import logging

import numpy as np
import pandas as pd

from hydrosmith.objects.timeseries import ObservationPanel
from hydrosmith.utils.errors import DataValidationError, raise_validation_error

logger = logging.getLogger(__name__)

OBSERVED_COL = "observed"


def complete_daily_grid(panel: ObservationPanel) -> pd.DataFrame:
    """Expand every series in a panel to a contiguous daily sequence.

    Each series (entity, or entity and parameter when the panel has a
    parameter column) runs from its own first to last observed day, inclusive.
    Days without an observation get a row whose value columns are NaN and
    whose metadata columns are forward-filled from earlier rows of the same
    series. Nothing is filled across series boundaries.

    Args:
        panel: Observations to normalize.

    Returns:
        DataFrame with the panel's columns plus a boolean ``observed`` column,
        ordered by series (first appearance) then date.

    Raises:
        DataValidationError: If a series has two rows for the same day.

    Example:
        >>> panel = ObservationPanel(data=df, entity_col="site_no",
        ...                          value_cols=("value",), metadata_cols=("station_nm",))
        >>> daily = complete_daily_grid(panel)
        >>> daily.loc[~daily["observed"], "value"].isna().all()
        True
    """
    data = panel.data.copy()
    date_col = panel.date_col
    group_cols = panel.group_cols
    data[date_col] = data[date_col].dt.normalize()
    columns = list(data.columns) + [OBSERVED_COL]

    duplicated = data.duplicated(subset=group_cols + [date_col], keep=False)
    if duplicated.any():
        examples = data.loc[duplicated, group_cols + [date_col]].head(3)
        raise DataValidationError(
            f"{int(duplicated.sum())} rows share a series and day",
            suggestion="Aggregate to one value per day before normalizing",
            details={"examples": examples.to_dict("records")},
        )

    if data.empty:
        return pd.DataFrame(columns=columns)

    frames = []
    for key, group in data.groupby(group_cols, sort=False, dropna=False):
        key = key if isinstance(key, tuple) else (key,)
        group = group.set_index(date_col).sort_index()
        full_range = pd.date_range(group.index.min(), group.index.max(), freq="D")

        expanded = group.reindex(full_range)
        expanded.index.name = date_col
        expanded[OBSERVED_COL] = expanded.index.isin(group.index)
        for col, value in zip(group_cols, key):
            expanded[col] = value
        if panel.metadata_cols:
            meta = list(panel.metadata_cols)
            expanded[meta] = expanded[meta].ffill()

        n_gaps = int((~expanded[OBSERVED_COL]).sum())
        if n_gaps:
            logger.debug(f"Series {key} has {n_gaps} missing days")
        frames.append(expanded.reset_index())

    result = pd.concat(frames, ignore_index=True)[columns]
    logger.info(
        f"Normalized {len(frames)} series: {len(panel.data)} observations -> "
        f"{len(result)} daily rows"
    )
    return result


def gap_runs(
    daily: pd.DataFrame,
    group_cols: list[str],
    date_col: str = "date",
) -> pd.DataFrame:
    """Summarize runs of consecutive missing days in a normalized series.

    Args:
        daily: Output of :func:`complete_daily_grid`.
        group_cols: Columns identifying one series.
        date_col: Date column name.

    Returns:
        DataFrame with the group columns plus ``gap_start``, ``gap_end`` and
        ``n_days`` for each run of unobserved days.
    """
    if OBSERVED_COL not in daily.columns:
        raise_validation_error(
            f"Column '{OBSERVED_COL}' not found",
            expected="output of complete_daily_grid",
            received=f"columns {list(daily.columns)}",
        )

    records = []
    for key, group in daily.groupby(group_cols, sort=False, dropna=False):
        key = key if isinstance(key, tuple) else (key,)
        missing = ~group[OBSERVED_COL].to_numpy(dtype=bool)
        if not missing.any():
            continue
        dates = group[date_col].to_numpy()
        # run boundaries: where the missing flag switches on or off
        edges = np.diff(np.concatenate([[0], missing.astype(int), [0]]))
        starts = np.flatnonzero(edges == 1)
        ends = np.flatnonzero(edges == -1) - 1
        for start, end in zip(starts, ends):
            record = dict(zip(group_cols, key))
            record.update(
                gap_start=pd.Timestamp(dates[start]),
                gap_end=pd.Timestamp(dates[end]),
                n_days=int(end - start + 1),
            )
            records.append(record)

    return pd.DataFrame(records, columns=group_cols + ["gap_start", "gap_end", "n_days"])
