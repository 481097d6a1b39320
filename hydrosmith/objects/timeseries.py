"""Long-form daily observation panels keyed by entity and date.

An ObservationPanel is a DataFrame with an entity key column plus a date
column, in the spirit of an entity/time panel. Measurement columns hold
values; metadata columns describe the entity (site name, agency, ...).
"""

from dataclasses import dataclass, field
from typing import Optional

import pandas as pd


@dataclass(frozen=True)
class ObservationPanel:
    """Daily observations in long form.

    Attributes:
        data: DataFrame with entity, date and value columns.
        entity_col: Name of the entity key column. Defaults to 'site_no'.
        date_col: Name of the date column. Defaults to 'date'.
        value_cols: Measurement columns. Never filled across gaps.
        metadata_cols: Entity-level columns carried onto inserted rows.
        parameter_col: Optional parameter code column; each parameter is
            treated as its own series within an entity.
    """

    data: pd.DataFrame
    entity_col: str = "site_no"
    date_col: str = "date"
    value_cols: tuple[str, ...] = ("value",)
    metadata_cols: tuple[str, ...] = field(default_factory=tuple)
    parameter_col: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate ObservationPanel parameters."""
        if not isinstance(self.data, pd.DataFrame):
            raise ValueError(f"data must be pandas DataFrame, got {type(self.data)}")

        object.__setattr__(self, "value_cols", tuple(self.value_cols))
        object.__setattr__(self, "metadata_cols", tuple(self.metadata_cols))

        required = [self.entity_col, self.date_col, *self.value_cols, *self.metadata_cols]
        if self.parameter_col is not None:
            required.append(self.parameter_col)
        missing = [col for col in required if col not in self.data.columns]
        if missing:
            raise ValueError(
                f"Columns {missing} not found in DataFrame. "
                f"Available columns: {list(self.data.columns)}"
            )

        overlap = set(self.value_cols) & set(self.metadata_cols)
        if overlap:
            raise ValueError(
                f"Columns {sorted(overlap)} cannot be both value and metadata columns"
            )

        if not pd.api.types.is_datetime64_any_dtype(self.data[self.date_col]):
            data = self.data.copy()
            data[self.date_col] = pd.to_datetime(data[self.date_col])
            object.__setattr__(self, "data", data)

    @property
    def group_cols(self) -> list[str]:
        """Columns identifying one independent series."""
        if self.parameter_col is None:
            return [self.entity_col]
        return [self.entity_col, self.parameter_col]

    @property
    def n_entities(self) -> int:
        return int(self.data[self.entity_col].nunique())

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ObservationPanel(n_entities={self.n_entities}, n_rows={len(self.data)}, "
            f"entity_col='{self.entity_col}')"
        )
