# backend/analysis/series.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from analysis.cells import MISSING_CATEGORY, to_label, to_number

TOP_N = 10

_ALLOWED_OPS = {
    "count": "count",
    "sum": "sum", "total": "sum",
    "average": "average", "avg": "average", "mean": "average",
}

Value = Union[int, float]


@dataclass
class Series:
    label: str
    values: List[Value] = field(default_factory=list)
    keys: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)

    def reindex(self, keys: Sequence[str], label: Optional[str] = None) -> "Series":
        """Align to another key order; keys this series never saw get 0."""
        lookup = dict(zip(self.keys, self.values))
        return Series(
            label=self.label if label is None else label,
            values=[lookup.get(k, 0) for k in keys],
            keys=list(keys),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "data": list(self.values)}


def normalize_operation(op: str) -> Optional[str]:
    return _ALLOWED_OPS.get((op or "").lower().strip())


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def py_number(v: Any) -> Value:
    f = float(v)
    return int(f) if f.is_integer() else f


def row_labels(n: int) -> List[str]:
    return [f"Record {i + 1}" for i in range(n)]


def numeric_values(df: pd.DataFrame, col: Optional[str]) -> pd.Series:
    """Numeric view of a column; missing column or unparseable cells -> 0."""
    if df is None:
        return pd.Series([], dtype="float64")
    if not col or col not in df.columns:
        return pd.Series(0.0, index=df.index, dtype="float64")
    return df[col].map(to_number).astype("float64")


def group_keys(df: pd.DataFrame, col: Optional[str]) -> pd.Series:
    if not col or col not in df.columns:
        return pd.Series(MISSING_CATEGORY, index=df.index, dtype="object")
    return df[col].map(to_label).astype("object")


def aggregate(
    df: Optional[pd.DataFrame],
    column: Optional[str],
    operation: str,
    group_by: Optional[str] = None,
    limit: Optional[int] = TOP_N,
    label: Optional[str] = None,
) -> Series:
    """
    count / sum / average of `column`, either per group of `group_by` or per row.

    Grouped results are sorted by value descending (stable, so ties keep the
    order in which the keys were first seen) and then cut to `limit`.
    Row-indexed results keep file order and are cut to the first `limit` rows.
    """
    op = normalize_operation(operation)
    if op is None:
        raise ValueError(f"unknown operation '{operation}'")
    label = label or (f"{op} of {column}" if column else op)

    if df is None or df.empty:
        return Series(label=label)

    if group_by is None:
        rows = df if limit is None else df.head(limit)
        if op == "count":
            values = [1] * len(rows)
        elif op == "sum":
            values = [py_number(v) for v in numeric_values(rows, column).tolist()]
        else:
            values = [round_half_up(v) for v in numeric_values(rows, column).tolist()]
        return Series(label=label, values=values, keys=row_labels(len(rows)))

    frame = pd.DataFrame({"key": group_keys(df, group_by), "value": numeric_values(df, column)})
    grouped = frame.groupby("key", sort=False)["value"]
    if op == "count":
        agg = grouped.size()
    elif op == "sum":
        agg = grouped.sum()
    else:
        agg = (grouped.sum() / grouped.size()).map(round_half_up)

    agg = agg.sort_values(ascending=False, kind="stable")
    if limit is not None:
        agg = agg.head(limit)
    return Series(
        label=label,
        values=[py_number(v) for v in agg.tolist()],
        keys=[str(k) for k in agg.index.tolist()],
    )
