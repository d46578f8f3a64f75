# backend/analysis/columns.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pandas as pd

import settings
from analysis.cells import Number, cell_label, is_empty, parse_cell

NUMERIC_SAMPLE = 50
CATEGORY_SAMPLE = 100


@dataclass
class ColumnClassification:
    numeric: List[str] = field(default_factory=list)
    categorical: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"numeric": list(self.numeric), "categorical": list(self.categorical)}


def _sample_cells(df: pd.DataFrame, col: str, n: int) -> list:
    head = df.head(n)
    if col not in head.columns:
        return [parse_cell(None)] * len(head)
    return [parse_cell(v) for v in head[col].tolist()]


def is_numeric_column(df: pd.DataFrame, col: str, ratio: Optional[float] = None) -> bool:
    ratio = settings.NUMERIC_RATIO if ratio is None else ratio
    cells = _sample_cells(df, col, NUMERIC_SAMPLE)
    if not cells:
        return False
    hits = sum(1 for c in cells if isinstance(c, Number))
    return hits > ratio * len(cells)


def is_categorical_column(df: pd.DataFrame, col: str, ceiling: Optional[int] = None) -> bool:
    ceiling = settings.CATEGORY_CEILING if ceiling is None else ceiling
    present = [c for c in _sample_cells(df, col, CATEGORY_SAMPLE) if not is_empty(c)]
    distinct = {cell_label(c) for c in present}
    # needs repetition: an all-unique column (ids, names) is not a dimension
    return 1 < len(distinct) <= ceiling and len(distinct) < len(present)


def classify(df: Optional[pd.DataFrame], columns: Sequence[str]) -> ColumnClassification:
    out = ColumnClassification()
    if df is None or df.empty:
        return out
    for col in columns:
        if is_numeric_column(df, col):
            out.numeric.append(col)
        if is_categorical_column(df, col):
            out.categorical.append(col)
    return out
