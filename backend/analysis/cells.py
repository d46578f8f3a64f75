# backend/analysis/cells.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union

import numpy as np
import pandas as pd

MISSING_CATEGORY = "Unknown/No-category"


# ---------- cell union ----------

@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Number:
    value: float


Cell = Union[Empty, Text, Number]

EMPTY = Empty()


def _finite_float(text: str) -> float | None:
    if "_" in text:
        return None
    try:
        v = float(text)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def parse_cell(value: Any) -> Cell:
    """
    Classify one raw spreadsheet value.
      - None / NaN / blank string   -> Empty
      - finite number, numeric text -> Number
      - anything else               -> Text
    """
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return EMPTY
    if isinstance(value, (bool, np.bool_)):
        return Text(str(value))
    if isinstance(value, (int, float, np.integer, np.floating)):
        v = float(value)
        return Number(v) if math.isfinite(v) else Text(str(value))
    s = str(value).strip()
    if not s:
        return EMPTY
    v = _finite_float(s)
    if v is not None:
        return Number(v)
    return Text(s)


def is_empty(cell: Cell) -> bool:
    return isinstance(cell, Empty)


def as_number(cell: Cell) -> float:
    # anything that is not a Number counts as 0
    if isinstance(cell, Number):
        return cell.value
    return 0.0


def _format_number(v: float) -> str:
    if v.is_integer():
        return str(int(v))
    return repr(v)


def cell_label(cell: Cell) -> str:
    if isinstance(cell, Number):
        return _format_number(cell.value)
    if isinstance(cell, Text):
        return cell.value
    return MISSING_CATEGORY


def to_number(value: Any) -> float:
    return as_number(parse_cell(value))


def to_label(value: Any) -> str:
    return cell_label(parse_cell(value))


def json_safe(value: Any) -> Any:
    """Plain python value for JSON responses (NaN -> None, numpy scalars unwrapped)."""
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating, float)):
        v = float(value)
        return v if math.isfinite(v) else None
    if isinstance(value, np.bool_):
        return bool(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
