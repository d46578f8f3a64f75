# backend/analysis/charts.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

import settings
from analysis.cells import is_empty, json_safe, parse_cell
from analysis.columns import ColumnClassification, classify
from analysis.series import (
    Series,
    aggregate,
    normalize_operation,
    numeric_values,
    py_number,
    round_half_up,
    row_labels,
)

logger = logging.getLogger("charts")

CHART_TYPES = {"bar", "pie", "line"}

COMPARISON_ROWS = 10
GROUPED_METRICS_TOP = 8
GROUPED_TOP = 10
DISTRIBUTION_ROWS = 15
MULTI_NUMERIC_ROWS = 8
MULTI_NUMERIC_SERIES = 3
SAMPLE_ROWS = 3

DEMO_LABELS = ["Category A", "Category B", "Category C", "Category D", "Category E"]

# a KPI whose title asks for one of these wants raw rows side by side, not groups
_COMPARISON_WORDS = re.compile(
    r"(\bvs\.?\b|\bversus\b|compar|relaci[oó]n|relationship|correla|\bratio\b)",
    re.I,
)


class SelectionCase(str, Enum):
    KPI_CONFIG = "kpi_config"
    NUMERIC_COMPARISON = "numeric_comparison"
    GROUPED_AVERAGES = "grouped_averages"
    GROUPED_SUM = "grouped_sum"
    NUMERIC_DISTRIBUTION = "numeric_distribution"
    NUMERIC_MULTI = "numeric_multi"
    CATEGORY_COUNTS = "category_counts"
    FALLBACK = "fallback"


CASE_DESCRIPTIONS = {
    SelectionCase.KPI_CONFIG: "Chart configuration suggested with the KPI",
    SelectionCase.NUMERIC_COMPARISON: "Comparison of two numeric columns over the first records",
    SelectionCase.GROUPED_AVERAGES: "Averages of two numeric columns per category",
    SelectionCase.GROUPED_SUM: "Total of a numeric column per category",
    SelectionCase.NUMERIC_DISTRIBUTION: "Values of the only numeric column",
    SelectionCase.NUMERIC_MULTI: "Several numeric columns over a sample of records",
    SelectionCase.CATEGORY_COUNTS: "Number of records per category",
    SelectionCase.FALLBACK: "Demo data (no usable columns found)",
}


@dataclass
class ChartPayload:
    labels: List[str] = field(default_factory=list)
    series: List[Series] = field(default_factory=list)
    chart_type: str = "bar"
    title: str = ""

    def is_consistent(self) -> bool:
        return all(len(s) == len(self.labels) for s in self.series)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.chart_type,
            "title": self.title,
            "labels": list(self.labels),
            "datasets": [s.to_dict() for s in self.series],
        }


@dataclass
class ChartResult:
    payload: ChartPayload
    case: SelectionCase
    columns: List[str] = field(default_factory=list)
    sample: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        return self.case == SelectionCase.FALLBACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chart": self.payload.to_dict(),
            "case": self.case.value,
            "case_description": CASE_DESCRIPTIONS[self.case],
            "is_fallback": self.is_fallback,
            "columns": list(self.columns),
            "sample": self.sample,
        }


# ---------- helpers ----------

def wants_comparison(title: Optional[str]) -> bool:
    return bool(title) and bool(_COMPARISON_WORDS.search(title))


def _hint(config: Any, name: str) -> Any:
    if config is None:
        return None
    if isinstance(config, Mapping):
        return config.get(name)
    return getattr(config, name, None)


def _sample(df: Optional[pd.DataFrame], cols: Sequence[str]) -> List[Dict[str, Any]]:
    if df is None or df.empty:
        return []
    used = [c for c in cols if c in df.columns]
    if not used:
        return []
    head = df[used].head(SAMPLE_ROWS)
    return [{c: json_safe(v) for c, v in rec.items()} for rec in head.to_dict(orient="records")]


def _result(df, payload: ChartPayload, case: SelectionCase, cols: Sequence[str]) -> ChartResult:
    return ChartResult(payload=payload, case=case, columns=list(cols), sample=_sample(df, cols))


def pick_dimension(cls: ColumnClassification) -> Optional[str]:
    """First categorical column that is not also numeric, else the first categorical one."""
    pure = [c for c in cls.categorical if c not in cls.numeric]
    candidates = pure or cls.categorical
    return candidates[0] if candidates else None


# ---------- KPI chart configuration ----------

def _column_totals(df: pd.DataFrame, names: List[str], op: str) -> List[Any]:
    out = []
    for c in names:
        if op == "count":
            out.append(int(sum(0 if is_empty(parse_cell(v)) else 1 for v in df[c].tolist())))
        elif op == "sum":
            out.append(py_number(numeric_values(df, c).sum()))
        else:
            out.append(round_half_up(float(numeric_values(df, c).mean())))
    return out


def build_from_config(
    df: Optional[pd.DataFrame],
    columns: Sequence[str],
    title: str,
    config: Any,
) -> Optional[ChartResult]:
    """
    Honor the chart hint that came with a KPI.
    Returns None when the hint is missing or does not fit the uploaded columns.
    """
    if config is None or df is None or df.empty:
        return None
    x = _hint(config, "xAxisColumn")
    y = _hint(config, "yAxisColumn")
    op = normalize_operation(_hint(config, "yAxisOperation") or "count")
    chart_type = str(_hint(config, "chartType") or "bar").lower()
    if chart_type not in CHART_TYPES:
        chart_type = "bar"
    if op is None:
        return None

    available = [c for c in columns if c in df.columns]

    if isinstance(x, (list, tuple)):
        names = [str(c) for c in x]
        if not names or any(c not in available for c in names):
            return None
        series = Series(label=title or op, values=_column_totals(df, names, op), keys=names)
        payload = ChartPayload(labels=names, series=[series], chart_type=chart_type, title=title)
        return _result(df, payload, SelectionCase.KPI_CONFIG, names)

    if not isinstance(x, str) or x not in available:
        return None

    if op == "count":
        series = aggregate(df, None, "count", group_by=x, limit=GROUPED_TOP, label=title or f"Count by {x}")
        used = [x]
    else:
        if not isinstance(y, str) or y not in available:
            return None
        series = aggregate(df, y, op, group_by=x, limit=GROUPED_TOP, label=f"{title} ({y})" if title else y)
        used = [x, y]

    payload = ChartPayload(labels=list(series.keys), series=[series], chart_type=chart_type, title=title)
    return _result(df, payload, SelectionCase.KPI_CONFIG, used)


# ---------- heuristic cases ----------

def _fallback(title: str, rng: Optional[np.random.Generator]) -> ChartResult:
    rng = rng if rng is not None else np.random.default_rng(settings.FALLBACK_SEED)
    first = [int(v) for v in rng.integers(10, 110, size=len(DEMO_LABELS))]
    second = [int(v) for v in rng.integers(10, 110, size=len(DEMO_LABELS))]
    payload = ChartPayload(
        labels=list(DEMO_LABELS),
        series=[
            Series(label="Demo series 1", values=first, keys=list(DEMO_LABELS)),
            Series(label="Demo series 2", values=second, keys=list(DEMO_LABELS)),
        ],
        title=title,
    )
    return ChartResult(payload=payload, case=SelectionCase.FALLBACK)


def _heuristic(
    df: Optional[pd.DataFrame],
    cls: ColumnClassification,
    title: str,
    rng: Optional[np.random.Generator],
) -> ChartResult:
    dimension = pick_dimension(cls)
    measures = [c for c in cls.numeric if c != dimension]

    if len(measures) >= 2 and wants_comparison(title):
        cols = measures[:2]
        series = [aggregate(df, c, "sum", limit=COMPARISON_ROWS, label=c) for c in cols]
        payload = ChartPayload(labels=row_labels(len(series[0])), series=series, title=title)
        return _result(df, payload, SelectionCase.NUMERIC_COMPARISON, cols)

    if dimension and len(measures) >= 2:
        cols = measures[:2]
        counts = aggregate(df, None, "count", group_by=dimension, limit=GROUPED_METRICS_TOP)
        series = [
            aggregate(df, c, "average", group_by=dimension, limit=None).reindex(counts.keys, label=f"Average {c}")
            for c in cols
        ]
        payload = ChartPayload(labels=list(counts.keys), series=series, title=title)
        return _result(df, payload, SelectionCase.GROUPED_AVERAGES, [dimension] + cols)

    if dimension and measures:
        value_col = measures[0]
        series = aggregate(
            df, value_col, "sum", group_by=dimension, limit=GROUPED_TOP,
            label=f"{title} ({value_col})" if title else value_col,
        )
        payload = ChartPayload(labels=list(series.keys), series=[series], title=title)
        return _result(df, payload, SelectionCase.GROUPED_SUM, [dimension, value_col])

    if measures:
        if len(measures) == 1:
            series = aggregate(df, measures[0], "sum", limit=DISTRIBUTION_ROWS, label=measures[0])
            payload = ChartPayload(labels=row_labels(len(series)), series=[series], title=title)
            return _result(df, payload, SelectionCase.NUMERIC_DISTRIBUTION, measures[:1])
        cols = measures[:MULTI_NUMERIC_SERIES]
        series = [aggregate(df, c, "sum", limit=MULTI_NUMERIC_ROWS, label=c) for c in cols]
        payload = ChartPayload(labels=row_labels(len(series[0])), series=series, title=title)
        return _result(df, payload, SelectionCase.NUMERIC_MULTI, cols)

    if dimension:
        series = aggregate(df, None, "count", group_by=dimension, limit=GROUPED_TOP, label=f"Count by {dimension}")
        payload = ChartPayload(labels=list(series.keys), series=[series], title=title)
        return _result(df, payload, SelectionCase.CATEGORY_COUNTS, [dimension])

    return _fallback(title, rng)


def build(
    df: Optional[pd.DataFrame],
    columns: Sequence[str],
    kpi_title: str = "",
    chart_config: Any = None,
    rng: Optional[np.random.Generator] = None,
) -> ChartResult:
    """
    Chart payload for a KPI over the uploaded rows.

    A usable KPI chart hint wins; otherwise the first matching case of:
    numeric comparison, grouped averages, grouped sum, numeric-only,
    categorical-only, demo fallback. Never raises.
    """
    title = (kpi_title or "").strip()
    columns = list(columns or [])
    try:
        result = build_from_config(df, columns, title, chart_config)
        if result is None:
            result = _heuristic(df, classify(df, columns), title, rng)
    except Exception:
        logger.exception("Chart build failed for KPI %r; using demo data", title)
        result = _fallback(title, rng)
    logger.info("Chart for %r: case=%s columns=%s", title, result.case.value, result.columns)
    return result
