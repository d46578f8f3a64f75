import pandas as pd

from analysis.columns import classify, is_categorical_column, is_numeric_column


def _df(rows):
    return pd.DataFrame(rows)


def test_region_sales_classification():
    df = _df([
        {"region": "East", "sales": 100},
        {"region": "West", "sales": 50},
        {"region": "East", "sales": 30},
    ])
    out = classify(df, ["region", "sales"])
    assert out.numeric == ["sales"]
    assert out.categorical == ["region"]


def test_empty_rows_give_empty_classification():
    out = classify(pd.DataFrame(), ["a", "b"])
    assert out.numeric == []
    assert out.categorical == []
    assert classify(None, ["a"]).to_dict() == {"numeric": [], "categorical": []}


def test_unique_ids_are_never_categorical():
    df = _df([{"id": f"A{i}"} for i in range(15)])
    assert not is_categorical_column(df, "id")


def test_single_distinct_value_is_not_categorical():
    df = _df([{"status": "open"} for _ in range(10)] + [{"status": ""}])
    assert not is_categorical_column(df, "status")


def test_cardinality_ceiling():
    within = _df([{"c": f"v{i % 20}"} for i in range(40)])
    above = _df([{"c": f"v{i % 21}"} for i in range(42)])
    assert is_categorical_column(within, "c")
    assert not is_categorical_column(above, "c")


def test_numeric_ratio_threshold():
    """More than 30% of the sampled rows must hold numbers."""
    three = _df([{"x": v} for v in [1, 2, 3] + ["a"] * 7])
    four = _df([{"x": v} for v in [1, 2, 3, 4] + ["a"] * 6])
    assert not is_numeric_column(three, "x")
    assert is_numeric_column(four, "x")


def test_numeric_sample_window_is_first_50_rows():
    df = _df([{"x": "text"} for _ in range(50)] + [{"x": i} for i in range(100)])
    assert not is_numeric_column(df, "x")


def test_numeric_text_counts_as_numeric():
    df = _df([{"amount": s} for s in ["10", " 20.5", "30", "", "n/a"]])
    assert is_numeric_column(df, "amount")


def test_column_can_be_numeric_and_categorical():
    df = _df([{"rating": v} for v in [1, 2, 1, 2, 3, 1]])
    out = classify(df, ["rating"])
    assert out.numeric == ["rating"]
    assert out.categorical == ["rating"]


def test_missing_column_is_neither():
    df = _df([{"a": 1}, {"a": 2}])
    out = classify(df, ["nope"])
    assert out.numeric == [] and out.categorical == []


def test_classification_is_deterministic():
    df = _df([{"k": f"g{i % 3}", "v": i} for i in range(30)])
    assert classify(df, ["k", "v"]) == classify(df, ["k", "v"])
