import math
from datetime import datetime, timezone

import pytest

from reportflow.workers.graph.nodes.profile import (
    calculate_quality_score,
    infer_column_type,
    median,
    population_std_dev,
    profile_column,
    profile_input,
    profile_records,
    suggest_charts,
)
from reportflow.workers.graph.core.types import ColumnProfile


def test_median_of_even_and_odd_lengths():
    assert median([3, 1, 2]) == 2
    assert median([4, 1, 3, 2]) == 2.5
    with pytest.raises(ValueError):
        median([])


def test_population_std_dev():
    assert population_std_dev([2, 4, 4, 4, 5, 5, 7, 9]) == 2.0
    assert population_std_dev([]) == 0.0


@pytest.mark.parametrize(
    "values, expected",
    [
        ([None, "", float("nan")], "unknown"),
        (["2024-01-01", "2024/02/03", "2024-03-04T10:00:00", "2024-04-05", "n/a"], "datetime"),
        ([True, False, True, True, None], "boolean"),
        ([1, "2", 3.5, "4e2", 5], "numeric"),
        (["a", "b"] * 6, "categorical"),
        (["a", "b", "c"], "text"),
    ],
)
def test_infer_column_type(values, expected):
    assert infer_column_type(values) == expected


def test_date_detection_wins_over_numbers():
    stamps = [datetime(2024, 1, day, tzinfo=timezone.utc) for day in range(1, 6)]
    assert infer_column_type(stamps) == "datetime"
    # bare years are not dates
    assert infer_column_type(["2021", "2022", "2023"]) == "numeric"


def test_booleans_are_never_numeric():
    assert infer_column_type([True, False, True, True, True, 1]) == "boolean"


def test_numeric_column_statistics():
    column = profile_column("revenue", [10, 20, None, "30", 40])
    assert column.type == "numeric"
    assert column.null_count == 1
    assert column.unique_count == 4
    assert (column.min, column.max, column.mean, column.median) == (10.0, 40.0, 25.0, 25.0)
    assert math.isclose(column.std_dev, math.sqrt(125))
    assert "topValues" not in column.to_dict()


def test_categorical_column_top_values():
    values = ["north"] * 6 + ["south"] * 4 + ["east"] * 2
    column = profile_column("region", values)
    assert column.type == "categorical"
    assert column.top_values[0] == {"value": "north", "count": 6}
    payload = column.to_dict()
    assert "mean" not in payload
    assert [item["value"] for item in payload["topValues"]] == ["north", "south", "east"]


def test_quality_score_bounds():
    assert calculate_quality_score([], 0) == 0
    full = [ColumnProfile(name="a", type="numeric", null_count=0, unique_count=10)]
    assert calculate_quality_score(full, 10) == 100
    empty = [ColumnProfile(name="a", type="unknown", null_count=10, unique_count=0)]
    score = calculate_quality_score(empty, 10)
    assert 0 <= score <= 100
    # 100 - 30 (all null) - 20 (low uniqueness) - 20 (unknown)
    assert score == 30


def test_empty_records_produce_an_empty_profile():
    profile = profile_records([])
    assert profile.row_count == 0
    assert profile.data_quality_score == 0
    assert profile.suggested_charts == []


def test_chart_suggestions_follow_column_types():
    records = [
        {"day": f"2024-01-{index + 1:02d}", "region": ["north", "south", "east"][index % 3], "revenue": index * 10, "units": index}
        for index in range(12)
    ]
    profile = profile_records(records)
    kinds = [chart.type for chart in profile.suggested_charts]
    assert kinds == ["line", "line", "bar", "bar", "pie", "stacked_bar", "table"]
    line = profile.suggested_charts[0]
    assert (line.title, line.x_axis, line.y_axis) == ("revenue Over Time", "day", "revenue")
    stacked = profile.suggested_charts[5].to_dict()
    assert stacked["yAxis"] == ["revenue", "units"]


def test_chart_suggestions_are_capped():
    numeric = [ColumnProfile(name=f"m{index}", type="numeric") for index in range(5)]
    categorical = [ColumnProfile(name=f"c{index}", type="categorical", unique_count=3) for index in range(3)]
    dates = [ColumnProfile(name="when", type="datetime")]
    suggestions = suggest_charts(dates + numeric + categorical, has_records=True)
    assert len(suggestions) == 8
    assert suggestions[0].type == "line"


def test_profile_input_merges_blocks():
    blocks = [
        {"type": "structured", "format": "json", "data": [{"a": 1}, {"a": 2}]},
        {"type": "structured", "format": "csv", "data": "a,b\n3,x\n"},
        {"type": "unstructured", "content": "Analyst notes"},
    ]
    profile, normalized = profile_input(blocks)
    assert profile.row_count == 3
    assert [column.name for column in profile.columns] == ["a", "b"]
    assert profile.column("b").null_count == 2
    assert normalized.text_blocks == ["Analyst notes"]
