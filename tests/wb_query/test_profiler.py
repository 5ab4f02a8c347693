from __future__ import annotations

import math

import pytest

from wb_cli.shared.config import ProfilingThresholds
from wb_cli.wb_query.profiler import DetectedType, ProfileIssue, profile


def _single(values: list[object], thresholds: ProfilingThresholds | None = None):
    profiles = profile([{"col": value} for value in values], thresholds)
    assert len(profiles) == 1
    return profiles[0]


def test_numeric_column_with_one_null() -> None:
    result = profile([{"a": 1}, {"a": 2}, {"a": None}, {"a": 4}], ProfilingThresholds())[0]

    assert result.key == "a"
    assert result.null_rate_percent == 25
    assert result.detected_type is DetectedType.NUMBER
    assert result.min == 1
    assert result.max == 4
    assert ProfileIssue.HIGH_NULL not in result.issues


def test_high_null_threshold_is_inclusive() -> None:
    result = _single([None, "", "   ", "a", "b", "c", "d", "e", "f", "g"])
    assert result.null_count == 3
    assert result.null_rate_percent == pytest.approx(30)
    assert ProfileIssue.HIGH_NULL in result.issues


def test_nan_counts_as_null() -> None:
    result = _single([math.nan, 1.5])
    assert result.null_count == 1


def test_high_cardinality() -> None:
    values = [f"v{i}" for i in range(99)] + ["v0"]
    result = _single(values)
    assert result.distinct_count == 99
    assert ProfileIssue.HIGH_CARDINALITY in result.issues

    relaxed = _single(values, ProfilingThresholds(cardinality_rate_percent=99.5))
    assert ProfileIssue.HIGH_CARDINALITY not in relaxed.issues


def test_email_pattern_reported_at_twenty_percent() -> None:
    values = ["a@example.com", "b@example.com", "c@example.org"] + [f"word{i}" for i in range(7)]
    result = _single(values)
    assert [p.name for p in result.patterns] == ["email"]
    assert result.patterns[0].count == 3
    assert result.patterns[0].share_percent == pytest.approx(30)


def test_single_match_is_not_reported() -> None:
    values = ["a@example.com"] + [f"word{i}" for i in range(9)]
    assert _single(values).patterns == ()


def test_patterns_sorted_by_count() -> None:
    values = ["https://a.io", "http://b.io/x", "https://c.io", "x@y.co", "z@y.co", "plain"]
    result = _single(values)
    assert [p.name for p in result.patterns] == ["url", "email"]


def test_uuid_and_iban_shapes() -> None:
    uuids = _single(
        [
            "123e4567-e89b-12d3-a456-426614174000",
            "9F1C2B3A-4D5E-4F60-8A7B-1C2D3E4F5A6B",
            "not-a-uuid",
        ]
    )
    assert [p.name for p in uuids.patterns] == ["uuid"]

    ibans = _single(["DE89 3704 0044 0532 0130 00", "GB29NWBK60161331926819", "nope"])
    assert [p.name for p in ibans.patterns] == ["iban"]


def test_number_type_counts_uncoercible_values_as_suspicious() -> None:
    result = _single([str(n) for n in range(10)] + ["oops"])
    assert result.detected_type is DetectedType.NUMBER
    assert result.suspicious_count == 1
    assert ProfileIssue.SUSPICIOUS_VALUES in result.issues
    assert result.min == 0
    assert result.max == 9


def test_date_type_requires_parseable_values() -> None:
    values = [f"2024-01-{day:02d}" for day in range(1, 11)] + ["2024-02-30"]
    result = _single(values)
    assert result.detected_type is DetectedType.DATE
    assert result.suspicious_count == 1
    assert result.min is None


def test_dotted_dates_are_date_like() -> None:
    result = _single(["03.04.2024", "31.12.2023", "01/02/24"])
    assert result.detected_type is DetectedType.DATE


def test_dominant_pattern_drives_suspicious_count() -> None:
    result = _single(["a@x.io", "b@x.io", "c@x.io", "d@x.io", "broken-address"])
    assert result.detected_type is DetectedType.TEXT
    assert result.suspicious_count == 1


def test_mixed_column_without_dominant_pattern_has_no_suspicious_values() -> None:
    result = _single(["1", "2", "apple", "pear", "plum", "fig", "kiwi", "lime"])
    assert result.detected_type is DetectedType.MIXED
    assert ProfileIssue.MIXED_TYPES in result.issues
    assert result.suspicious_count == 0
    assert ProfileIssue.SUSPICIOUS_VALUES not in result.issues


def test_top_values_break_ties_by_first_occurrence() -> None:
    result = _single(["b", "a", "b", "a", "c", "d"])
    assert [(t.value, t.count) for t in result.top_values] == [("b", 2), ("a", 2), ("c", 1)]


def test_values_are_trimmed_before_counting() -> None:
    result = _single([" x", "x ", "y"])
    assert result.distinct_count == 2


def test_all_null_column_is_unknown() -> None:
    result = _single([None, None])
    assert result.detected_type is DetectedType.UNKNOWN
    assert result.distinct_count == 0
    assert ProfileIssue.HIGH_NULL in result.issues
    assert ProfileIssue.HIGH_CARDINALITY not in result.issues


def test_missing_keys_count_as_null_and_keep_first_seen_order() -> None:
    profiles = profile([{"a": 1}, {"b": 2, "a": 3}])
    assert [p.key for p in profiles] == ["a", "b"]
    assert profiles[1].null_count == 1


def test_empty_input() -> None:
    assert profile([]) == []
    assert profile([{}]) == []


def test_to_dict_uses_camel_case() -> None:
    payload = _single([1, 2]).to_dict()
    assert payload["detectedType"] == "number"
    assert payload["nullRatePercent"] == 0
