"""Column profiling over an in-memory result set.

``profile`` is a single deterministic pass: null rate, distinctness, type
inference, numeric range, shape patterns, suspicious values, top values and
issue flags per column. It never raises for odd input; an empty result set
produces an empty list.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pandas as pd
from dateutil import parser as date_parser

from wb_cli.shared.config import ProfilingThresholds

TYPE_RATIO = 0.9
MIXED_RATIO = 0.1
PATTERN_MIN_MATCHES = 2
PATTERN_MIN_SHARE = 0.2
DOMINANT_MIN_MATCHES = 3
DOMINANT_MIN_SHARE = 0.6
TOP_VALUE_COUNT = 3


class DetectedType(str, Enum):
    NUMBER = "number"
    DATE = "date"
    TEXT = "text"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class ProfileIssue(str, Enum):
    HIGH_NULL = "high_null"
    MIXED_TYPES = "mixed_types"
    HIGH_CARDINALITY = "high_cardinality"
    SUSPICIOUS_VALUES = "suspicious_values"


_ISO_DATE_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
_DOTTED_DATE_RE = re.compile(r"^\d{1,2}[./]\d{1,2}[./]\d{2,4}$")

PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "uuid": re.compile(
        r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
        re.IGNORECASE,
    ),
    "iban": re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{11,30}$"),
    "url": re.compile(r"^https?://\S+$", re.IGNORECASE),
    "date": re.compile(f"(?:{_ISO_DATE_RE.pattern})|(?:{_DOTTED_DATE_RE.pattern})"),
}


@dataclass(frozen=True, slots=True)
class PatternMatch:
    name: str
    count: int
    share_percent: float


@dataclass(frozen=True, slots=True)
class TopValue:
    value: str
    count: int


@dataclass(frozen=True, slots=True)
class ColumnProfile:
    key: str
    total: int
    null_count: int
    null_rate_percent: float
    distinct_count: int
    detected_type: DetectedType
    min: float | int | None = None
    max: float | int | None = None
    patterns: tuple[PatternMatch, ...] = ()
    suspicious_count: int = 0
    top_values: tuple[TopValue, ...] = ()
    issues: tuple[ProfileIssue, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "total": self.total,
            "nullCount": self.null_count,
            "nullRatePercent": self.null_rate_percent,
            "distinctCount": self.distinct_count,
            "detectedType": self.detected_type.value,
            "min": self.min,
            "max": self.max,
            "patterns": [
                {"name": p.name, "count": p.count, "sharePercent": p.share_percent} for p in self.patterns
            ],
            "suspiciousCount": self.suspicious_count,
            "topValues": [{"value": t.value, "count": t.count} for t in self.top_values],
            "issues": [issue.value for issue in self.issues],
        }


def profile(
    rows: Sequence[Mapping[str, Any]],
    thresholds: ProfilingThresholds | None = None,
) -> list[ColumnProfile]:
    """Profile every column that appears in ``rows``.

    Column order is first-seen order across all rows; a key missing from a
    row counts as a null for that row.
    """
    thresholds = thresholds or ProfilingThresholds()
    if not rows:
        return []
    keys: list[str] = []
    seen: set[str] = set()
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        for key in row:
            if key not in seen:
                seen.add(key)
                keys.append(key)
    if not keys:
        return []

    frame = pd.DataFrame(
        [[row.get(key) if isinstance(row, Mapping) else None for key in keys] for row in rows],
        columns=keys,
        dtype=object,
    )
    return [_profile_column(str(key), frame[key].tolist(), thresholds) for key in keys]


def _profile_column(key: str, values: list[Any], thresholds: ProfilingThresholds) -> ColumnProfile:
    total = len(values)
    normalized = [_normalize(value) for value in values if not _is_null(value)]
    non_null = len(normalized)
    null_count = total - non_null
    null_rate = (null_count / total * 100) if total else 0.0
    distinct = len(set(normalized))

    numbers = _numeric_values(normalized)
    number_hits = [value is not None for value in numbers]
    date_hits = [_is_date(value) for value in normalized]
    detected = _detect_type(non_null, sum(number_hits), sum(date_hits))

    finite = [value for value in numbers if value is not None]
    minimum = _plain_number(min(finite)) if finite else None
    maximum = _plain_number(max(finite)) if finite else None

    counts = {name: sum(1 for value in normalized if _matches(name, value)) for name in PATTERNS}
    patterns = _reported_patterns(counts, non_null)
    suspicious = _suspicious_count(detected, number_hits, date_hits, counts, non_null)

    issues: list[ProfileIssue] = []
    if total and null_rate >= thresholds.null_rate_percent:
        issues.append(ProfileIssue.HIGH_NULL)
    if detected is DetectedType.MIXED:
        issues.append(ProfileIssue.MIXED_TYPES)
    if non_null and distinct / non_null * 100 > thresholds.cardinality_rate_percent:
        issues.append(ProfileIssue.HIGH_CARDINALITY)
    if suspicious > 0:
        issues.append(ProfileIssue.SUSPICIOUS_VALUES)

    return ColumnProfile(
        key=key,
        total=total,
        null_count=null_count,
        null_rate_percent=null_rate,
        distinct_count=distinct,
        detected_type=detected,
        min=minimum,
        max=maximum,
        patterns=patterns,
        suspicious_count=suspicious,
        top_values=tuple(TopValue(value, count) for value, count in Counter(normalized).most_common(TOP_VALUE_COUNT)),
        issues=tuple(issues),
    )


def _is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, (str, bytes)) and not _normalize(value)


def _normalize(value: Any) -> str:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value).strip()


def _numeric_values(values: list[str]) -> list[float | None]:
    if not values:
        return []
    coerced = pd.to_numeric(pd.Series(values, dtype=object), errors="coerce")
    finite = coerced.abs() < math.inf
    return [float(number) if ok else None for number, ok in zip(coerced.tolist(), finite.tolist())]


def _is_date(value: str) -> bool:
    iso = bool(_ISO_DATE_RE.match(value))
    dotted = bool(_DOTTED_DATE_RE.match(value))
    if not (iso or dotted):
        return False
    try:
        date_parser.parse(value, dayfirst=dotted)
    except (ValueError, OverflowError):
        return False
    return True


def _detect_type(non_null: int, number_count: int, date_count: int) -> DetectedType:
    if not non_null:
        return DetectedType.UNKNOWN
    number_ratio = number_count / non_null
    date_ratio = date_count / non_null
    if number_ratio > TYPE_RATIO:
        return DetectedType.NUMBER
    if date_ratio > TYPE_RATIO:
        return DetectedType.DATE
    if number_ratio > MIXED_RATIO or date_ratio > MIXED_RATIO:
        return DetectedType.MIXED
    return DetectedType.TEXT


def _matches(name: str, value: str) -> bool:
    if name == "iban":
        value = value.replace(" ", "").upper()
    return bool(PATTERNS[name].match(value))


def _reported_patterns(counts: Mapping[str, int], non_null: int) -> tuple[PatternMatch, ...]:
    if not non_null:
        return ()
    reported = [
        PatternMatch(name=name, count=count, share_percent=count / non_null * 100)
        for name, count in counts.items()
        if count >= PATTERN_MIN_MATCHES and count / non_null >= PATTERN_MIN_SHARE
    ]
    reported.sort(key=lambda match: match.count, reverse=True)
    return tuple(reported)


def _suspicious_count(
    detected: DetectedType,
    number_hits: list[bool],
    date_hits: list[bool],
    counts: Mapping[str, int],
    non_null: int,
) -> int:
    if detected is DetectedType.NUMBER:
        return number_hits.count(False)
    if detected is DetectedType.DATE:
        return date_hits.count(False)
    if not non_null or not counts:
        return 0
    count = max(counts.values())
    if count >= DOMINANT_MIN_MATCHES and count / non_null >= DOMINANT_MIN_SHARE:
        return non_null - count
    return 0


def _plain_number(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value
