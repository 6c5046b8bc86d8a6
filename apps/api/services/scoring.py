"""Severity-weighted SEO score."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping

from services.checks.types import CheckResult, Severity

SCORE_CEILING = 100
SCORE_WEIGHTS: Dict[Severity, int] = {
    Severity.CRITICAL: 15,
    Severity.HIGH: 10,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
}


@dataclass(frozen=True)
class AuditStatistics:
    total: int
    critical: int
    high: int
    medium: int
    low: int
    overall_score: int
    issues_by_type: Dict[str, int] = field(default_factory=dict)


def calculate_seo_score(
    critical: int,
    high: int,
    medium: int,
    low: int,
    weights: Mapping[Severity, int] = SCORE_WEIGHTS,
) -> int:
    """100 minus the weighted issue count, clamped to 0..100."""
    penalty = (
        max(critical, 0) * weights[Severity.CRITICAL]
        + max(high, 0) * weights[Severity.HIGH]
        + max(medium, 0) * weights[Severity.MEDIUM]
        + max(low, 0) * weights[Severity.LOW]
    )
    return int(max(0, min(SCORE_CEILING, SCORE_CEILING - penalty)))


def calculate_audit_statistics(results: Iterable[CheckResult]) -> AuditStatistics:
    buckets = {severity: 0 for severity in Severity}
    by_type: Dict[str, int] = {}
    for result in results:
        count = len(result.issues)
        buckets[Severity(result.severity)] += count
        if count:
            key = result.type.value
            by_type[key] = by_type.get(key, 0) + count

    critical = buckets[Severity.CRITICAL]
    high = buckets[Severity.HIGH]
    medium = buckets[Severity.MEDIUM]
    low = buckets[Severity.LOW]
    return AuditStatistics(
        total=critical + high + medium + low,
        critical=critical,
        high=high,
        medium=medium,
        low=low,
        overall_score=calculate_seo_score(critical, high, medium, low),
        issues_by_type=by_type,
    )
