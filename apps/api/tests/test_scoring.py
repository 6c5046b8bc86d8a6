import itertools

from services.checks import CheckResult, IssueType, Severity
from services.checks.types import IssueData, ResourceType
from services.scoring import SCORE_WEIGHTS, calculate_audit_statistics, calculate_seo_score


def _issue(idx: int) -> IssueData:
    return IssueData(
        resource_id=f"r{idx}",
        resource_type=ResourceType.PRODUCT,
        resource_title=f"Resource {idx}",
        resource_handle=f"r-{idx}",
        url=f"https://shop/products/r-{idx}",
        message="m",
        suggestion="s",
    )


def _result(issue_type: IssueType, severity: Severity, count: int) -> CheckResult:
    return CheckResult(
        check_name=issue_type.value.lower(),
        type=issue_type,
        severity=severity,
        issues=[_issue(i) for i in range(count)],
    )


def test_score_subtracts_weighted_counts_from_100():
    assert calculate_seo_score(0, 0, 0, 0) == 100
    assert calculate_seo_score(1, 1, 1, 1) == 100 - (15 + 10 + 5 + 2)
    assert calculate_seo_score(0, 0, 3, 0) == 85


def test_score_is_clamped_to_zero():
    assert calculate_seo_score(7, 0, 0, 0) == 0
    assert calculate_seo_score(1000, 1000, 1000, 1000) == 0


def test_score_stays_in_range_for_any_counts():
    counts = (0, 1, 2, 5, 50, 10_000)
    for critical, high, medium, low in itertools.product(counts, repeat=4):
        assert 0 <= calculate_seo_score(critical, high, medium, low) <= 100


def test_score_accepts_custom_weights():
    weights = dict(SCORE_WEIGHTS)
    weights[Severity.LOW] = 0
    assert calculate_seo_score(0, 0, 0, 40, weights=weights) == 100


def test_statistics_bucket_by_check_severity():
    stats = calculate_audit_statistics(
        [
            _result(IssueType.MISSING_META_TITLE, Severity.CRITICAL, 2),
            _result(IssueType.MISSING_META_DESCRIPTION, Severity.HIGH, 1),
            _result(IssueType.BROKEN_LINK, Severity.HIGH, 1),
            _result(IssueType.MISSING_ALT_TEXT, Severity.MEDIUM, 0),
            _result(IssueType.NOINDEX_PAGE, Severity.LOW, 3),
        ]
    )
    assert (stats.critical, stats.high, stats.medium, stats.low) == (2, 2, 0, 3)
    assert stats.total == 7
    assert stats.overall_score == 100 - (2 * 15 + 2 * 10 + 3 * 2)
    assert stats.issues_by_type == {
        "MISSING_META_TITLE": 2,
        "MISSING_META_DESCRIPTION": 1,
        "BROKEN_LINK": 1,
        "NOINDEX_PAGE": 3,
    }
