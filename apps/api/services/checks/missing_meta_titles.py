"""Resources without a usable meta title."""

from __future__ import annotations

from services.checks.base import Check
from services.checks.types import CheckContext, CheckResult, IssueType, Severity, make_issue

_SUGGESTIONS = {
    "PRODUCT": "Add a unique meta title of 50-60 characters that names the product.",
    "COLLECTION": "Add a meta title that describes what the collection contains.",
    "PAGE": "Give the page a descriptive title so search results have something to show.",
}


class MissingMetaTitlesCheck(Check):
    name = "missing_meta_titles"
    issue_type = IssueType.MISSING_META_TITLE
    severity = Severity.CRITICAL

    async def run(self, context: CheckContext) -> CheckResult:
        issues = []
        for resource in context.resources():
            if resource.meta_title is not None:
                continue
            kind = resource.resource_type.value
            issues.append(
                make_issue(
                    context,
                    resource,
                    message=f'{kind.capitalize()} "{resource.display_title}" is missing a meta title',
                    suggestion=_SUGGESTIONS[kind],
                )
            )
        return self.result(issues)
