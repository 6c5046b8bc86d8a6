"""Resources without a usable meta description."""

from __future__ import annotations

from services.checks.base import Check
from services.checks.types import CheckContext, CheckResult, IssueType, Severity, make_issue


class MissingMetaDescriptionsCheck(Check):
    name = "missing_meta_descriptions"
    issue_type = IssueType.MISSING_META_DESCRIPTION
    severity = Severity.HIGH

    async def run(self, context: CheckContext) -> CheckResult:
        issues = []
        for resource in context.resources():
            if resource.meta_description is not None:
                continue
            kind = resource.resource_type.value.capitalize()
            issues.append(
                make_issue(
                    context,
                    resource,
                    message=f'{kind} "{resource.display_title}" is missing a meta description',
                    suggestion="Write a 150-160 character meta description that summarizes the content.",
                )
            )
        return self.result(issues)
