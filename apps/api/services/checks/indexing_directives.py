"""Resources that search engines are told, or are likely, to skip."""

from __future__ import annotations

from typing import List

from services.checks.base import Check
from services.checks.html import meta_robots_directives
from services.checks.types import CheckContext, CheckResult, IssueType, Page, Resource, Severity, make_issue

_BLOCKING_DIRECTIVES = ("noindex", "nofollow", "none")


def _has_no_content(resource: Resource) -> bool:
    if isinstance(resource, Page):
        return resource.body is None and resource.body_summary is None
    return resource.meta_title is None and resource.meta_description is None and resource.content_html is None


class IndexingDirectivesCheck(Check):
    name = "indexing_directives"
    issue_type = IssueType.NOINDEX_PAGE
    severity = Severity.LOW

    async def run(self, context: CheckContext) -> CheckResult:
        issues = []
        for resource in context.resources():
            reasons: List[str] = []
            directives = [d for d in meta_robots_directives(resource.content_html) if d in _BLOCKING_DIRECTIVES]
            if resource.seo_hidden:
                reasons.append("seo_hidden")
            if directives:
                reasons.append("meta_robots")
            if _has_no_content(resource):
                reasons.append("no_content")
            if not reasons:
                continue

            kind = resource.resource_type.value.capitalize()
            if "seo_hidden" in reasons:
                message = f'{kind} "{resource.display_title}" is hidden from search engines'
                suggestion = "Clear the seo.hidden metafield if this page should appear in search results."
            elif directives:
                message = f'{kind} "{resource.display_title}" contains a robots meta tag ({", ".join(directives)})'
                suggestion = "Remove the embedded robots meta tag unless the page is meant to stay out of search."
            elif isinstance(resource, Page):
                message = f'Page "{resource.display_title}" has no content'
                suggestion = "Add body content; empty pages are usually not indexed."
            else:
                message = f'{kind} "{resource.display_title}" has no SEO data or content'
                suggestion = "Add a description and SEO fields so the page is worth indexing."
            issues.append(
                make_issue(
                    context,
                    resource,
                    message=message,
                    suggestion=suggestion,
                    details={"reasons": reasons, "directives": directives},
                )
            )
        return self.result(issues)
