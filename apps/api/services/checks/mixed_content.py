"""Insecure http:// references embedded in HTTPS storefront pages."""

from __future__ import annotations

from typing import List

from services.checks.base import Check
from services.checks.html import extract_resource_references
from services.checks.types import CheckContext, CheckResult, IssueType, Product, Severity, make_issue


def _is_insecure(url: str) -> bool:
    return url.lower().startswith("http://")


class MixedContentCheck(Check):
    name = "mixed_content"
    issue_type = IssueType.MIXED_CONTENT
    severity = Severity.MEDIUM

    async def run(self, context: CheckContext) -> CheckResult:
        issues = []
        for resource in context.resources():
            insecure: List[str] = [ref for ref in extract_resource_references(resource.content_html) if _is_insecure(ref)]
            insecure_images: List[str] = []
            if isinstance(resource, Product):
                insecure_images = [image.url for image in resource.images if image.url and _is_insecure(image.url)]
            if not insecure and not insecure_images:
                continue
            kind = resource.resource_type.value.capitalize()
            issues.append(
                make_issue(
                    context,
                    resource,
                    message=(
                        f'{kind} "{resource.display_title}" loads '
                        f"{len(insecure) + len(insecure_images)} resource(s) over insecure HTTP"
                    ),
                    suggestion="Switch the referenced URLs to https:// so browsers do not block or warn about them.",
                    details={"insecure_urls": insecure, "insecure_image_urls": insecure_images},
                )
            )
        return self.result(issues)
