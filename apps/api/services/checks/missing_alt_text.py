"""Product images without alt text, one issue per product."""

from __future__ import annotations

from services.checks.base import Check
from services.checks.types import CheckContext, CheckResult, IssueType, Severity, make_issue


class MissingAltTextCheck(Check):
    name = "missing_alt_text"
    issue_type = IssueType.MISSING_ALT_TEXT
    severity = Severity.MEDIUM

    async def run(self, context: CheckContext) -> CheckResult:
        issues = []
        for product in context.products:
            missing = [image for image in product.images if image.alt is None]
            if not missing:
                continue
            issues.append(
                make_issue(
                    context,
                    product,
                    message=f'Product "{product.display_title}" has {len(missing)} image(s) without alt text',
                    suggestion="Describe each image in a short alt text; include the product name where natural.",
                    details={
                        "image_count": len(missing),
                        "total_images": len(product.images),
                        "image_ids": [image.id for image in missing],
                    },
                )
            )
        return self.result(issues)
