"""Meta titles shared by two or more products or collections."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Union

from services.checks.base import Check
from services.checks.types import (
    CheckContext,
    CheckResult,
    Collection,
    IssueType,
    Product,
    Severity,
    make_issue,
)


class DuplicateMetaTitlesCheck(Check):
    name = "duplicate_meta_titles"
    issue_type = IssueType.DUPLICATE_META_TITLE
    severity = Severity.HIGH

    async def run(self, context: CheckContext) -> CheckResult:
        groups: Dict[str, List[Union[Product, Collection]]] = defaultdict(list)
        for resource in (*context.products, *context.collections):
            if resource.meta_title is None:
                continue
            groups[resource.meta_title.casefold()].append(resource)

        issues = []
        for members in groups.values():
            if len(members) < 2:
                continue
            for resource in members:
                others = [other for other in members if other is not resource]
                kind = resource.resource_type.value.capitalize()
                issues.append(
                    make_issue(
                        context,
                        resource,
                        message=(
                            f'{kind} "{resource.display_title}" shares its meta title '
                            f"with {len(others)} other resource(s)"
                        ),
                        suggestion="Rewrite the meta title so each page is distinguishable in search results.",
                        details={
                            "meta_title": resource.meta_title,
                            "duplicate_count": len(members),
                            "duplicate_with": [
                                {"id": other.id, "title": other.display_title, "type": other.resource_type.value}
                                for other in others
                            ],
                        },
                    )
                )
        return self.result(issues)
