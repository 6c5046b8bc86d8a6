"""Check contract shared by every SEO rule."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from services.checks.types import CheckContext, CheckResult, IssueData, IssueType, Severity


class Check(ABC):
    """One independent SEO rule. Implementations must not mutate the context."""

    name: str
    issue_type: IssueType
    severity: Severity

    @abstractmethod
    async def run(self, context: CheckContext) -> CheckResult:
        raise NotImplementedError

    def result(self, issues: List[IssueData]) -> CheckResult:
        return CheckResult(
            check_name=self.name,
            type=self.issue_type,
            severity=self.severity,
            issues=list(issues),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
