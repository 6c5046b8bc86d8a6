"""Models package."""

from .store import Store
from .audit import Audit
from .audit_issue import AuditIssue
