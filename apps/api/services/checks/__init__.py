"""SEO checks run against a store content snapshot."""

from services.checks.base import Check
from services.checks.broken_links import BrokenLinksCheck
from services.checks.duplicate_meta_titles import DuplicateMetaTitlesCheck
from services.checks.indexing_directives import IndexingDirectivesCheck
from services.checks.missing_alt_text import MissingAltTextCheck
from services.checks.missing_meta_descriptions import MissingMetaDescriptionsCheck
from services.checks.missing_meta_titles import MissingMetaTitlesCheck
from services.checks.mixed_content import MixedContentCheck
from services.checks.types import (
    CheckContext,
    CheckResult,
    Collection,
    IssueData,
    IssueType,
    Page,
    Product,
    ProductImage,
    ResourceType,
    Severity,
    build_check_context,
    normalize_text,
)

ALL_CHECKS = (
    MissingMetaTitlesCheck(),
    DuplicateMetaTitlesCheck(),
    MissingMetaDescriptionsCheck(),
    MissingAltTextCheck(),
    BrokenLinksCheck(),
    MixedContentCheck(),
    IndexingDirectivesCheck(),
)

__all__ = [
    "ALL_CHECKS",
    "BrokenLinksCheck",
    "Check",
    "CheckContext",
    "CheckResult",
    "Collection",
    "DuplicateMetaTitlesCheck",
    "IndexingDirectivesCheck",
    "IssueData",
    "IssueType",
    "MissingAltTextCheck",
    "MissingMetaDescriptionsCheck",
    "MissingMetaTitlesCheck",
    "MixedContentCheck",
    "Page",
    "Product",
    "ProductImage",
    "ResourceType",
    "Severity",
    "build_check_context",
    "normalize_text",
]
