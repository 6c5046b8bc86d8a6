"""Check context, resource and result contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class IssueType(str, Enum):
    MISSING_META_TITLE = "MISSING_META_TITLE"
    DUPLICATE_META_TITLE = "DUPLICATE_META_TITLE"
    MISSING_META_DESCRIPTION = "MISSING_META_DESCRIPTION"
    MISSING_ALT_TEXT = "MISSING_ALT_TEXT"
    BROKEN_LINK = "BROKEN_LINK"
    MIXED_CONTENT = "MIXED_CONTENT"
    NOINDEX_PAGE = "NOINDEX_PAGE"


class ResourceType(str, Enum):
    PRODUCT = "PRODUCT"
    COLLECTION = "COLLECTION"
    PAGE = "PAGE"


_URL_SEGMENT = {
    ResourceType.PRODUCT: "products",
    ResourceType.COLLECTION: "collections",
    ResourceType.PAGE: "pages",
}


def normalize_text(value: Any) -> Optional[str]:
    """Absent, non-string and whitespace-only values all mean "missing"."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def resource_url(shop_domain: str, resource_type: ResourceType, handle: str) -> str:
    return f"https://{shop_domain}/{_URL_SEGMENT[resource_type]}/{handle}"


def _seo_fields(node: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    seo = node.get("seo")
    if not isinstance(seo, Mapping):
        seo = {}
    title = seo.get("title", node.get("metaTitle"))
    description = seo.get("description", node.get("metaDescription"))
    return normalize_text(title), normalize_text(description)


def _seo_hidden(node: Mapping[str, Any]) -> bool:
    raw = node.get("seoHidden")
    if isinstance(raw, Mapping):
        raw = raw.get("value")
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in {"1", "true", "yes"}


def _image_nodes(raw: Any) -> List[Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        raw = [edge.get("node") for edge in raw.get("edges") or [] if isinstance(edge, Mapping)]
    if not isinstance(raw, (list, tuple)):
        return []
    return [node for node in raw if isinstance(node, Mapping)]


@dataclass(frozen=True)
class ProductImage:
    id: str
    url: Optional[str] = None
    alt: Optional[str] = None

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "ProductImage":
        return cls(
            id=str(node.get("id") or ""),
            url=normalize_text(node.get("url") or node.get("src")),
            alt=normalize_text(node.get("altText", node.get("alt"))),
        )


@dataclass(frozen=True)
class Product:
    resource_type: ClassVar[ResourceType] = ResourceType.PRODUCT

    id: str
    title: str
    handle: str
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    description_html: Optional[str] = None
    images: Tuple[ProductImage, ...] = ()
    seo_hidden: bool = False

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "Product":
        meta_title, meta_description = _seo_fields(node)
        return cls(
            id=str(node.get("id") or ""),
            title=str(node.get("title") or ""),
            handle=str(node.get("handle") or ""),
            meta_title=meta_title,
            meta_description=meta_description,
            description_html=normalize_text(node.get("descriptionHtml")),
            images=tuple(ProductImage.from_node(image) for image in _image_nodes(node.get("images"))),
            seo_hidden=_seo_hidden(node),
        )

    @property
    def display_title(self) -> str:
        return self.title or "Untitled Product"

    @property
    def content_html(self) -> Optional[str]:
        return self.description_html


@dataclass(frozen=True)
class Collection:
    resource_type: ClassVar[ResourceType] = ResourceType.COLLECTION

    id: str
    title: str
    handle: str
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    description_html: Optional[str] = None
    seo_hidden: bool = False

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "Collection":
        meta_title, meta_description = _seo_fields(node)
        return cls(
            id=str(node.get("id") or ""),
            title=str(node.get("title") or ""),
            handle=str(node.get("handle") or ""),
            meta_title=meta_title,
            meta_description=meta_description,
            description_html=normalize_text(node.get("descriptionHtml")),
            seo_hidden=_seo_hidden(node),
        )

    @property
    def display_title(self) -> str:
        return self.title or "Untitled Collection"

    @property
    def content_html(self) -> Optional[str]:
        return self.description_html


@dataclass(frozen=True)
class Page:
    """Online store page. The page title doubles as its meta title when no SEO title is set."""

    resource_type: ClassVar[ResourceType] = ResourceType.PAGE

    id: str
    title: Optional[str]
    handle: str
    body: Optional[str] = None
    body_summary: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    seo_hidden: bool = False

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "Page":
        title = normalize_text(node.get("title"))
        seo_title, seo_description = _seo_fields(node)
        body_summary = normalize_text(node.get("bodySummary"))
        return cls(
            id=str(node.get("id") or ""),
            title=title,
            handle=str(node.get("handle") or ""),
            body=normalize_text(node.get("body")),
            body_summary=body_summary,
            meta_title=seo_title or title,
            meta_description=seo_description or body_summary,
            seo_hidden=_seo_hidden(node),
        )

    @property
    def display_title(self) -> str:
        return self.title or "Untitled Page"

    @property
    def content_html(self) -> Optional[str]:
        return self.body


Resource = Union[Product, Collection, Page]


@dataclass(frozen=True)
class CheckContext:
    """Read-only snapshot of store content shared by every check in one audit."""

    shop_domain: str
    store_id: str
    products: Tuple[Product, ...] = ()
    collections: Tuple[Collection, ...] = ()
    pages: Tuple[Page, ...] = ()

    @property
    def total_resources(self) -> int:
        return len(self.products) + len(self.collections) + len(self.pages)

    def resources(self) -> Iterable[Resource]:
        yield from self.products
        yield from self.collections
        yield from self.pages


def build_check_context(
    shop_domain: str,
    store_id: str,
    products: Sequence[Union[Product, Mapping[str, Any]]] = (),
    collections: Sequence[Union[Collection, Mapping[str, Any]]] = (),
    pages: Sequence[Union[Page, Mapping[str, Any]]] = (),
) -> CheckContext:
    """Normalize raw Shopify nodes (or ready resources) into a check context."""
    return CheckContext(
        shop_domain=shop_domain,
        store_id=store_id,
        products=tuple(p if isinstance(p, Product) else Product.from_node(p) for p in products),
        collections=tuple(c if isinstance(c, Collection) else Collection.from_node(c) for c in collections),
        pages=tuple(p if isinstance(p, Page) else Page.from_node(p) for p in pages),
    )


@dataclass(frozen=True)
class IssueData:
    resource_id: str
    resource_type: ResourceType
    resource_title: str
    resource_handle: str
    url: str
    message: str
    suggestion: str
    details: Dict[str, Any] = field(default_factory=dict)


def make_issue(
    context: CheckContext,
    resource: Resource,
    message: str,
    suggestion: str,
    details: Optional[Dict[str, Any]] = None,
) -> IssueData:
    return IssueData(
        resource_id=resource.id,
        resource_type=resource.resource_type,
        resource_title=resource.display_title,
        resource_handle=resource.handle,
        url=resource_url(context.shop_domain, resource.resource_type, resource.handle),
        message=message,
        suggestion=suggestion,
        details=dict(details or {}),
    )


@dataclass(frozen=True)
class CheckResult:
    check_name: str
    type: IssueType
    severity: Severity
    issues: List[IssueData] = field(default_factory=list)
