"""HTML helpers for description/body markup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup

_SRC_TAGS = ("img", "script", "iframe", "video", "audio", "source", "embed")


@dataclass(frozen=True)
class Link:
    href: str
    text: str


def _soup(html: Optional[str]) -> Optional[BeautifulSoup]:
    if not html:
        return None
    return BeautifulSoup(html, "html.parser")


def extract_links(html: Optional[str]) -> List[Link]:
    soup = _soup(html)
    if soup is None:
        return []
    links: List[Link] = []
    for anchor in soup.find_all("a", href=True):
        href = str(anchor.get("href") or "").strip()
        if not href:
            continue
        links.append(Link(href=href, text=anchor.get_text(" ", strip=True)))
    return links


def extract_resource_references(html: Optional[str]) -> List[str]:
    """Every href/src attribute value, in document order."""
    soup = _soup(html)
    if soup is None:
        return []
    refs: List[str] = []
    for tag in soup.find_all(True):
        if tag.name in _SRC_TAGS and tag.get("src"):
            refs.append(str(tag["src"]).strip())
        if tag.get("href"):
            refs.append(str(tag["href"]).strip())
    return [ref for ref in refs if ref]


def meta_robots_directives(html: Optional[str]) -> List[str]:
    soup = _soup(html)
    if soup is None:
        return []
    directives: List[str] = []
    for meta in soup.find_all("meta"):
        name = str(meta.get("name") or "").strip().lower()
        if name not in {"robots", "googlebot"}:
            continue
        content = str(meta.get("content") or "")
        directives.extend(part.strip().lower() for part in content.split(",") if part.strip())
    return directives
