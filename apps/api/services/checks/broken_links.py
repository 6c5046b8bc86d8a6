"""Links in descriptions and page bodies that are likely or verifiably broken."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx

from config import settings
from services.checks.base import Check
from services.checks.html import extract_links
from services.checks.types import CheckContext, CheckResult, IssueType, Resource, Severity, make_issue

logger = logging.getLogger(__name__)

SUSPICIOUS_PATH_PATTERNS = (
    re.compile(r"/products/\d+/?$"),
    re.compile(r"/collections/\d+/?$"),
    re.compile(r"/(test|sample|demo|deleted|removed|old)-", re.IGNORECASE),
)
LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0"}
_SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "sms:", "data:")

ProbeResult = Tuple[Optional[int], Optional[str]]


def resolve_link(shop_domain: str, href: str) -> Optional[str]:
    """Absolute URL for an in-content link, or None for anchors and non-web schemes."""
    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
        return None
    return urljoin(f"https://{shop_domain}/", href)


def matches_suspicious_pattern(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host in LOCAL_HOSTS or host.startswith("staging.") or host.endswith(".test"):
        return True
    return any(pattern.search(parsed.path) for pattern in SUSPICIOUS_PATH_PATTERNS)


class BrokenLinksCheck(Check):
    name = "broken_links"
    issue_type = IssueType.BROKEN_LINK
    severity = Severity.HIGH

    def __init__(
        self,
        *,
        probe: Optional[bool] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        max_urls: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        self._probe_override = probe
        self._client_factory = client_factory
        self._max_urls = max_urls
        self._concurrency = concurrency

    @property
    def probe_enabled(self) -> bool:
        if self._probe_override is not None:
            return self._probe_override
        return settings.LINK_CHECK_ENABLED

    def _client(self) -> httpx.AsyncClient:
        if self._client_factory is not None:
            return self._client_factory()
        return httpx.AsyncClient(
            timeout=settings.LINK_CHECK_TIMEOUT_SECONDS,
            headers={"User-Agent": "storefront-seo-audit/1.0"},
        )

    async def run(self, context: CheckContext) -> CheckResult:
        candidates: List[Tuple[Resource, str, str, str]] = []
        for resource in context.resources():
            for link in extract_links(resource.content_html):
                url = resolve_link(context.shop_domain, link.href)
                if url is None:
                    continue
                candidates.append((resource, link.href, url, link.text))

        probes: Dict[str, ProbeResult] = {}
        if self.probe_enabled:
            to_probe = []
            for _, _, url, _ in candidates:
                if url in to_probe or matches_suspicious_pattern(url):
                    continue
                if urlparse(url).scheme in ("http", "https"):
                    to_probe.append(url)
            probes = await self._probe_all(to_probe)

        issues = []
        for resource, href, url, text in candidates:
            details = {"link": href, "resolved_url": url, "link_text": text}
            if matches_suspicious_pattern(url):
                details["reason"] = "suspicious_pattern"
            elif url in probes:
                status_code, error = probes[url]
                if error is None and status_code is not None and status_code < 400:
                    continue
                details["reason"] = "request_failed" if error else "http_error"
                details["status_code"] = status_code
                if error:
                    details["error"] = error
            else:
                continue
            kind = resource.resource_type.value.capitalize()
            issues.append(
                make_issue(
                    context,
                    resource,
                    message=f'{kind} "{resource.display_title}" contains a broken link: {href}',
                    suggestion="Update the link to a live page or remove it.",
                    details=details,
                )
            )
        return self.result(issues)

    async def _probe_all(self, urls: List[str]) -> Dict[str, ProbeResult]:
        max_urls = self._max_urls if self._max_urls is not None else settings.LINK_CHECK_MAX_URLS
        concurrency = self._concurrency or settings.LINK_CHECK_CONCURRENCY
        urls = urls[: max(max_urls, 0)]
        if not urls:
            return {}
        semaphore = asyncio.Semaphore(max(concurrency, 1))

        async with self._client() as client:

            async def _bounded(url: str) -> Tuple[str, ProbeResult]:
                async with semaphore:
                    return url, await self._probe(client, url)

            results = await asyncio.gather(*(_bounded(url) for url in urls))
        logger.info(f"Probed {len(results)} link(s) for broken link check")
        return dict(results)

    @staticmethod
    async def _probe(client: httpx.AsyncClient, url: str) -> ProbeResult:
        try:
            response = await client.head(url, follow_redirects=True)
            if response.status_code == 405:
                response = await client.get(url, follow_redirects=True)
            return response.status_code, None
        except httpx.HTTPError as exc:
            logger.debug(f"Link probe failed for {url}: {exc}")
            return None, type(exc).__name__
