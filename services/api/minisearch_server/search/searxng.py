"""SearXNG search backend.

Fetches JSON results from a local SearXNG instance and normalizes them into
text results ``[title, content, url]`` and image results
``[title, url, thumbnail_source, source_url]``.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

TextResult = tuple[str, str, str]
ImageResult = tuple[str, str, str, str]

GRAPHICAL_CATEGORIES = frozenset({"images", "videos"})


@dataclass
class SearchResults:
    text_results: list[TextResult] = field(default_factory=list)
    image_results: list[ImageResult] = field(default_factory=list)


def html_to_text(markup: str) -> str:
    """Strip HTML tags and collapse the text."""
    return BeautifulSoup(markup, "html.parser").get_text(" ", strip=True)


def _process_snippet(snippet: str) -> str:
    text = html_to_text(snippet)
    if text.startswith("[data:image"):
        return ""
    return text


def _field(item: dict[str, Any], name: str) -> str:
    value = item.get(name)
    return value if isinstance(value, str) else ""


def _is_absolute_url(value: str) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def parse_results(payload: Any, limit: int | None = None) -> SearchResults:
    """
    Split raw SearXNG results into deduplicated text and image results.

    Text results keep one entry per hostname and need non-empty content.
    Image results keep one entry per image source and need an absolute
    thumbnail URL.

    Args:
        payload: Decoded SearXNG JSON response
        limit: Maximum results per kind; None or <= 0 means unlimited

    Returns:
        SearchResults with text and image lists

    Raises:
        ValueError: If the payload is not a SearXNG result object
    """
    if not isinstance(payload, dict):
        raise ValueError("SearXNG response is not a JSON object")
    items = payload.get("results") or []
    if not isinstance(items, list):
        raise ValueError("SearXNG results are not a list")

    results = SearchResults()
    graphical: list[dict[str, Any]] = []
    textual: list[dict[str, Any]] = []

    for item in items:
        if not isinstance(item, dict):
            continue
        if _field(item, "category") in GRAPHICAL_CATEGORIES:
            graphical.append(item)
        else:
            textual.append(item)

    has_limit = limit is not None and limit > 0
    seen_sources: set[str] = set()
    for item in graphical:
        is_video = _field(item, "category") == "videos"
        thumbnail = _field(item, "thumbnail" if is_video else "thumbnail_src")
        if not _is_absolute_url(thumbnail):
            continue
        image_source = _field(item, "img_src")
        if image_source in seen_sources:
            continue
        url = _field(item, "url")
        source_url = (_field(item, "iframe_src") or url) if is_video else image_source
        results.image_results.append((_field(item, "title"), url, thumbnail, source_url))
        seen_sources.add(image_source)
        if has_limit and len(results.image_results) >= limit:
            break

    seen_hostnames: set[str] = set()
    for item in textual:
        url = _field(item, "url")
        hostname = urlparse(url).hostname or ""
        content = _field(item, "content")
        if hostname and hostname not in seen_hostnames and content:
            title = html_to_text(_field(item, "title"))
            snippet = _process_snippet(content)
            if title and snippet:
                results.text_results.append((title, snippet, url))
                seen_hostnames.add(hostname)
        if has_limit and len(results.text_results) >= limit:
            break

    return results


class SearxngClient:
    """Async client for a SearXNG instance.

    HTTP and decoding errors propagate so the caller's circuit breaker can
    count them.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def search(self, query: str, limit: int | None = None) -> SearchResults:
        """Run a query and return normalized results."""
        response = await self._client.get(
            f"{self.base_url}/search",
            params={
                "q": query,
                "format": "json",
                "language": "auto",
                "safesearch": "1",
                "categories": "general,images,videos",
            },
        )
        response.raise_for_status()
        return parse_results(response.json(), limit)

    async def fetch_thumbnail(self, url: str) -> str:
        """Download an image and return it as a ``data:`` URI.

        Inlined thumbnails load under ``Cross-Origin-Embedder-Policy:
        require-corp`` even when their host sends no CORP header.
        """
        response = await self._client.get(url, follow_redirects=True)
        response.raise_for_status()
        content_type = response.headers.get("content-type", "application/octet-stream")
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"

    async def aclose(self) -> None:
        await self._client.aclose()
