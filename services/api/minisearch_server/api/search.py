from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from minisearch_server.api.dependencies import get_server_state, require_token
from minisearch_server.api.errors import error_detail
from minisearch_server.errors import CircuitOpenError
from minisearch_server.search.searxng import ImageResult, SearchResults
from minisearch_server.state import ServerState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search")

SEARCH_CIRCUIT_KEY = "searxng"
THUMBNAIL_CIRCUIT_PREFIX = "thumbnail:"
DEFAULT_LIMIT = 30


def require_query(q: str | None = Query(None)) -> str:
    """Reject requests without a query before any token work is done."""
    if not q:
        raise HTTPException(status_code=400, detail=error_detail("Missing query parameter"))
    return q


def _parse_limit(value: str | None) -> int:
    """Return a positive limit, falling back to the default."""
    try:
        limit = int(value) if value else 0
    except ValueError:
        limit = 0
    return limit if limit > 0 else DEFAULT_LIMIT


async def _run_search(state: ServerState, query: str, limit: int) -> SearchResults:
    """Query the search backend through its circuit breaker."""
    try:
        return await state.breaker.execute(
            SEARCH_CIRCUIT_KEY, lambda: state.search_client.search(query, limit)
        )
    except CircuitOpenError as exc:
        raise HTTPException(
            status_code=503,
            detail=error_detail("Search service temporarily unavailable"),
        ) from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Error processing search: %s", exc)
        raise HTTPException(
            status_code=500, detail=error_detail("Internal server error")
        ) from exc


async def _inline_thumbnail(state: ServerState, result: ImageResult) -> ImageResult | None:
    """Replace the thumbnail URL with a data URI; None if it cannot be fetched."""
    title, url, thumbnail, source_url = result
    key = THUMBNAIL_CIRCUIT_PREFIX + (urlparse(thumbnail).hostname or "")
    try:
        data_uri = await state.breaker.execute(
            key, lambda: state.search_client.fetch_thumbnail(thumbnail)
        )
    except (CircuitOpenError, httpx.HTTPError) as exc:
        logger.debug("Dropping image result %s: %s", url, exc)
        return None
    return (title, url, data_uri, source_url)


@router.get("/text")
async def text_search(
    query: str = Depends(require_query),
    _token: str = Depends(require_token),
    limit: str | None = Query(None),
    state: ServerState = Depends(get_server_state),
) -> list[tuple[str, str, str]]:
    """Return ``[title, content, url]`` results for a query."""
    results = await _run_search(state, query, _parse_limit(limit))
    state.counters.increment_textual()
    return results.text_results


@router.get("/images")
async def image_search(
    query: str = Depends(require_query),
    _token: str = Depends(require_token),
    limit: str | None = Query(None),
    state: ServerState = Depends(get_server_state),
) -> list[tuple[str, str, str, str]]:
    """Return ``[title, url, thumbnail_data_uri, source_url]`` results for a query.

    Results whose thumbnail cannot be downloaded are left out.
    """
    results = await _run_search(state, query, _parse_limit(limit))
    inlined = await asyncio.gather(
        *(_inline_thumbnail(state, result) for result in results.image_results)
    )
    state.counters.increment_graphical()
    return [result for result in inlined if result is not None]
