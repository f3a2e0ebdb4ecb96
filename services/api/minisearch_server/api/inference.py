"""Proxy to the internal OpenAI-compatible inference backend.

Completions are relayed to the browser as server-sent events. Each model gets
its own circuit. When a model fails the request moves on to another available
model, skipping models whose circuit is open. Failures before the first event
are answered with a JSON error; failures after it end the stream with an
error event.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from minisearch_server.api.dependencies import get_server_state, require_token
from minisearch_server.api.errors import error_detail
from minisearch_server.inference.client import InferenceClient
from minisearch_server.inference.fallback import (
    STREAM_ERRORS,
    ModelFallback,
    OpenedStream,
)
from minisearch_server.state import ServerState

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_BODY_BYTES = 1024 * 1024
FORWARDED_FIELDS = (
    "messages",
    "temperature",
    "top_p",
    "frequency_penalty",
    "presence_penalty",
    "max_tokens",
)
ALL_MODELS_FAILED = "Service unavailable - all models failed"
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}

# Upstream rejections passed through as-is; other 4xx are reported as 502
_PASS_THROUGH_STATUSES = frozenset({400, 413, 422})


def require_json_body(request: Request) -> None:
    """Reject requests that do not declare a JSON body."""
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type.lower():
        raise HTTPException(status_code=415, detail=error_detail("Unsupported Media Type"))


def require_inference_client(
    state: ServerState = Depends(get_server_state),
) -> InferenceClient:
    """Return the inference client or fail with 500 when it is not configured."""
    if state.inference_client is None:
        raise HTTPException(
            status_code=500,
            detail=error_detail("OpenAI API configuration is missing"),
        )
    return state.inference_client


async def _read_payload(request: Request) -> dict[str, Any]:
    """Read, parse and validate the chat completion request body."""
    chunks: list[bytes] = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > MAX_BODY_BYTES:
            raise HTTPException(status_code=413, detail=error_detail("Request body too large"))
        chunks.append(chunk)

    try:
        body = json.loads(b"".join(chunks))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=error_detail("Invalid request body")) from exc

    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        raise HTTPException(
            status_code=400,
            detail=error_detail("Invalid request body: messages is required"),
        )
    return {name: body[name] for name in FORWARDED_FIELDS if body.get(name) is not None}


def _chunk_payload(
    model: str, content: str | None = None, finish_reason: str | None = None
) -> dict[str, Any]:
    now = time.time()
    return {
        "id": f"chatcmpl-{int(now * 1000)}",
        "object": "chat.completion.chunk",
        "created": int(now),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {"content": content} if content else {},
                "finish_reason": finish_reason,
            }
        ],
    }


def _delta_content(chunk: Any) -> str | None:
    """Return the text delta of an upstream chunk, if any."""
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) and content else None


def _sse(data: object) -> str:
    return f"data: {json.dumps(data)}\n\n"


async def _relay(fallback: ModelFallback, opened: OpenedStream) -> AsyncIterator[str]:
    """Yield SSE events, moving to another model if the current one fails."""
    current: OpenedStream | None = opened
    while current is not None:
        model = current.model
        chunks = current.chunks
        try:
            content = _delta_content(current.first_chunk)
            if content:
                yield _sse(_chunk_payload(model, content))
            async for chunk in chunks:
                content = _delta_content(chunk)
                if content:
                    yield _sse(_chunk_payload(model, content))
        except STREAM_ERRORS as exc:
            fallback.record_error(model, exc)
        else:
            yield _sse(_chunk_payload(model, finish_reason="stop"))
            yield "data: [DONE]\n\n"
            return
        finally:
            await chunks.aclose()
        current = await fallback.open()

    yield _sse(
        {
            "error": f"{ALL_MODELS_FAILED}: {fallback.last_error_message}",
            "model": fallback.last_model,
        }
    )
    yield "data: [DONE]\n\n"


def _failure_response(fallback: ModelFallback) -> HTTPException:
    if fallback.rejection is not None:
        status = fallback.rejection.response.status_code
        return HTTPException(
            status_code=status if status in _PASS_THROUGH_STATUSES else 502,
            detail=error_detail(
                "Inference request rejected", last_error=fallback.last_error_message
            ),
        )
    return HTTPException(
        status_code=503,
        detail=error_detail(ALL_MODELS_FAILED, last_error=fallback.last_error_message),
    )


@router.post("/inference", dependencies=[Depends(require_json_body)])
async def inference(
    request: Request,
    _token: str = Depends(require_token),
    client: InferenceClient = Depends(require_inference_client),
    state: ServerState = Depends(get_server_state),
) -> StreamingResponse:
    """Stream a chat completion from the first model that answers."""
    payload = await _read_payload(request)

    fixed_model = state.config.inference_model
    if fixed_model:
        models = [fixed_model]
    else:
        try:
            models = await client.list_models()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching models: %s", exc)
            raise HTTPException(
                status_code=500, detail=error_detail("Failed to fetch available models")
            ) from exc
        if not models:
            raise HTTPException(status_code=500, detail=error_detail("No model available"))

    fallback = ModelFallback(
        state.breaker, client, payload, models, fixed_model=bool(fixed_model)
    )
    opened = await fallback.open()
    if opened is None:
        raise _failure_response(fallback)

    return StreamingResponse(
        _relay(fallback, opened), media_type="text/event-stream", headers=SSE_HEADERS
    )
