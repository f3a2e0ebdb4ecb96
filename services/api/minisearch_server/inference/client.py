"""Client for an OpenAI-compatible chat completions API."""

from __future__ import annotations

import json
import random
from collections.abc import AsyncGenerator, Collection, Iterable
from typing import Any

import httpx

from minisearch_server.errors import StreamInterruptedError

# Upstream rejections that still say something about the backend's health
_RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def select_random_model(
    models: Iterable[str], excluded: Collection[str] = ()
) -> str | None:
    """Pick a random model id that is not in ``excluded``."""
    candidates = [model for model in models if model not in excluded]
    if not candidates:
        return None
    return random.choice(candidates)


def is_backend_failure(exc: Exception) -> bool:
    """Return False for 4xx responses caused by the request itself."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status in _RETRYABLE_CLIENT_STATUSES
    return True


class InferenceClient:
    """Async OpenAI-compatible API client.

    Example:
        >>> client = InferenceClient("https://api.example.com/v1", "sk-...")
        >>> models = await client.list_models()
        >>> async for chunk in client.stream_chat_completion(models[0], {"messages": [...]}):
        ...     print(chunk["choices"][0]["delta"])
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=60.0)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def list_models(self) -> list[str]:
        """Return the ids of the models served by the backend."""
        response = await self._client.get(f"{self.base_url}/models", headers=self._headers)
        response.raise_for_status()
        data = response.json().get("data") or []
        return [item["id"] for item in data if item.get("id")]

    async def stream_chat_completion(
        self, model: str, payload: dict[str, Any]
    ) -> AsyncGenerator[dict[str, Any], None]:
        """
        Stream a chat completion as decoded ``chat.completion.chunk`` objects.

        Args:
            model: Model id
            payload: Request body without ``model``; ``messages`` is required

        Yields:
            Each server-sent event payload up to ``[DONE]``

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses
            StreamInterruptedError: If the stream ends without ``[DONE]``
            ValueError: If an event is not valid JSON
        """
        body = {**payload, "model": model, "stream": True}
        async with self._client.stream(
            "POST",
            f"{self.base_url}/chat/completions",
            json=body,
            headers=self._headers,
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    return
                yield json.loads(data)

        raise StreamInterruptedError(model)

    async def aclose(self) -> None:
        await self._client.aclose()
