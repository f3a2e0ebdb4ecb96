from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from minisearch_server.api.access_key import router as access_key_router
from minisearch_server.api.inference import router as inference_router
from minisearch_server.api.search import router as search_router
from minisearch_server.api.status import router as status_router
from minisearch_server.config import get_server_config
from minisearch_server.state import ServerState, build_server_state

# Required by the in-browser model runtimes (SharedArrayBuffer)
CROSS_ORIGIN_HEADERS = {
    "Cross-Origin-Embedder-Policy": "require-corp",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "cross-origin",
}


async def _http_error(request: Request, exc: StarletteHTTPException) -> Response:
    """Render HTTP errors as ``{"error": message}`` bodies."""
    detail = exc.detail
    body = detail if isinstance(detail, dict) else {"error": str(detail)}
    return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)


async def _cross_origin_isolation(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    response = await call_next(request)
    for name, value in CROSS_ORIGIN_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def create_app(state: ServerState | None = None) -> FastAPI:
    """Build the application around ``state`` (built from the environment if omitted)."""
    server_state = state or build_server_state(get_server_config())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await server_state.aclose()

    app = FastAPI(lifespan=lifespan)
    app.state.minisearch = server_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(server_state.config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(_cross_origin_isolation)
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]

    app.include_router(search_router)
    app.include_router(inference_router)
    app.include_router(status_router)
    app.include_router(access_key_router)
    return app
