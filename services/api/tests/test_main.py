import pytest
from fastapi.testclient import TestClient

from main import main as run_main
from minisearch_server.auth.rate_limit import InMemoryRateLimiter
from minisearch_server.inference.client import InferenceClient
from minisearch_server.main import create_app
from minisearch_server.state import ServerState


@pytest.fixture
def fixed_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the real token file."""
    monkeypatch.setattr("minisearch_server.state.get_search_token", lambda: "secret")


def test_main_no_server() -> None:
    """Return success when main is called without starting the server."""
    assert run_main(run_server=False) == 0


@pytest.mark.usefixtures("fixed_secret")
def test_create_app_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Build state from environment variables."""
    monkeypatch.setenv("SEARXNG_URL", "http://searxng.internal:8888/")
    monkeypatch.setenv("ACCESS_KEYS", "alpha, beta")
    monkeypatch.setenv("CIRCUIT_FAILURE_THRESHOLD", "7")

    app = create_app()
    state = app.state.minisearch

    assert state.config.access_keys == ("alpha", "beta")
    assert state.search_client.base_url == "http://searxng.internal:8888"
    assert state.breaker.config.failure_threshold == 7
    assert state.inference_client is None
    assert isinstance(state.gate.rate_limiter, InMemoryRateLimiter)


@pytest.mark.usefixtures("fixed_secret")
def test_create_app_with_inference(monkeypatch: pytest.MonkeyPatch) -> None:
    """Enable the inference client when a base URL and key are set."""
    monkeypatch.setenv("INTERNAL_OPENAI_COMPATIBLE_API_BASE_URL", "http://llm.internal/v1")
    monkeypatch.setenv("INTERNAL_OPENAI_COMPATIBLE_API_KEY", "sk-test")

    state = create_app().state.minisearch

    assert state.config.inference_enabled is True
    assert isinstance(state.inference_client, InferenceClient)


@pytest.mark.usefixtures("fixed_secret")
def test_lifespan_closes_clients() -> None:
    """Close backend clients on shutdown."""
    app = create_app()

    with TestClient(app) as client:
        assert client.get("/status").status_code == 200

    assert app.state.minisearch.search_client._client.is_closed


def test_cors_preflight(server_state: ServerState) -> None:
    """Allow configured origins."""
    client = TestClient(create_app(server_state))

    response = client.options(
        "/search/text",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
