"""Tests for the HTTP API."""

import json

import pytest
from fastapi.testclient import TestClient

from multirouter.config import GatewaySettings
from multirouter.main import create_app
from multirouter.providers.models import AUTO_MODEL_ID
from multirouter.routing.classifier import ERROR_STATUS_MESSAGES
from tests.fakes import FakeBackend, make_registry


CHAT_URL = "/v1/chat/completions"


def _chat_body(model: str = "m", **extra) -> dict:
    return {"model": model, "messages": [{"role": "user", "content": "Hi"}], **extra}


@pytest.fixture
def make_settings(tmp_path):
    """Factory for isolated gateway settings."""

    def _make(**overrides) -> GatewaySettings:
        values = {
            "providers_config_path": str(tmp_path / "providers.yaml"),
            "api_key": None,
            "rate_limit_enabled": False,
            "log_format": "text",
        }
        values.update(overrides)
        return GatewaySettings(_env_file=None, **values)

    return _make


@pytest.fixture
def make_client(make_settings):
    """Factory for a started TestClient over a given registry."""
    clients = []

    def _make(registry, **overrides) -> TestClient:
        app = create_app(make_settings(**overrides), registry=registry)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


class TestChatCompletions:
    """Tests for POST /v1/chat/completions."""

    def test_buffered_completion(self, make_client):
        """Should return one chat.completion object."""
        client = make_client(make_registry([("a", ["m"], FakeBackend(["Hel", "lo"]))]))

        response = client.post(CHAT_URL, json=_chat_body())

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["id"].startswith("chatcmpl-")
        assert data["model"] == "m"
        assert data["choices"][0]["message"] == {"role": "assistant", "content": "Hello"}
        assert data["choices"][0]["finish_reason"] == "stop"
        assert data["usage"] == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

    def test_streaming_completion(self, make_client):
        """Should stream SSE frames ending with [DONE]."""
        client = make_client(make_registry([("a", ["m"], FakeBackend(["Hel", "lo"]))]))

        response = client.post(CHAT_URL, json=_chat_body(stream=True))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        frames = [f for f in response.text.split("\n\n") if f]
        assert frames[-1] == "data: [DONE]"
        payloads = [json.loads(f[len("data: "):]) for f in frames[:-1]]
        assert [p["choices"][0]["delta"] for p in payloads] == [
            {"role": "assistant"},
            {"content": "Hel"},
            {"content": "lo"},
            {},
        ]

    def test_failover_is_invisible(self, make_client):
        """Should serve from the next instance after a rate limit."""
        registry = make_registry(
            [("a", ["m"], FakeBackend.failing(429)), ("b", ["m"], FakeBackend(["ok"]))]
        )
        client = make_client(registry)

        response = client.post(CHAT_URL, json=_chat_body())

        assert response.status_code == 200
        assert response.json()["choices"][0]["message"]["content"] == "ok"

    def test_round_robin_model(self, make_client):
        """Should route multirouter-auto to an instance's first model."""
        client = make_client(make_registry([("a", ["first", "second"], FakeBackend(["x"]))]))

        response = client.post(CHAT_URL, json=_chat_body(model=AUTO_MODEL_ID))

        assert response.status_code == 200
        assert response.json()["model"] == "first"

    def test_unknown_model_is_404(self, make_client):
        """Should report model_not_found."""
        client = make_client(make_registry([("a", ["m"], FakeBackend())]))

        response = client.post(CHAT_URL, json=_chat_body(model="nope"))

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "model_not_found"
        assert error["type"] == "invalid_request_error"
        assert error["param"] == "model"

    def test_all_rate_limited_is_429(self, make_client):
        """Should report rate_limit_exceeded when every instance is out."""
        registry = make_registry([("a", ["m"], FakeBackend())])
        registry.mark_failed("a")
        client = make_client(registry)

        response = client.post(CHAT_URL, json=_chat_body())

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "rate_limit_exceeded"

    def test_no_providers_is_503(self, make_client):
        """Should report 503 when nothing is configured."""
        client = make_client(make_registry([]))

        response = client.post(CHAT_URL, json=_chat_body())

        assert response.status_code == 503
        assert response.json()["error"]["type"] == "server_error"

    def test_terminal_upstream_error_is_generic(self, make_client):
        """Should forward the classified status with a generic message."""
        client = make_client(make_registry([("a", ["m"], FakeBackend.failing(401))]))

        response = client.post(CHAT_URL, json=_chat_body())

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["message"] == ERROR_STATUS_MESSAGES[401]
        assert "upstream said" not in error["message"]

    def test_stream_rejection_is_json_error(self, make_client):
        """Should return a JSON error when no instance accepts a stream."""
        client = make_client(make_registry([("a", ["m"], FakeBackend.failing(None))]))

        response = client.post(CHAT_URL, json=_chat_body(stream=True))

        assert response.status_code == 502
        assert response.json()["error"]["message"] == "Provider error (status 502)"

    @pytest.mark.parametrize(
        "body,param",
        [
            ({"model": "m"}, "messages"),
            ({"model": "m", "messages": []}, "messages"),
            ({"messages": [{"role": "user", "content": "Hi"}]}, "model"),
            ({"model": "m", "messages": [{"role": "tool", "content": "Hi"}]}, "messages.0.role"),
            (_chat_body(temperature=5), "temperature"),
        ],
    )
    def test_validation_errors_are_400(self, make_client, body, param):
        """Should reject invalid bodies with the offending param."""
        client = make_client(make_registry([("a", ["m"], FakeBackend())]))

        response = client.post(CHAT_URL, json=body)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "invalid_request_error"
        assert error["param"] == param

    def test_unknown_fields_ignored(self, make_client):
        """Should accept and ignore fields it does not know."""
        client = make_client(make_registry([("a", ["m"], FakeBackend())]))

        response = client.post(CHAT_URL, json=_chat_body(user="abc", n=1, tools=[]))

        assert response.status_code == 200

    def test_max_completion_tokens_wins(self, make_client):
        """Should prefer max_completion_tokens over max_tokens."""
        backend = FakeBackend()
        client = make_client(make_registry([("a", ["m"], backend)]))

        client.post(CHAT_URL, json=_chat_body(max_tokens=10, max_completion_tokens=20))

        _, _, options = backend.calls[0]
        assert options.max_completion_tokens == 20


class TestModels:
    """Tests for GET /v1/models."""

    def test_lists_models(self, make_client):
        """Should list the virtual model first, then declared models."""
        client = make_client(make_registry([("a", ["m1", "m2"], FakeBackend())]))

        response = client.get("/v1/models")

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        assert [m["id"] for m in data["data"]] == [AUTO_MODEL_ID, "m1", "m2"]


class TestHealth:
    """Tests for GET /health."""

    def test_ok_when_active(self, make_client):
        """Should report ok with per-instance details."""
        client = make_client(make_registry([("a", ["m"], FakeBackend())]))

        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["default_strategy"] == "exhaust"
        assert data["providers"][0]["id"] == "a"
        assert data["providers"][0]["status"] == "active"
        assert data["providers"][0]["error_count"] == 0

    def test_degraded_when_none_active(self, make_client):
        """Should report degraded when every instance is rate-limited."""
        registry = make_registry([("a", ["m"], FakeBackend())])
        registry.mark_failed("a")
        client = make_client(registry)

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["providers"][0]["status"] == "rate-limited"
        assert data["providers"][0]["last_error_at"] is not None

    def test_unavailable_when_empty(self, make_client):
        """Should report unavailable with no instances."""
        client = make_client(make_registry([]))

        assert client.get("/health").json()["status"] == "unavailable"


class TestMiddleware:
    """Tests for authentication, rate limiting and correlation IDs."""

    def test_auth_required_when_configured(self, make_client):
        """Should reject requests without the bearer token."""
        client = make_client(make_registry([("a", ["m"], FakeBackend())]), api_key="secret")

        missing = client.post(CHAT_URL, json=_chat_body())
        wrong = client.post(
            CHAT_URL, json=_chat_body(), headers={"Authorization": "Bearer nope"}
        )
        right = client.post(
            CHAT_URL, json=_chat_body(), headers={"Authorization": "Bearer secret"}
        )

        assert missing.status_code == 401
        assert missing.json()["error"]["code"] == "invalid_api_key"
        assert wrong.status_code == 401
        assert right.status_code == 200

    def test_health_is_public(self, make_client):
        """Should serve health checks without credentials."""
        client = make_client(make_registry([]), api_key="secret")

        assert client.get("/health").status_code == 200

    def test_rate_limit(self, make_client):
        """Should return 429 with Retry-After once the budget is spent."""
        client = make_client(
            make_registry([("a", ["m"], FakeBackend())]),
            rate_limit_enabled=True,
            rate_limit_max=2,
        )

        statuses = [client.get("/v1/models").status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        response = client.get("/v1/models")
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["error"]["type"] == "rate_limit_error"

    def test_rate_limit_applies_before_auth(self, make_client):
        """Should spend the budget on requests with a wrong bearer token."""
        client = make_client(
            make_registry([("a", ["m"], FakeBackend())]),
            api_key="secret",
            rate_limit_enabled=True,
            rate_limit_max=2,
        )
        headers = {"Authorization": "Bearer wrong"}

        statuses = [client.get("/v1/models", headers=headers).status_code for _ in range(4)]

        assert statuses == [401, 401, 429, 429]

    def test_health_is_rate_limited(self, make_client):
        """Should count health checks against the client budget."""
        client = make_client(make_registry([]), rate_limit_enabled=True, rate_limit_max=1)

        assert client.get("/health").status_code == 200
        assert client.get("/health").status_code == 429

    def test_correlation_id_echoed(self, make_client):
        """Should echo a supplied correlation ID and generate one otherwise."""
        client = make_client(make_registry([]))

        supplied = client.get("/", headers={"X-Correlation-ID": "abc-123"})
        generated = client.get("/")

        assert supplied.headers["X-Correlation-ID"] == "abc-123"
        assert generated.headers["X-Correlation-ID"]
        assert "X-Response-Time" in generated.headers


class TestRoot:
    """Tests for GET /."""

    def test_root(self, make_client):
        """Should describe the service."""
        client = make_client(make_registry([]))

        data = client.get("/").json()

        assert data["name"] == "MultiRouter"
        assert data["health"] == "/health"
