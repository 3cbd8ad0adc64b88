"""Integration tests for src/main.py — chat endpoint via ASGI transport."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

import src.providers.registry as registry_mod
from src.providers.base import ProviderResponse, UpstreamTransportError
from src.security.ratelimit import reset_admission_controller
from tests.conftest import upstream_error, upstream_success

CHAT = "/api/chat"
MESSAGES = [{"role": "user", "content": "Dentist next Tuesday at 3pm"}]
CLIENT = {"X-Forwarded-For": "1.2.3.4"}


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Reset all singletons/state between integration tests."""
    monkeypatch.setattr(registry_mod, "_providers", {})
    reset_admission_controller()
    yield
    monkeypatch.setattr(registry_mod, "_providers", {})
    reset_admission_controller()


@pytest.fixture
def mock_provider():
    """Mock provider that returns a successful response."""
    provider = AsyncMock()
    provider.create_message.return_value = ProviderResponse(
        status_code=200, body=upstream_success("[]"),
    )
    return provider


@pytest.fixture
def app_client(override_settings, mock_provider):
    """httpx AsyncClient wired to the FastAPI app with mocked provider."""
    override_settings(ANTHROPIC_API_KEY="sk-shared-test", RATE_LIMIT="10")
    with patch("src.proxy.handler.get_provider", return_value=mock_provider):
        from src.main import app
        transport = httpx.ASGITransport(app=app)
        client = httpx.AsyncClient(transport=transport, base_url="http://test")
        yield client


async def _exhaust(client, n=10, headers=CLIENT):
    for _ in range(n):
        resp = await client.post(CHAT, json={"messages": MESSAGES}, headers=headers)
        assert resp.status_code == 200


class TestHealthEndpoint:

    async def test_health(self, app_client):
        resp = await app_client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert "version" in data


class TestMethods:

    async def test_preflight(self, app_client, mock_provider):
        resp = await app_client.options(CHAT)
        assert resp.status_code == 200
        assert resp.content == b""
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["access-control-allow-methods"] == "POST, OPTIONS"
        assert resp.headers["access-control-allow-headers"] == "Content-Type"
        mock_provider.create_message.assert_not_called()

    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE", "TRACE", "PROPFIND"])
    async def test_method_not_allowed(self, app_client, method):
        resp = await app_client.request(method, CHAT)
        assert resp.status_code == 405
        assert resp.json() == {"error": "Method not allowed"}
        assert resp.headers["access-control-allow-origin"] == "*"


class TestValidation:

    async def test_scenario_c_messages_not_array(self, app_client, mock_provider):
        resp = await app_client.post(CHAT, json={"messages": "not-an-array"}, headers=CLIENT)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Messages are required"}
        mock_provider.create_message.assert_not_called()

    async def test_missing_messages(self, app_client):
        resp = await app_client.post(CHAT, json={}, headers=CLIENT)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Messages are required"}

    async def test_invalid_json(self, app_client, mock_provider):
        resp = await app_client.post(
            CHAT, content=b"{not json", headers={**CLIENT, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Messages are required"}
        mock_provider.create_message.assert_not_called()

    async def test_empty_body(self, app_client):
        resp = await app_client.post(CHAT, headers=CLIENT)
        assert resp.status_code == 400


class TestSharedKey:

    async def test_scenario_d_success(self, app_client, mock_provider):
        resp = await app_client.post(CHAT, json={"messages": MESSAGES}, headers=CLIENT)

        assert resp.status_code == 200
        assert resp.json() == {"content": "[]", "usingUserKey": False}
        assert resp.headers["x-ratelimit-limit"] == "10"
        assert resp.headers["x-ratelimit-remaining"] == "9"
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "x-request-id" in resp.headers
        assert mock_provider.create_message.call_args.args[1] == "sk-shared-test"

    async def test_rate_limit_exceeded(self, app_client, mock_provider):
        await _exhaust(app_client)
        mock_provider.create_message.reset_mock()

        resp = await app_client.post(CHAT, json={"messages": MESSAGES}, headers=CLIENT)
        assert resp.status_code == 429
        data = resp.json()
        assert data["resetIn"] == 60
        assert data["error"] == (
            "Rate limit exceeded. Try again in 60 minutes, or use your own API key."
        )
        assert resp.headers["x-ratelimit-limit"] == "10"
        assert resp.headers["x-ratelimit-remaining"] == "0"
        mock_provider.create_message.assert_not_called()

    async def test_other_identity_unaffected(self, app_client):
        await _exhaust(app_client)
        resp = await app_client.post(
            CHAT, json={"messages": MESSAGES}, headers={"X-Real-IP": "5.6.7.8"},
        )
        assert resp.status_code == 200
        assert resp.headers["x-ratelimit-remaining"] == "9"

    async def test_server_key_not_configured(self, override_settings, mock_provider):
        override_settings(ANTHROPIC_API_KEY="")
        with patch("src.proxy.handler.get_provider", return_value=mock_provider):
            from src.main import app
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                resp = await client.post(CHAT, json={"messages": MESSAGES}, headers=CLIENT)

        assert resp.status_code == 500
        assert resp.json() == {"error": "Server API key not configured"}
        assert "x-ratelimit-remaining" not in resp.headers
        mock_provider.create_message.assert_not_called()


class TestUserKey:

    async def test_scenario_e_bypasses_exhausted_limit(self, app_client, mock_provider):
        await _exhaust(app_client)
        mock_provider.create_message.reset_mock()

        resp = await app_client.post(
            CHAT, json={"messages": MESSAGES, "userApiKey": "sk-test"}, headers=CLIENT,
        )
        assert resp.status_code == 200
        assert resp.json() == {"content": "[]", "usingUserKey": True}
        assert "x-ratelimit-remaining" not in resp.headers
        assert mock_provider.create_message.call_args.args[1] == "sk-test"

    async def test_user_key_not_in_response(self, app_client, mock_provider):
        mock_provider.create_message.return_value = ProviderResponse(
            status_code=401, body=upstream_error("invalid x-api-key"),
        )
        resp = await app_client.post(
            CHAT, json={"messages": MESSAGES, "userApiKey": "sk-secret-123"}, headers=CLIENT,
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "invalid x-api-key"}
        assert "sk-secret-123" not in resp.text


class TestUpstreamFailures:

    async def test_transport_failure(self, app_client, mock_provider):
        mock_provider.create_message.side_effect = UpstreamTransportError("Upstream provider timed out")
        resp = await app_client.post(CHAT, json={"messages": MESSAGES}, headers=CLIENT)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process request"}
        assert resp.headers["x-ratelimit-remaining"] == "9"

    async def test_unexpected_exception(self, app_client, mock_provider):
        mock_provider.create_message.side_effect = KeyError("boom")
        resp = await app_client.post(CHAT, json={"messages": MESSAGES}, headers=CLIENT)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process request"}
        assert "boom" not in resp.text

    async def test_upstream_rejection_counts_against_window(self, app_client, mock_provider):
        mock_provider.create_message.return_value = ProviderResponse(
            status_code=400, body=upstream_error("messages: field required", "invalid_request_error"),
        )
        resp = await app_client.post(CHAT, json={"messages": MESSAGES}, headers=CLIENT)
        assert resp.status_code == 400
        assert resp.json() == {"error": "messages: field required"}
        assert resp.headers["x-ratelimit-remaining"] == "9"
