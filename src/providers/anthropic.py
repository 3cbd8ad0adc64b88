"""Anthropic Messages API provider."""

import httpx

from src.config.settings import get_settings
from src.providers.base import LLMProvider, ProviderResponse, UpstreamTransportError


class AnthropicProvider(LLMProvider):
    """Forwards requests to the Anthropic /v1/messages endpoint."""

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            settings = get_settings()
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.upstream_timeout_seconds, connect=10.0)
            )
        return self._client

    def _build_headers(self, api_key: str) -> dict:
        settings = get_settings()
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": settings.anthropic_version,
        }

    async def create_message(self, payload: dict, api_key: str) -> ProviderResponse:
        settings = get_settings()
        upstream_url = f"{settings.upstream_base_url.rstrip('/')}/v1/messages"
        headers = self._build_headers(api_key)

        client = await self._get_client()
        try:
            response = await client.post(upstream_url, json=payload, headers=headers)
        except httpx.ConnectError as e:
            raise UpstreamTransportError("Cannot reach upstream provider") from e
        except httpx.TimeoutException as e:
            raise UpstreamTransportError("Upstream provider timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"Upstream error: {type(e).__name__}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamTransportError(
                f"Upstream returned non-JSON body (status {response.status_code})"
            ) from e

        if not isinstance(body, dict):
            raise UpstreamTransportError(
                f"Upstream returned unexpected JSON (status {response.status_code})"
            )

        return ProviderResponse(status_code=response.status_code, body=body)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
