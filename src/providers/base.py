"""Abstract base for LLM providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ProviderResponse:
    status_code: int
    body: dict


class UpstreamTransportError(Exception):
    """The upstream could not be reached or returned an unreadable body."""


class LLMProvider(ABC):
    """Base class for LLM provider implementations."""

    @abstractmethod
    async def create_message(self, payload: dict, api_key: str) -> ProviderResponse:
        """Send a message-creation request to the provider.

        Args:
            payload: Provider-native request body.
            api_key: Upstream API key (shared or caller-supplied).

        Returns:
            ProviderResponse with status code and decoded JSON body.

        Raises:
            UpstreamTransportError: network failure, timeout, or non-JSON body.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass
