"""Provider registry — singleton map of provider name → instance."""

from src.providers.anthropic import AnthropicProvider
from src.providers.base import LLMProvider

DEFAULT_PROVIDER = "anthropic"

_providers: dict[str, LLMProvider] = {}


def get_provider(name: str = DEFAULT_PROVIDER) -> LLMProvider:
    """Get or create a provider instance by name."""
    if name in _providers:
        return _providers[name]

    if name == "anthropic":
        _providers[name] = AnthropicProvider()
    else:
        raise ValueError(f"Unknown provider: {name}")

    return _providers[name]


async def close_all_providers() -> None:
    """Gracefully shut down all provider connections."""
    for provider in _providers.values():
        await provider.close()
    _providers.clear()
