from __future__ import annotations

from specrefine.config import Settings

from .anthropic_adapter import AnthropicAdapter
from .gemini_adapter import GeminiAdapter
from .llm_base import LLMAdapter
from .mock_adapter import MockAdapter
from .openai_adapter import OpenAIAdapter

OPENROUTER_HEADERS = {"X-Title": "specrefine"}


def create_adapter(settings: Settings, api_key: str | None) -> LLMAdapter:
    """Build the provider client named by settings; raises ServiceError without a key."""
    config = settings.provider_config
    model = settings.resolved_model

    if config.name == "mock":
        return MockAdapter(scenario=settings.mock_scenario, model=model)
    if config.name == "gemini":
        return GeminiAdapter(api_key, model=model)
    if config.name == "claude":
        return AnthropicAdapter(api_key, model=model)
    return OpenAIAdapter(
        api_key,
        model=model,
        provider_id=config.name,
        base_url=config.base_url,
        default_headers=OPENROUTER_HEADERS if config.name == "openrouter" else None,
        supports_json_mode=config.json_mode,
    )
