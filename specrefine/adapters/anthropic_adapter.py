from __future__ import annotations

import logging
from typing import List

from anthropic import Anthropic
from anthropic import (
    AnthropicError,
    APIConnectionError,
    APITimeoutError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)

from specrefine.errors import ServiceError

from .llm_base import GenerationParams, LLMAdapter, LLMResponse
from .openai_adapter import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class AnthropicAdapter(LLMAdapter):
    """Messages API client for Claude models. The API has no JSON mode."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "claude-3-haiku-20240307",
        provider_id: str = "claude",
        timeout: float = 30.0,
    ) -> None:
        if not api_key:
            raise ServiceError(f"No API key configured for provider '{provider_id}'.", provider_id)
        self.provider_id = provider_id
        self.model = model
        self.supports_json_mode = False
        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, prompt: str, params: GenerationParams) -> LLMResponse:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=params.max_output_tokens,
                temperature=params.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except RateLimitError as exc:
            raise ServiceError(f"{self.provider_id} rate limit hit: {exc}", self.provider_id) from exc
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise ServiceError(
                f"{self.provider_id} rejected the API key: {exc}", self.provider_id
            ) from exc
        except (APITimeoutError, APIConnectionError) as exc:
            raise ServiceError(f"{self.provider_id} is unreachable: {exc}", self.provider_id) from exc
        except AnthropicError as exc:
            raise ServiceError(f"{self.provider_id} API error: {exc}", self.provider_id) from exc

        parts: List[str] = [
            getattr(block, "text", "") or ""
            for block in getattr(response, "content", None) or []
            if getattr(block, "type", None) == "text"
        ]
        content = "".join(parts)
        if not content.strip():
            raise ServiceError(f"Empty response from {self.provider_id}.", self.provider_id)

        usage = getattr(response, "usage", None)
        usage_payload = None
        if usage:
            input_tokens = getattr(usage, "input_tokens", None)
            output_tokens = getattr(usage, "output_tokens", None)
            usage_payload = {
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": (input_tokens or 0) + (output_tokens or 0),
            }
            logger.info(
                "[%s] model=%s input_tokens=%s output_tokens=%s",
                self.provider_id,
                self.model,
                input_tokens,
                output_tokens,
            )
        else:
            logger.info("[%s] usage not provided by SDK", self.provider_id)
        return LLMResponse(raw_text=content, usage=usage_payload)

    def generate(self, prompt: str, params: GenerationParams) -> str:
        return self.complete(prompt, params).raw_text
