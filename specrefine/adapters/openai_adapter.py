from __future__ import annotations

import logging
from typing import Dict

from openai import OpenAI
from openai import (
    APIConnectionError,
    APITimeoutError,
    AuthenticationError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
)

from specrefine.errors import ServiceError

from .llm_base import GenerationParams, LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a requirement analyzer. Output valid JSON only, no markdown or code blocks. "
    "Ensure all strings are properly escaped and terminated."
)


class OpenAIAdapter(LLMAdapter):
    """Chat-completions client for OpenAI and OpenAI-compatible endpoints."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        provider_id: str = "openai",
        base_url: str | None = None,
        default_headers: Dict[str, str] | None = None,
        supports_json_mode: bool = True,
        timeout: float = 30.0,
    ) -> None:
        if not api_key:
            raise ServiceError(f"No API key configured for provider '{provider_id}'.", provider_id)
        self.provider_id = provider_id
        self.model = model
        self.supports_json_mode = supports_json_mode
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            default_headers=default_headers,
            timeout=timeout,
            max_retries=0,
        )

    def complete(self, prompt: str, params: GenerationParams) -> LLMResponse:
        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": params.max_output_tokens,
            "temperature": params.temperature,
        }
        if params.json_mode and self.supports_json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(**request)
        except RateLimitError as exc:
            error = getattr(exc, "body", None)
            code = error.get("code") if isinstance(error, dict) else None
            if code == "insufficient_quota":
                raise ServiceError(
                    f"{self.provider_id} API quota exceeded. Check billing for the account.",
                    self.provider_id,
                ) from exc
            raise ServiceError(f"{self.provider_id} rate limit hit: {exc}", self.provider_id) from exc
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise ServiceError(
                f"{self.provider_id} rejected the API key: {exc}", self.provider_id
            ) from exc
        except (APITimeoutError, APIConnectionError) as exc:
            raise ServiceError(f"{self.provider_id} is unreachable: {exc}", self.provider_id) from exc
        except OpenAIError as exc:
            raise ServiceError(f"{self.provider_id} API error: {exc}", self.provider_id) from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ServiceError(f"Empty response from {self.provider_id}.", self.provider_id)

        usage = getattr(response, "usage", None)
        usage_payload = None
        if usage:
            usage_payload = {
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
                "total_tokens": getattr(usage, "total_tokens", None),
            }
            logger.info(
                "[%s] model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
                self.provider_id,
                self.model,
                usage_payload["prompt_tokens"],
                usage_payload["completion_tokens"],
                usage_payload["total_tokens"],
            )
        else:
            logger.info("[%s] usage not provided by SDK", self.provider_id)
        return LLMResponse(raw_text=content, usage=usage_payload)

    def generate(self, prompt: str, params: GenerationParams) -> str:
        return self.complete(prompt, params).raw_text
