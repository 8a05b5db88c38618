from __future__ import annotations

import logging

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from specrefine.errors import ServiceError

from .llm_base import GenerationParams, LLMAdapter

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMAdapter):
    def __init__(self, api_key: str | None, model: str = "gemini-flash-latest") -> None:
        if not api_key:
            raise ServiceError("GEMINI_API_KEY is not set.", "gemini")
        self.provider_id = "gemini"
        self.model = model
        self.supports_json_mode = True
        self.client = genai.Client(api_key=api_key)

    def generate(self, prompt: str, params: GenerationParams) -> str:
        config = types.GenerateContentConfig(
            temperature=params.temperature,
            max_output_tokens=params.max_output_tokens,
            response_mime_type="application/json" if params.json_mode else None,
        )
        logger.info("[gemini] model=%s", self.model)
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except genai_errors.APIError as exc:
            raise ServiceError(f"Gemini API error ({exc.code}): {exc.message}", "gemini") from exc
        except httpx.HTTPError as exc:
            raise ServiceError(f"Gemini is unreachable: {exc}", "gemini") from exc

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise ServiceError("Gemini returned empty content.", "gemini")
        return text
