from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Protocol


@dataclass
class LLMResponse:
    raw_text: str
    usage: Dict[str, int | None] | None = None


@dataclass(frozen=True)
class GenerationParams:
    temperature: float = 0.3
    max_output_tokens: int = 2000
    json_mode: bool = True


class LLMAdapter(Protocol):
    provider_id: str
    model: str
    supports_json_mode: bool = False

    def generate(self, prompt: str, params: GenerationParams) -> str:
        raise NotImplementedError

    def complete(self, prompt: str, params: GenerationParams) -> LLMResponse:
        return LLMResponse(raw_text=self.generate(prompt, params))
