from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List

from specrefine.errors import ServiceError
from specrefine.prompt_builder import DRAFT_MARKER

from .llm_base import GenerationParams, LLMAdapter, LLMResponse

SCENARIOS = (
    "default",
    "fenced",
    "truncated",
    "unescaped_quote",
    "missing_fields",
    "garbage",
    "empty",
)


@dataclass
class MockAdapter(LLMAdapter):
    """Offline provider that echoes the heuristic draft back as a refined spec.

    `scenario` selects a canned failure shape; `responses`, when given, are
    returned in order instead and the scenario is ignored.
    """

    scenario: str = "default"
    responses: List[str] | None = None
    provider_id: str = "mock"
    model: str = "mock-1"
    supports_json_mode: bool = True
    prompts: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.scenario not in SCENARIOS:
            raise ValueError(f"Unknown mock scenario: {self.scenario}")

    def complete(self, prompt: str, params: GenerationParams) -> LLMResponse:
        self.prompts.append(prompt)
        if self.responses is not None:
            index = len(self.prompts) - 1
            if index >= len(self.responses):
                raise ServiceError("Mock adapter has no scripted response left.", self.provider_id)
            return LLMResponse(raw_text=self.responses[index])
        return LLMResponse(raw_text=self._render(self._build_payload(prompt)))

    def generate(self, prompt: str, params: GenerationParams) -> str:
        return self.complete(prompt, params).raw_text

    def _render(self, payload: Dict) -> str:
        text = json.dumps(payload, indent=2)
        if self.scenario == "fenced":
            return f"Here is the refined spec:\n```json\n{text}\n```"
        if self.scenario == "truncated":
            # cut inside the closing ai_guidance value
            return text[: text.rindex("replace with")]
        if self.scenario == "unescaped_quote":
            return text.replace("Mock refinement", 'Mock "refined" output', 1)
        if self.scenario == "missing_fields":
            payload = {key: value for key, value in payload.items() if key != "requirements"}
            return json.dumps(payload, indent=2)
        if self.scenario == "garbage":
            return "I am unable to produce a specification for this request."
        if self.scenario == "empty":
            raise ServiceError("Empty response from mock.", self.provider_id)
        return text

    def _build_payload(self, prompt: str) -> Dict:
        draft: Dict = {}
        marker = prompt.find(DRAFT_MARKER)
        if marker != -1:
            start = prompt.find("{", marker)
            try:
                draft, _ = json.JSONDecoder().raw_decode(prompt[start:])
            except json.JSONDecodeError:
                draft = {}
        requirements = draft.get("requirements") or ["Implement the described functionality"]
        return {
            "title": draft.get("title") or "Untitled Requirement",
            "domain": draft.get("domain") or "fullstack",
            "description": draft.get("description") or "Refined by the mock provider.",
            "requirements": requirements,
            "components": draft.get("components") or [],
            "tech_stack": draft.get("tech_stack") or [],
            "acceptance_criteria": draft.get("acceptance_criteria")
            or [f"{item} works as described" for item in requirements],
            "ai_guidance": "Mock refinement; replace with a real provider for production specs.",
        }
