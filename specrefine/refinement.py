from __future__ import annotations

import logging
from typing import Tuple

from specrefine.adapters.llm_base import GenerationParams, LLMAdapter
from specrefine.errors import ServiceError, SpecValidationError
from specrefine.gates.repair import ResponseRepairEngine
from specrefine.gates.validation import require_mandatory_fields
from specrefine.models import HeuristicDraft, RawInput, RepairAttempt, StructuredSpec
from specrefine.prompt_builder import PromptBuilder, TemplatePromptBuilder

logger = logging.getLogger(__name__)


class RefinementServiceAdapter:
    """Asks one external provider to upgrade a heuristic draft into a spec.

    Exactly one request per call. Transport problems surface as
    ServiceError; output that cannot be repaired, or that lacks a mandatory
    field, surfaces as ParseError (SpecValidationError for the latter).
    """

    def __init__(
        self,
        client: LLMAdapter,
        prompt_builder: PromptBuilder | None = None,
        repair_engine: ResponseRepairEngine | None = None,
        params: GenerationParams | None = None,
    ) -> None:
        self.client = client
        self.params = params or GenerationParams(json_mode=client.supports_json_mode)
        self.prompt_builder = prompt_builder or TemplatePromptBuilder(
            strict_json=not (self.params.json_mode and client.supports_json_mode)
        )
        self.repair_engine = repair_engine or ResponseRepairEngine()

    @property
    def provider_id(self) -> str:
        return self.client.provider_id

    @property
    def model(self) -> str:
        return self.client.model

    def refine(self, raw_input: RawInput | str, draft: HeuristicDraft) -> StructuredSpec:
        spec, _ = self.refine_with_attempt(raw_input, draft)
        return spec

    def refine_with_attempt(
        self, raw_input: RawInput | str, draft: HeuristicDraft
    ) -> Tuple[StructuredSpec, RepairAttempt]:
        text = raw_input.text if isinstance(raw_input, RawInput) else raw_input
        prompt = self.prompt_builder.build_prompt(draft.domain_guess, text, draft)

        try:
            response = self.client.complete(prompt, self.params)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                f"{self.provider_id} request failed: {exc}", self.provider_id
            ) from exc

        raw_text = response.raw_text or ""
        if not raw_text.strip():
            raise ServiceError(f"Empty response from {self.provider_id}.", self.provider_id)

        outcome = self.repair_engine.recover_with_attempt(raw_text)
        require_mandatory_fields(outcome.payload)
        spec = StructuredSpec.from_payload(outcome.payload)
        missing = spec.missing_fields()
        if missing:
            raise SpecValidationError(missing)
        logger.debug(
            "[refine] %s/%s produced spec %r via %s",
            self.provider_id,
            self.model,
            spec.title,
            outcome.attempt.summary(),
        )
        return spec, outcome.attempt
