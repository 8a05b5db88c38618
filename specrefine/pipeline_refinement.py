from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from specrefine.cache import ResultCache
from specrefine.errors import ParseError, ServiceError, WizardDeclined
from specrefine.heuristics import HeuristicExtractor
from specrefine.models import (
    HeuristicDraft,
    ProcessingMetadata,
    RawInput,
    RefinementMethod,
    RepairAttempt,
    StructuredSpec,
    input_hash,
)
from specrefine.refinement import RefinementServiceAdapter
from specrefine.utils.time import utc_isoformat
from specrefine.wizard import InteractiveRefinementWizard

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Requirement"
FALLBACK_DOMAIN = "fullstack"


class PipelineState(str, Enum):
    INIT = "INIT"
    HEURISTIC_DONE = "HEURISTIC_DONE"
    CACHE_CHECK = "CACHE_CHECK"
    REFINING = "REFINING"
    REFINED = "REFINED"
    REFINE_FAILED = "REFINE_FAILED"
    WIZARD_PROMPTED = "WIZARD_PROMPTED"
    WIZARD_DONE = "WIZARD_DONE"
    HEURISTIC_FALLBACK = "HEURISTIC_FALLBACK"
    DONE = "DONE"


@dataclass
class PipelineResult:
    spec: StructuredSpec | None = None
    states: List[PipelineState] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    repair: RepairAttempt | None = None

    @property
    def metadata(self) -> ProcessingMetadata | None:
        """None until the run reaches DONE."""
        if self.spec is None:
            return None
        return self.spec.metadata


def heuristic_to_spec(raw_input: RawInput, draft: HeuristicDraft) -> StructuredSpec:
    """Map the draft straight onto the spec contract, leaving empty optionals absent."""
    return StructuredSpec(
        title=draft.title or UNTITLED,
        domain=draft.domain_guess or FALLBACK_DOMAIN,
        description=draft.description or raw_input.text[:500],
        requirements=draft.requirements or (raw_input.text,),
        components=draft.components or None,
        tech_stack=draft.tech_stack or None,
        acceptance_criteria=draft.acceptance_criteria or None,
    )


def _stdin_is_tty() -> bool:
    stream = sys.stdin
    return bool(stream is not None and stream.isatty())


class OrchestrationPipeline:
    """Drives one requirement text from raw input to a finished spec.

    heuristic draft -> cache -> provider refinement -> wizard or heuristic
    fallback. Every path ends in DONE with the four mandatory fields set;
    only InputError escapes to the caller.
    """

    def __init__(
        self,
        refiner: RefinementServiceAdapter | None = None,
        cache: ResultCache | None = None,
        wizard: InteractiveRefinementWizard | None = None,
        extractor: HeuristicExtractor | None = None,
        use_cache: bool = True,
        enable_wizard: bool = True,
        is_interactive: Callable[[], bool] = _stdin_is_tty,
    ) -> None:
        self.refiner = refiner
        self.cache = cache
        self.wizard = wizard
        self.extractor = extractor or HeuristicExtractor()
        self.use_cache = use_cache
        self.enable_wizard = enable_wizard
        self.is_interactive = is_interactive

    def process(self, text: str) -> StructuredSpec:
        return self.run(text).spec

    def run(self, text: str) -> PipelineResult:
        raw_input = RawInput.from_text(text)
        result = PipelineResult(states=[PipelineState.INIT])

        logger.info("[pipeline] analyzing requirement with heuristic extractor")
        draft = self.extractor.extract(raw_input)
        result.states.append(PipelineState.HEURISTIC_DONE)

        if self.refiner is None:
            self._warn(result, "No refinement provider configured.")
            result.states.append(PipelineState.REFINE_FAILED)
            return self._fallback(raw_input, draft, result)

        provider, model = self.refiner.provider_id, self.refiner.model
        caching = self.use_cache and self.cache is not None
        if caching:
            result.states.append(PipelineState.CACHE_CHECK)
            cached = self.cache.get(raw_input.text, provider, model)
            if cached is not None:
                logger.info("[pipeline] using cached result for %s/%s", provider, model)
                return self._finish(result, raw_input, draft, cached, "ai", cache_hit=True)

        result.states.append(PipelineState.REFINING)
        logger.info("[pipeline] refining with %s (%s)", provider, model)
        try:
            spec, result.repair = self.refiner.refine_with_attempt(raw_input, draft)
        except (ServiceError, ParseError) as exc:
            if isinstance(exc, ParseError):
                result.repair = RepairAttempt(tried=list(exc.strategies))
            self._warn(result, f"AI refinement failed: {exc}")
            result.states.append(PipelineState.REFINE_FAILED)
            return self._fallback(raw_input, draft, result)

        result.states.append(PipelineState.REFINED)
        spec = spec.without_metadata()
        if caching:
            self.cache.set(raw_input.text, provider, model, spec)
        return self._finish(result, raw_input, draft, spec, "ai", cache_hit=False)

    def _wizard_available(self) -> bool:
        return self.enable_wizard and self.wizard is not None and self.is_interactive()

    def _fallback(
        self, raw_input: RawInput, draft: HeuristicDraft, result: PipelineResult
    ) -> PipelineResult:
        if self._wizard_available():
            result.states.append(PipelineState.WIZARD_PROMPTED)
            try:
                spec = self.wizard.run(raw_input.text, draft)
            except WizardDeclined as exc:
                logger.info("[pipeline] wizard declined: %s", exc)
            else:
                missing = spec.missing_fields()
                if not missing:
                    result.states.append(PipelineState.WIZARD_DONE)
                    return self._finish(
                        result, raw_input, draft, spec.without_metadata(), "wizard", cache_hit=False
                    )
                self._warn(result, f"Wizard result is missing fields: {', '.join(missing)}")

        result.states.append(PipelineState.HEURISTIC_FALLBACK)
        self._warn(result, "Falling back to heuristic-only parsing (lower accuracy).")
        spec = heuristic_to_spec(raw_input, draft)
        return self._finish(result, raw_input, draft, spec, "heuristic", cache_hit=False)

    def _finish(
        self,
        result: PipelineResult,
        raw_input: RawInput,
        draft: HeuristicDraft,
        spec: StructuredSpec,
        method: RefinementMethod,
        cache_hit: bool,
    ) -> PipelineResult:
        metadata = ProcessingMetadata(
            refinement_method=method,
            cache_hit=cache_hit,
            heuristic_confidence=draft.confidence,
            input_hash=input_hash(raw_input.text),
            generated_at=utc_isoformat(),
            provider=self.refiner.provider_id if self.refiner else None,
            model=self.refiner.model if self.refiner else None,
        )
        result.spec = spec.with_metadata(metadata)
        result.states.append(PipelineState.DONE)
        return result

    def _warn(self, result: PipelineResult, message: str) -> None:
        logger.warning("[pipeline] %s", message)
        result.warnings.append(message)
