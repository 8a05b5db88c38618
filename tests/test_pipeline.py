import pytest

from specrefine.adapters.mock_adapter import MockAdapter
from specrefine.cache import ResultCache
from specrefine.errors import InputError, WizardDeclined
from specrefine.heuristics import HeuristicExtractor
from specrefine.models import DOMAINS, StructuredSpec, input_hash
from specrefine.pipeline_refinement import OrchestrationPipeline, PipelineResult, PipelineState
from specrefine.refinement import RefinementServiceAdapter

S = PipelineState

TODO_APP = (
    "Build a simple todo app where users can add, edit and delete tasks. "
    "Tasks should be saved locally."
)


class DecliningWizard:
    def __init__(self):
        self.calls = 0

    def run(self, raw_input, draft):
        self.calls += 1
        raise WizardDeclined("no thanks")


class ScriptedWizard:
    def __init__(self, requirements=("Add tasks from the keyboard",)):
        self.requirements = tuple(requirements)
        self.calls = 0

    def run(self, raw_input, draft):
        self.calls += 1
        return StructuredSpec(
            title="Todo app",
            domain="frontend",
            description="A todo app refined by hand",
            requirements=self.requirements,
            guidance="Keep it simple.",
        )


def _refiner(scenario="default"):
    return RefinementServiceAdapter(MockAdapter(scenario=scenario))


def _pipeline(refiner=None, wizard=None, interactive=False, **kwargs):
    return OrchestrationPipeline(
        refiner=refiner,
        cache=kwargs.pop("cache", ResultCache()),
        wizard=wizard,
        is_interactive=lambda: interactive,
        **kwargs,
    )


def test_heuristic_only_run_without_provider():
    result = _pipeline().run(TODO_APP)
    spec = result.spec

    assert result.states == [
        S.INIT,
        S.HEURISTIC_DONE,
        S.REFINE_FAILED,
        S.HEURISTIC_FALLBACK,
        S.DONE,
    ]
    assert spec.missing_fields() == []
    assert spec.domain in DOMAINS
    assert result.metadata.refinement_method == "heuristic"
    assert result.metadata.ai_refinement_applied is False
    assert result.metadata.cache_hit is False
    assert result.metadata.provider is None
    assert spec.guidance is None
    assert result.warnings


def test_heuristic_fallback_fills_defaults():
    result = _pipeline().run("Lorem ipsum dolor sit amet, consectetur adipiscing elit.")
    data = result.spec.to_dict(include_metadata=False)

    assert data["domain"] == "fullstack"
    assert data["requirements"] == ["Lorem ipsum dolor sit amet, consectetur adipiscing elit"]
    assert "tech_stack" not in data
    assert "ai_guidance" not in data


def test_heuristic_fallback_without_sentences():
    text = "!" * 24
    spec = _pipeline().process(text)

    assert spec.title == "Untitled Requirement"
    assert spec.description == text
    assert spec.requirements == (text,)


def test_successful_refinement_is_cached():
    cache = ResultCache()
    pipeline = _pipeline(refiner=_refiner(), cache=cache)
    result = pipeline.run(TODO_APP)

    assert result.states == [
        S.INIT,
        S.HEURISTIC_DONE,
        S.CACHE_CHECK,
        S.REFINING,
        S.REFINED,
        S.DONE,
    ]
    assert result.metadata.refinement_method == "ai"
    assert result.metadata.provider == "mock"
    assert result.metadata.model == "mock-1"
    assert result.metadata.input_hash == input_hash(TODO_APP)
    assert result.metadata.heuristic_confidence == HeuristicExtractor().extract(TODO_APP).confidence
    assert result.repair.succeeded == "strip_fences"
    assert len(cache) == 1


def test_repeat_input_is_served_from_cache():
    client = MockAdapter()
    pipeline = _pipeline(refiner=RefinementServiceAdapter(client))
    first = pipeline.run(TODO_APP)
    second = pipeline.run("  " + TODO_APP.upper() + "  ")

    assert second.states == [S.INIT, S.HEURISTIC_DONE, S.CACHE_CHECK, S.DONE]
    assert second.metadata.cache_hit is True
    assert second.metadata.refinement_method == "ai"
    assert second.spec.to_dict(include_metadata=False) == first.spec.to_dict(include_metadata=False)
    assert len(client.prompts) == 1


def test_cache_disabled_skips_cache_check():
    cache = ResultCache()
    result = _pipeline(refiner=_refiner(), cache=cache, use_cache=False).run(TODO_APP)

    assert S.CACHE_CHECK not in result.states
    assert len(cache) == 0
    assert cache.stats()["misses"] == 0


@pytest.mark.parametrize("scenario", ["empty", "garbage", "missing_fields"])
def test_failed_refinement_is_not_cached(scenario):
    cache = ResultCache()
    result = _pipeline(refiner=_refiner(scenario), cache=cache).run(TODO_APP)

    assert S.REFINE_FAILED in result.states
    assert result.metadata.refinement_method == "heuristic"
    assert result.metadata.provider == "mock"
    assert len(cache) == 0


def test_parse_failure_records_tried_strategies():
    result = _pipeline(refiner=_refiner("garbage")).run(TODO_APP)

    assert len(result.repair.tried) == 7
    assert result.repair.succeeded is None


def test_wizard_runs_after_refinement_failure():
    wizard = ScriptedWizard()
    result = _pipeline(refiner=_refiner("garbage"), wizard=wizard, interactive=True).run(TODO_APP)

    assert result.states[-4:] == [S.REFINE_FAILED, S.WIZARD_PROMPTED, S.WIZARD_DONE, S.DONE]
    assert result.metadata.refinement_method == "wizard"
    assert result.metadata.ai_refinement_applied is True
    assert result.spec.guidance == "Keep it simple."
    assert wizard.calls == 1


def test_wizard_result_is_not_cached():
    cache = ResultCache()
    _pipeline(refiner=_refiner("empty"), cache=cache, wizard=ScriptedWizard(), interactive=True).run(
        TODO_APP
    )

    assert len(cache) == 0


def test_declined_wizard_falls_back_to_heuristic():
    wizard = DecliningWizard()
    result = _pipeline(wizard=wizard, interactive=True).run(TODO_APP)

    assert result.states[-3:] == [S.WIZARD_PROMPTED, S.HEURISTIC_FALLBACK, S.DONE]
    assert result.metadata.refinement_method == "heuristic"
    assert wizard.calls == 1


def test_incomplete_wizard_result_falls_back_to_heuristic():
    result = _pipeline(wizard=ScriptedWizard(requirements=()), interactive=True).run(TODO_APP)

    assert result.states[-3:] == [S.WIZARD_PROMPTED, S.HEURISTIC_FALLBACK, S.DONE]
    assert any("requirements" in warning for warning in result.warnings)


def test_wizard_needs_a_terminal():
    wizard = ScriptedWizard()
    result = _pipeline(wizard=wizard, interactive=False).run(TODO_APP)

    assert S.WIZARD_PROMPTED not in result.states
    assert wizard.calls == 0


def test_wizard_can_be_disabled():
    wizard = ScriptedWizard()
    result = _pipeline(wizard=wizard, interactive=True, enable_wizard=False).run(TODO_APP)

    assert S.WIZARD_PROMPTED not in result.states
    assert wizard.calls == 0


@pytest.mark.parametrize("scenario", [None, "default", "truncated", "empty", "garbage", "missing_fields"])
@pytest.mark.parametrize(
    "wizard, interactive",
    [(None, False), (DecliningWizard(), True), (ScriptedWizard(), True), (ScriptedWizard(), False)],
)
def test_every_path_ends_with_a_complete_spec(scenario, wizard, interactive):
    refiner = _refiner(scenario) if scenario else None
    result = _pipeline(refiner=refiner, wizard=wizard, interactive=interactive).run(TODO_APP)

    assert result.states[0] == S.INIT
    assert result.states[-1] == S.DONE
    assert result.spec.missing_fields() == []
    assert result.metadata is not None


def test_short_input_aborts_the_run():
    with pytest.raises(InputError):
        _pipeline(refiner=_refiner()).run("   too short   ")


def test_plain_todo_request_without_provider_uses_heuristics():
    result = _pipeline().run("Build a todo app with add, edit, and delete using a web framework")

    assert result.states[-1] == S.DONE
    assert result.metadata.refinement_method == "heuristic"
    assert len(result.spec.requirements) >= 1


def test_deeply_nested_provider_response_falls_back_to_heuristic():
    refiner = RefinementServiceAdapter(MockAdapter(responses=["[" * 100000]))
    result = _pipeline(refiner=refiner).run(TODO_APP)

    assert result.states[-2:] == [S.HEURISTIC_FALLBACK, S.DONE]
    assert result.metadata.refinement_method == "heuristic"
    assert result.repair.tried[-1] == "backward_extraction"


def test_metadata_is_none_before_the_run_finishes():
    result = PipelineResult()

    assert result.metadata is None
