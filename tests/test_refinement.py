import pytest

from specrefine.adapters.llm_base import GenerationParams, LLMResponse
from specrefine.adapters.mock_adapter import MockAdapter
from specrefine.errors import ParseError, ServiceError, SpecValidationError
from specrefine.heuristics import HeuristicExtractor
from specrefine.models import RawInput
from specrefine.prompt_builder import DRAFT_MARKER, RAW_INPUT_MARKER, TemplatePromptBuilder
from specrefine.refinement import RefinementServiceAdapter

TEXT = (
    "Build a todo app with React. Users can add tasks and delete tasks. "
    "The list should persist in local storage."
)


@pytest.fixture
def raw_input():
    return RawInput.from_text(TEXT)


@pytest.fixture
def draft(raw_input):
    return HeuristicExtractor().extract(raw_input)


class ExplodingClient:
    provider_id = "boom"
    model = "boom-1"
    supports_json_mode = False

    def complete(self, prompt, params):
        raise RuntimeError("socket closed")


def test_default_scenario_refines_draft(raw_input, draft):
    client = MockAdapter()
    spec, attempt = RefinementServiceAdapter(client).refine_with_attempt(raw_input, draft)

    assert spec.title == draft.title
    assert spec.requirements == draft.requirements
    assert spec.guidance.startswith("Mock refinement")
    assert spec.metadata is None
    assert attempt.succeeded == "strip_fences"
    assert len(client.prompts) == 1


def test_prompt_carries_raw_input_and_draft(raw_input, draft):
    client = MockAdapter()
    RefinementServiceAdapter(client).refine(raw_input, draft)
    prompt = client.prompts[0]

    assert RAW_INPUT_MARKER in prompt
    assert TEXT in prompt
    assert DRAFT_MARKER in prompt


def test_strict_rules_for_providers_without_json_mode(draft):
    prompt = TemplatePromptBuilder(strict_json=True).build_prompt("backend", TEXT, draft)

    assert "Output ONLY valid JSON" in prompt
    assert "{{" not in prompt


def test_fenced_scenario_is_repaired(raw_input, draft):
    spec, attempt = RefinementServiceAdapter(MockAdapter(scenario="fenced")).refine_with_attempt(
        raw_input, draft
    )

    assert attempt.succeeded == "strip_fences"
    assert spec.requirements == draft.requirements


def test_truncated_scenario_keeps_mandatory_fields(raw_input, draft):
    spec, attempt = RefinementServiceAdapter(
        MockAdapter(scenario="truncated")
    ).refine_with_attempt(raw_input, draft)

    assert attempt.succeeded == "close_structures"
    assert spec.missing_fields() == []
    assert spec.requirements == draft.requirements
    assert spec.guidance == "Mock refinement; "


def test_unescaped_quote_scenario_is_repaired(raw_input, draft):
    spec, attempt = RefinementServiceAdapter(
        MockAdapter(scenario="unescaped_quote")
    ).refine_with_attempt(raw_input, draft)

    assert attempt.succeeded == "escape_inner_quotes"
    assert spec.guidance.startswith('Mock "refined" output')


def test_missing_fields_are_listed(raw_input, draft):
    with pytest.raises(SpecValidationError) as excinfo:
        RefinementServiceAdapter(MockAdapter(scenario="missing_fields")).refine(raw_input, draft)

    assert excinfo.value.missing_fields == ["requirements"]
    assert "requirements" in str(excinfo.value)


def test_blank_mandatory_values_count_as_missing(raw_input, draft):
    client = MockAdapter(
        responses=['{"title": "  ", "domain": "backend", "description": "", "requirements": []}']
    )
    with pytest.raises(SpecValidationError) as excinfo:
        RefinementServiceAdapter(client).refine(raw_input, draft)

    assert excinfo.value.missing_fields == ["title", "description", "requirements"]


def test_garbage_scenario_raises_parse_error(raw_input, draft):
    with pytest.raises(ParseError) as excinfo:
        RefinementServiceAdapter(MockAdapter(scenario="garbage")).refine(raw_input, draft)

    assert not isinstance(excinfo.value, SpecValidationError)
    assert len(excinfo.value.strategies) == 7


def test_empty_scenario_raises_service_error(raw_input, draft):
    with pytest.raises(ServiceError):
        RefinementServiceAdapter(MockAdapter(scenario="empty")).refine(raw_input, draft)


def test_blank_response_raises_service_error(raw_input, draft):
    with pytest.raises(ServiceError, match="Empty response"):
        RefinementServiceAdapter(MockAdapter(responses=["   "])).refine(raw_input, draft)


def test_unexpected_client_errors_become_service_errors(raw_input, draft):
    with pytest.raises(ServiceError) as excinfo:
        RefinementServiceAdapter(ExplodingClient()).refine(raw_input, draft)

    assert excinfo.value.provider == "boom"
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_extension_fields_and_camel_case_are_kept(raw_input, draft):
    client = MockAdapter(
        responses=[
            '{"title": "Todo app", "domain": "frontend", "description": "Tasks", '
            '"requirements": ["Add tasks"], "techStack": ["React"], "priority": "high"}'
        ]
    )
    spec = RefinementServiceAdapter(client).refine(raw_input, draft)

    assert spec.tech_stack == ("React",)
    assert spec.extension_fields == {"priority": "high"}
    assert spec.to_dict()["priority"] == "high"


def test_mock_generate_returns_text():
    params = GenerationParams()
    client = MockAdapter(responses=['{"a": 1}'])

    assert client.generate("prompt", params) == '{"a": 1}'
    assert isinstance(MockAdapter(responses=["x"]).complete("p", params), LLMResponse)
