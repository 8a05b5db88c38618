import pytest

from specrefine.errors import InputError
from specrefine.heuristics import HeuristicExtractor
from specrefine.models import RawInput

TODO_APP = (
    "Build a React dashboard with user authentication. "
    "Users must be able to reset passwords. "
    "Use PostgreSQL for storage."
)


@pytest.fixture
def extractor():
    return HeuristicExtractor()


def test_extract_builds_draft_from_sentences(extractor):
    draft = extractor.extract(TODO_APP)

    assert draft.title == "Build a React dashboard with user authentication"
    assert draft.description == (
        "Build a React dashboard with user authentication. "
        "Users must be able to reset passwords. "
        "Use PostgreSQL for storage"
    )
    assert draft.requirements == ("Build a React dashboard with user authentication",)
    assert draft.acceptance_criteria == ("Users must be able to reset passwords",)
    assert draft.tech_stack == ("React",)
    assert "React" in draft.components


def test_domain_ties_keep_declaration_order(extractor):
    # one frontend keyword, one backend keyword
    assert extractor.detect_domain("the dashboard calls the api") == "frontend"


def test_domain_highest_score_wins(extractor):
    lower = "the dashboard calls the api endpoint backed by a database"
    assert extractor.domain_scores(lower)["backend"] == 3
    assert extractor.detect_domain(lower) == "backend"


def test_domain_is_none_without_keywords(extractor):
    assert extractor.detect_domain("lorem ipsum dolor sit amet consectetur") is None


def test_domain_keywords_match_whole_words(extractor):
    # "authority" must not count as "auth", "capital" must not count as "api"
    assert extractor.detect_domain("the authority of the capital city") is None


def test_long_first_sentence_title_is_truncated(extractor):
    text = (
        "Create a multi tenant invoicing platform that supports recurring billing "
        "and tax reports for every region. Add exports."
    )
    draft = extractor.extract(text)

    assert draft.title == "Create a multi tenant invoicing platform that supports..."


def test_requirements_fall_back_to_all_sentences(extractor):
    draft = extractor.extract("The weather is nice today. Birds are singing loudly outside.")

    assert draft.requirements == ("The weather is nice today", "Birds are singing loudly outside")


def test_tech_stack_is_deduplicated_in_first_seen_order(extractor):
    assert extractor.detect_tech_stack("react, docker and react with redis.") == (
        "React",
        "Docker",
        "Redis",
    )


def test_confidence_is_zero_for_featureless_text(extractor):
    assert extractor.confidence("lorem ipsum dolor sit amet consectetur") == 0.0


def test_confidence_stays_within_bounds(extractor):
    text = " ".join(
        ["Build a react node django docker redis postgres api dashboard with tests."] * 10
    )
    score = extractor.confidence(text)

    assert 0.0 < score <= 1.0


def test_extract_is_deterministic(extractor):
    assert extractor.extract(TODO_APP) == extractor.extract(TODO_APP)


def test_short_input_is_rejected(extractor):
    with pytest.raises(InputError):
        extractor.extract("too short")


def test_raw_input_is_trimmed_before_length_check():
    with pytest.raises(InputError):
        RawInput.from_text("   short text here   ")
