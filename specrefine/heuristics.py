from __future__ import annotations

import re
from typing import Dict, List, Tuple

from specrefine.models import HeuristicDraft, RawInput, unique

TECH_KEYWORDS: Tuple[str, ...] = (
    "react", "vue", "angular", "svelte", "next", "nuxt",
    "node", "express", "nestjs", "fastify", "koa",
    "django", "flask", "fastapi", "spring", "laravel",
    "postgres", "mysql", "mongodb", "redis", "elasticsearch",
    "docker", "kubernetes", "aws", "azure", "gcp",
    "typescript", "javascript", "python", "java", "go", "rust",
    "graphql", "rest", "grpc", "websocket",
    "jest", "mocha", "pytest", "junit",
)

# Declaration order breaks score ties.
DOMAIN_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "frontend": ("ui", "component", "dashboard", "page", "responsive", "interface", "form", "button", "modal", "layout"),
    "backend": ("api", "endpoint", "database", "authentication", "service", "server", "auth", "jwt", "session"),
    "fullstack": ("fullstack", "full-stack", "full stack", "end-to-end", "e2e"),
    "mobile": ("mobile", "ios", "android", "app", "native", "react native", "flutter"),
    "infrastructure": ("deployment", "ci/cd", "docker", "kubernetes", "infrastructure", "devops", "cloud"),
    "testing": ("test", "testing", "qa", "validation", "coverage", "unit test", "integration test"),
    "devops": ("pipeline", "automation", "monitoring", "logging", "deployment", "cicd"),
    "data": ("analytics", "etl", "data pipeline", "warehouse", "bigquery", "spark", "airflow"),
}

ACTION_VERBS: Tuple[str, ...] = (
    "add", "create", "build", "implement", "develop",
    "update", "modify", "change", "edit",
    "delete", "remove",
    "display", "show", "render", "visualize",
    "handle", "process", "manage",
    "validate", "verify", "check",
    "integrate", "connect",
    "support", "enable", "allow",
)

OBLIGATION_MARKERS: Tuple[str, ...] = ("should", "must", "needs to", "has to", "required to")

COMPONENT_SUFFIXES = "Form|Table|List|Card|Modal|Panel|Service|Manager|Handler|Controller|View"

TITLE_MAX_LENGTH = 60
TITLE_MAX_WORDS = 8
DESCRIPTION_MAX_LENGTH = 500
MIN_REQUIREMENT_LENGTH = 10
MAX_COMPONENTS = 10

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_TOKEN_SPLIT = re.compile(r"[\s,;:()\[\]{}!?\"']+")
_CAPITALIZED = re.compile(r"\b[A-Z][a-z]+(?:[A-Z][a-z]+)*\b")
_SUFFIXED = re.compile(rf"\w+(?:{COMPONENT_SUFFIXES})\b")


def _word_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w-]){re.escape(keyword)}(?![\w-])")


_VERB_PATTERNS = {verb: _word_pattern(verb) for verb in ACTION_VERBS}
_DOMAIN_PATTERNS = {
    domain: [_word_pattern(keyword) for keyword in keywords]
    for domain, keywords in DOMAIN_KEYWORDS.items()
}


def capitalize_first(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:]


class HeuristicExtractor:
    """Rule-based first pass over raw requirement text.

    Produces a draft spec and a confidence score without calling any
    external service. Every table above is static, so the same input always
    yields the same draft.
    """

    def extract(self, raw_input: RawInput | str) -> HeuristicDraft:
        if not isinstance(raw_input, RawInput):
            raw_input = RawInput.from_text(raw_input)
        text = raw_input.text
        lower = text.lower()
        sentences = self.split_sentences(text)

        return HeuristicDraft(
            title=self._title(sentences),
            domain_guess=self.detect_domain(lower),
            description=self._description(sentences),
            requirements=self._requirements(sentences),
            components=self._components(text),
            tech_stack=self.detect_tech_stack(lower),
            acceptance_criteria=self._acceptance_criteria(sentences),
            confidence=self.confidence(text),
        )

    def split_sentences(self, text: str) -> List[str]:
        return [part.strip() for part in _SENTENCE_SPLIT.split(text) if part.strip()]

    def domain_scores(self, lower: str) -> Dict[str, int]:
        return {
            domain: sum(len(pattern.findall(lower)) for pattern in patterns)
            for domain, patterns in _DOMAIN_PATTERNS.items()
        }

    def detect_domain(self, lower: str) -> str | None:
        best_domain: str | None = None
        best_score = 0
        for domain, score in self.domain_scores(lower).items():
            if score > best_score:
                best_domain, best_score = domain, score
        return best_domain

    def detect_tech_stack(self, lower: str) -> Tuple[str, ...]:
        tokens = (token.rstrip(".") for token in _TOKEN_SPLIT.split(lower))
        return unique(capitalize_first(token) for token in tokens if token in TECH_KEYWORDS)

    def confidence(self, text: str) -> float:
        lower = text.lower()
        score = 0.0
        if len(text) > 100:
            score += 0.2
        if len(text) > 200:
            score += 0.1

        tech_count = len(self.detect_tech_stack(lower))
        score += min(tech_count * 0.1, 0.3)

        verb_count = sum(1 for pattern in _VERB_PATTERNS.values() if pattern.search(lower))
        score += min(verb_count * 0.05, 0.2)

        domain_count = sum(self.domain_scores(lower).values())
        score += min(domain_count * 0.05, 0.2)

        return max(0.0, min(round(score, 4), 1.0))

    def _title(self, sentences: List[str]) -> str | None:
        if not sentences:
            return None
        first = sentences[0]
        if len(first) <= TITLE_MAX_LENGTH:
            return capitalize_first(first)
        words = first.split()[:TITLE_MAX_WORDS]
        return capitalize_first(" ".join(words)) + "..."

    def _description(self, sentences: List[str]) -> str | None:
        if not sentences:
            return None
        description = ". ".join(sentences[:3])
        if len(description) <= DESCRIPTION_MAX_LENGTH:
            return description
        return description[: DESCRIPTION_MAX_LENGTH - 3] + "..."

    def _requirements(self, sentences: List[str]) -> Tuple[str, ...]:
        requirements = [
            capitalize_first(sentence)
            for sentence in sentences
            if len(sentence) >= MIN_REQUIREMENT_LENGTH
            and any(pattern.search(sentence.lower()) for pattern in _VERB_PATTERNS.values())
        ]
        if not requirements:
            return tuple(capitalize_first(sentence) for sentence in sentences)
        return tuple(requirements)

    def _acceptance_criteria(self, sentences: List[str]) -> Tuple[str, ...]:
        return tuple(
            capitalize_first(sentence)
            for sentence in sentences
            if any(marker in sentence.lower() for marker in OBLIGATION_MARKERS)
        )

    def _components(self, text: str) -> Tuple[str, ...]:
        found = _CAPITALIZED.findall(text) + _SUFFIXED.findall(text)
        return unique(found)[:MAX_COMPONENTS]
