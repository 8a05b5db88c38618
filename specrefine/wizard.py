from __future__ import annotations

import re
from typing import Callable, List, Protocol

from specrefine.errors import WizardDeclined
from specrefine.models import DOMAINS, HeuristicDraft, StructuredSpec

DOMAIN_GUIDANCE = {
    "frontend": "Focus on responsive design, component reusability, and user experience.",
    "backend": "Ensure proper API design, error handling, and database optimization.",
    "fullstack": "Maintain clear separation between frontend and backend concerns.",
    "mobile": "Optimize for performance and follow platform-specific guidelines.",
    "infrastructure": "Prioritize security, scalability, and monitoring.",
    "testing": "Aim for high code coverage and include integration tests.",
    "devops": "Automate repetitive tasks and ensure reproducible deployments.",
    "data": "Focus on data quality, pipeline reliability, and efficient processing.",
}
DEFAULT_CRITERIA = "All features implemented, Tests pass, Documentation complete"

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+)$", flags=re.MULTILINE)


class InteractiveRefinementWizard(Protocol):
    def run(self, raw_input: str, draft: HeuristicDraft) -> StructuredSpec:
        """Build a spec from user answers, or raise WizardDeclined."""
        ...


def split_csv(answer: str) -> List[str]:
    return [item.strip() for item in answer.split(",") if item.strip()]


def guidance_for(domain: str, tech_stack: List[str]) -> str:
    base = DOMAIN_GUIDANCE.get(domain, "Follow best practices and maintain code quality.")
    if tech_stack:
        return f"{base} Consider {', '.join(tech_stack[:3])} best practices."
    return base


def fallback_requirements(raw_input: str) -> List[str]:
    bullets = [match.strip() for match in _BULLET.findall(raw_input)]
    if bullets:
        return bullets
    sentences = [part.strip() for part in re.split(r"[.!?]", raw_input) if len(part.strip()) > 20]
    return sentences[:5] or ["Implement core functionality"]


class ConsoleWizard:
    """Question-and-answer refinement on the attached terminal.

    Every question offers the heuristic draft as its default, so pressing
    enter throughout accepts the draft as-is.
    """

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ) -> None:
        self._input = input_fn
        self._output = output_fn

    def run(self, raw_input: str, draft: HeuristicDraft) -> StructuredSpec:
        if not self._confirm("Would you like to use Wizard Mode to refine your spec interactively?", True):
            raise WizardDeclined("User declined wizard mode.")
        self._output("\nLaunching Wizard Mode. Press enter to keep the suggested value.\n")

        title = self._ask_valid(
            "Project title",
            draft.title or raw_input[:97],
            lambda value: len(value) >= 5,
            "Title must be at least 5 characters.",
        )
        domain = self._ask_domain(draft.domain_guess or "fullstack")
        description = self._ask_valid(
            "Project description",
            draft.description or raw_input[:200],
            lambda value: 10 <= len(value) <= 500,
            "Description must be 10-500 characters.",
        )

        requirements = list(draft.requirements) or fallback_requirements(raw_input)
        self._output("\nCurrent requirements detected:")
        for index, requirement in enumerate(requirements, start=1):
            self._output(f"  {index}. {requirement}")
        if self._confirm("Do you want to edit the requirements?", False):
            edited = self._read_lines("Enter requirements one per line, blank line to finish:")
            requirements = edited or requirements

        tech_stack = split_csv(self._ask("Tech stack (comma-separated)", ", ".join(draft.tech_stack)))
        components = split_csv(
            self._ask("Key components (comma-separated)", ", ".join(draft.components[:10]))
        )
        criteria: List[str] = []
        if self._confirm("Add acceptance criteria?", True):
            default_criteria = ", ".join(draft.acceptance_criteria) or DEFAULT_CRITERIA
            criteria = split_csv(self._ask("Acceptance criteria (comma-separated)", default_criteria))
        guidance = self._ask(
            "Implementation hints or best practices (optional)",
            guidance_for(domain, tech_stack),
        )

        self._output("\nWizard refinement complete.\n")
        return StructuredSpec(
            title=title,
            domain=domain,
            description=description,
            requirements=tuple(requirements),
            components=tuple(components),
            tech_stack=tuple(tech_stack),
            acceptance_criteria=tuple(criteria),
            guidance=guidance or None,
        )

    def _prompt(self, message: str) -> str:
        try:
            return self._input(message)
        except (EOFError, KeyboardInterrupt) as exc:
            raise WizardDeclined("Wizard input closed.") from exc

    def _ask(self, message: str, default: str) -> str:
        suffix = f" [{default}]" if default else ""
        answer = self._prompt(f"{message}{suffix}: ").strip()
        return answer or default

    def _ask_valid(
        self, message: str, default: str, check: Callable[[str], bool], hint: str
    ) -> str:
        while True:
            value = self._ask(message, default)
            if check(value):
                return value
            self._output(hint)

    def _confirm(self, message: str, default: bool) -> bool:
        choices = "Y/n" if default else "y/N"
        answer = self._prompt(f"{message} ({choices}): ").strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")

    def _ask_domain(self, default: str) -> str:
        self._output("Select the domain:")
        for index, domain in enumerate(DOMAINS, start=1):
            self._output(f"  {index}. {domain}")
        while True:
            answer = self._ask("Domain (number or name)", default).lower()
            if answer.isdigit() and 1 <= int(answer) <= len(DOMAINS):
                return DOMAINS[int(answer) - 1]
            if answer in DOMAINS:
                return answer
            self._output(f"Domain must be one of: {', '.join(DOMAINS)}")

    def _read_lines(self, message: str) -> List[str]:
        self._output(message)
        lines: List[str] = []
        while True:
            line = self._prompt("> ").strip()
            if not line:
                return lines
            lines.append(line)
