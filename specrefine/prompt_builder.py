from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Protocol

import yaml

from specrefine.models import DOMAINS, HeuristicDraft
from specrefine.utils.io import read_text

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
RAW_INPUT_MARKER = "RAW INPUT:"
DRAFT_MARKER = "HEURISTIC DRAFT:"

JSON_MODE_RULES = "Output valid JSON only."
STRICT_JSON_RULES = (
    "Output ONLY valid JSON, no other text or markdown. "
    "Escape every quote and newline inside string values and close every bracket."
)


class PromptBuilder(Protocol):
    def build_prompt(self, domain: str | None, raw_input: str, draft: HeuristicDraft) -> str:
        ...


class TemplatePromptBuilder:
    """Renders prompts/refine_spec.md with per-domain hints.

    Providers without a native JSON response mode get the stricter output
    rules, since their replies are the ones that most often need repair.
    """

    def __init__(self, strict_json: bool = False, prompts_dir: Path = PROMPTS_DIR) -> None:
        self.strict_json = strict_json
        self.template = read_text(prompts_dir / "refine_spec.md")
        hints = yaml.safe_load(read_text(prompts_dir / "domain_hints.yaml")) or {}
        self.domain_hints: Dict[str, str] = {str(k): str(v) for k, v in hints.items()}

    def build_prompt(self, domain: str | None, raw_input: str, draft: HeuristicDraft) -> str:
        key = domain if domain in self.domain_hints else "general"
        rendered = (
            self.template.replace("{{DOMAIN}}", domain or "undetermined")
            .replace("{{DOMAIN_HINTS}}", self.domain_hints.get(key, ""))
            .replace("{{DOMAINS}}", ", ".join(DOMAINS))
            .replace("{{OUTPUT_RULES}}", STRICT_JSON_RULES if self.strict_json else JSON_MODE_RULES)
        )
        return (
            f"{rendered.strip()}\n\n{RAW_INPUT_MARKER}\n{raw_input}\n\n"
            f"{DRAFT_MARKER}\n{json.dumps(draft.to_dict(), indent=2)}\n"
        )
