from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Literal, Mapping, Tuple

from specrefine.errors import InputError

MIN_INPUT_LENGTH = 20
SPEC_VERSION = "1.0.0"
GENERATED_BY = "specrefine 1.0.0"

DOMAINS: Tuple[str, ...] = (
    "frontend",
    "backend",
    "fullstack",
    "mobile",
    "infrastructure",
    "testing",
    "devops",
    "data",
)

MANDATORY_FIELDS: Tuple[str, ...] = ("title", "domain", "description", "requirements")

RefinementMethod = Literal["ai", "wizard", "heuristic"]


def normalize_for_key(text: str) -> str:
    return text.strip().casefold()


def input_hash(text: str) -> str:
    return hashlib.sha256(normalize_for_key(text).encode("utf-8")).hexdigest()


def unique(items: Iterable[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for item in items:
        if item not in seen:
            seen[item] = None
    return tuple(seen)


def _item_text(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        for key in ("text", "description", "name", "title"):
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return json.dumps(item, sort_keys=True)
    if item is None:
        return ""
    return str(item).strip()


def str_tuple(value: Any) -> Tuple[str, ...]:
    """Coerce a provider list (or a lone string) into a tuple of non-blank strings."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        value = [value]
    return tuple(text for text in (_item_text(item) for item in value) if text)


@dataclass(frozen=True)
class RawInput:
    text: str

    def __post_init__(self) -> None:
        if len(self.text) < MIN_INPUT_LENGTH:
            raise InputError(
                f"Input too short. Minimum {MIN_INPUT_LENGTH} characters required."
            )

    @classmethod
    def from_text(cls, text: str | None) -> "RawInput":
        return cls((text or "").strip())


@dataclass(frozen=True)
class HeuristicDraft:
    title: str | None = None
    domain_guess: str | None = None
    description: str | None = None
    requirements: Tuple[str, ...] = ()
    components: Tuple[str, ...] = ()
    tech_stack: Tuple[str, ...] = ()
    acceptance_criteria: Tuple[str, ...] = ()
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "domain": self.domain_guess,
            "description": self.description,
            "requirements": list(self.requirements),
            "components": list(self.components),
            "tech_stack": list(self.tech_stack),
            "acceptance_criteria": list(self.acceptance_criteria),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ProcessingMetadata:
    refinement_method: RefinementMethod
    cache_hit: bool
    heuristic_confidence: float
    input_hash: str
    generated_at: str
    provider: str | None = None
    model: str | None = None
    spec_version: str = SPEC_VERSION
    generated_by: str = GENERATED_BY

    @property
    def ai_refinement_applied(self) -> bool:
        return self.refinement_method != "heuristic"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spec_version": self.spec_version,
            "generated_by": self.generated_by,
            "generated_at": self.generated_at,
            "input_hash": self.input_hash,
            "processing": {
                "provider": self.provider,
                "model": self.model,
                "heuristic_confidence": self.heuristic_confidence,
                "ai_refinement_applied": self.ai_refinement_applied,
                "cache_hit": self.cache_hit,
                "refinement_method": self.refinement_method,
            },
        }


_KNOWN_KEYS = {
    "title",
    "domain",
    "description",
    "requirements",
    "components",
    "tech_stack",
    "techStack",
    "acceptance_criteria",
    "acceptanceCriteria",
    "ai_guidance",
    "guidance",
    "metadata",
}


@dataclass(frozen=True)
class StructuredSpec:
    title: str
    domain: str
    description: str
    requirements: Tuple[str, ...]
    components: Tuple[str, ...] | None = None
    tech_stack: Tuple[str, ...] | None = None
    acceptance_criteria: Tuple[str, ...] | None = None
    guidance: str | None = None
    extension_fields: Dict[str, Any] = field(default_factory=dict)
    metadata: ProcessingMetadata | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StructuredSpec":
        """Map a validated provider payload onto the spec contract.

        Known optional keys are accepted in snake_case or camelCase and
        coerced to string tuples. Anything else lands in extension_fields.
        """

        def optional_list(*keys: str) -> Tuple[str, ...] | None:
            for key in keys:
                if key in payload and payload[key] is not None:
                    return str_tuple(payload[key])
            return None

        guidance = payload.get("ai_guidance", payload.get("guidance"))
        if guidance is not None and not isinstance(guidance, str):
            guidance = json.dumps(guidance)
        extensions = {
            key: copy.deepcopy(value)
            for key, value in payload.items()
            if key not in _KNOWN_KEYS
        }
        return cls(
            title=str(payload["title"]).strip(),
            domain=str(payload["domain"]).strip(),
            description=str(payload["description"]).strip(),
            requirements=str_tuple(payload["requirements"]),
            components=optional_list("components"),
            tech_stack=optional_list("tech_stack", "techStack"),
            acceptance_criteria=optional_list("acceptance_criteria", "acceptanceCriteria"),
            guidance=guidance,
            extension_fields=extensions,
        )

    def missing_fields(self) -> List[str]:
        missing: List[str] = []
        for name in ("title", "domain", "description"):
            if not getattr(self, name).strip():
                missing.append(name)
        if not self.requirements:
            missing.append("requirements")
        return missing

    def with_metadata(self, metadata: ProcessingMetadata) -> "StructuredSpec":
        return replace(self, metadata=metadata)

    def without_metadata(self) -> "StructuredSpec":
        return replace(self, metadata=None)

    def to_dict(self, include_metadata: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "domain": self.domain,
            "description": self.description,
            "requirements": list(self.requirements),
        }
        if self.components is not None:
            data["components"] = list(self.components)
        if self.tech_stack is not None:
            data["tech_stack"] = list(self.tech_stack)
        if self.acceptance_criteria is not None:
            data["acceptance_criteria"] = list(self.acceptance_criteria)
        if self.guidance is not None:
            data["ai_guidance"] = self.guidance
        for key, value in self.extension_fields.items():
            data.setdefault(key, copy.deepcopy(value))
        if include_metadata and self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data


@dataclass
class RepairAttempt:
    tried: List[str] = field(default_factory=list)
    succeeded: str | None = None

    def summary(self) -> str:
        chain = " -> ".join(self.tried) if self.tried else "none"
        return f"{chain} ({self.succeeded or 'failed'})"
