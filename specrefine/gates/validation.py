from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError

from specrefine.errors import SpecValidationError
from specrefine.models import MANDATORY_FIELDS
from specrefine.utils.io import read_text

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"


@dataclass
class SpecIssue:
    field: str
    message: str
    value: Any = None


def load_schema(name: str) -> Dict:
    return json.loads(read_text(SCHEMAS_DIR / name))


def missing_mandatory_fields(payload: object) -> List[str]:
    """List the mandatory fields that are absent, empty or mistyped, in declaration order."""
    if not isinstance(payload, Mapping):
        return list(MANDATORY_FIELDS)
    validator = Draft7Validator(load_schema("mandatory_fields.schema.json"))
    missing = set()
    for error in validator.iter_errors(dict(payload)):
        if error.validator == "required":
            missing.update(key for key in error.validator_value if key not in payload)
        elif error.path:
            missing.add(str(error.path[0]))
    return [name for name in MANDATORY_FIELDS if name in missing]


def require_mandatory_fields(payload: object) -> None:
    missing = missing_mandatory_fields(payload)
    if missing:
        raise SpecValidationError(missing)


def _field_name(error: ValidationError) -> str:
    if error.validator == "required" and not error.path:
        absent = [key for key in error.validator_value if key not in error.instance]
        return ", ".join(absent)
    name = ""
    for part in error.path:
        if isinstance(part, int):
            name += f"[{part}]"
        else:
            name += f".{part}" if name else str(part)
    return name or "spec"


def validate_spec(spec: Mapping[str, Any]) -> List[SpecIssue]:
    """Check a serialized spec against the full structured_spec schema."""
    validator = Draft7Validator(load_schema("structured_spec.schema.json"))
    issues: List[SpecIssue] = []
    errors = validator.iter_errors(dict(spec))
    for error in sorted(errors, key=lambda err: [str(part) for part in err.path]):
        value = None if error.validator == "required" else error.instance
        issues.append(SpecIssue(field=_field_name(error), message=error.message, value=value))
    return issues


def format_issues(issues: List[SpecIssue]) -> str:
    if not issues:
        return "No errors"
    lines = []
    for issue in issues:
        line = f"- {issue.field}: {issue.message}"
        if issue.value is not None:
            line += f" (got: {json.dumps(issue.value, default=str)})"
        lines.append(line)
    return "\n".join(lines)
