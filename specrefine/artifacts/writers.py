from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import yaml

from specrefine.models import StructuredSpec
from specrefine.utils.io import read_text, write_json, write_text
from specrefine.utils.time import utc_timestamp

FORMATS = ("json", "yaml")


def render_spec(spec: StructuredSpec, fmt: str = "json") -> str:
    data = spec.to_dict()
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    raise ValueError(f"Unsupported output format: {fmt}")


def write_spec(path: Path, spec: StructuredSpec, fmt: str = "json") -> None:
    if fmt == "json":
        write_json(path, spec.to_dict())
    else:
        write_text(path, render_spec(spec, fmt))


def generate_output_path(directory: Path, fmt: str = "json") -> Path:
    extension = "yaml" if fmt == "yaml" else "json"
    return Path(directory) / f"spec-{utc_timestamp()}.{extension}"


def read_spec(path: Path) -> Dict[str, Any]:
    """Load a spec file written by write_spec; YAML is picked by extension."""
    path = Path(path)
    content = read_text(path)
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError(f"Spec file {path} does not contain an object.")
    return data
