import json

import pytest
import yaml

from specrefine.main import main

REQUIREMENT = (
    "Build a todo app with React and Node. Users can add tasks and delete tasks. "
    "Tasks must persist between sessions."
)


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in (
        "SPECREFINE_PROVIDER",
        "SPECREFINE_MODEL",
        "SPECREFINE_CACHE",
        "SPECREFINE_WIZARD",
        "SPECREFINE_MOCK_SCENARIO",
        "SPECREFINE_AI_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


def test_parse_with_mock_provider_writes_json(tmp_path, capsys):
    output = tmp_path / "out" / "spec.json"

    code = main(["parse", REQUIREMENT, "--provider", "mock", "--no-wizard", "--output", str(output)])

    assert code == 0
    spec = json.loads(output.read_text(encoding="utf-8"))
    assert spec["title"] == "Build a todo app with React and Node"
    assert spec["tech_stack"] == ["React", "Node"]
    assert spec["metadata"]["processing"]["refinement_method"] == "ai"
    assert spec["metadata"]["processing"]["provider"] == "mock"
    out = capsys.readouterr().out
    assert "Refinement Method: ai" in out
    assert f"Spec saved to: {output}" in out


def test_parse_reads_input_file_and_writes_yaml(tmp_path):
    source = tmp_path / "requirement.txt"
    source.write_text(REQUIREMENT, encoding="utf-8")

    code = main(["parse", str(source), "--provider", "mock", "--no-wizard", "--format", "yaml"])

    assert code == 0
    written = list((tmp_path / "specs").glob("spec-*.yaml"))
    assert len(written) == 1
    spec = yaml.safe_load(written[0].read_text(encoding="utf-8"))
    assert spec["requirements"]


def test_parse_without_api_key_falls_back_to_heuristics(tmp_path, capsys):
    output = tmp_path / "spec.json"

    code = main(["parse", REQUIREMENT, "--provider", "openai", "--no-wizard", "--output", str(output)])

    assert code == 0
    spec = json.loads(output.read_text(encoding="utf-8"))
    assert spec["metadata"]["processing"]["refinement_method"] == "heuristic"
    assert spec["metadata"]["processing"]["ai_refinement_applied"] is False
    assert "Continuing without AI refinement" in capsys.readouterr().out


def test_unrepairable_provider_output_falls_back(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("SPECREFINE_MOCK_SCENARIO", "garbage")
    output = tmp_path / "spec.json"

    code = main(["parse", REQUIREMENT, "--provider", "mock", "--no-wizard", "--output", str(output)])

    assert code == 0
    out = capsys.readouterr().out
    assert "Warning: AI refinement failed" in out
    assert "Refinement Method: heuristic" in out


def test_parse_rejects_short_input(capsys):
    code = main(["parse", "too short", "--provider", "mock", "--no-wizard"])

    assert code == 1
    assert "Input too short" in capsys.readouterr().out


def test_validate_accepts_a_generated_spec(tmp_path, capsys):
    output = tmp_path / "spec.json"
    main(["parse", REQUIREMENT, "--provider", "mock", "--no-wizard", "--output", str(output)])
    capsys.readouterr()

    code = main(["validate", str(output)])

    assert code == 0
    assert "Spec is valid!" in capsys.readouterr().out


def test_validate_reports_errors(tmp_path, capsys):
    broken = tmp_path / "broken.yaml"
    broken.write_text("title: x\ndomain: desktop\n", encoding="utf-8")

    code = main(["validate", str(broken)])

    assert code == 1
    out = capsys.readouterr().out
    assert "Spec is invalid" in out
    assert "domain" in out


def test_validate_missing_file(tmp_path, capsys):
    code = main(["validate", str(tmp_path / "nope.json")])

    assert code == 1
    assert "Error:" in capsys.readouterr().out


def test_cache_status_and_clear(capsys):
    assert main(["cache"]) == 0
    assert "Cache is empty" in capsys.readouterr().out

    assert main(["cache", "clear"]) == 0
    assert "already empty" in capsys.readouterr().out
