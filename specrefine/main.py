from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List

from specrefine.adapters.factory import create_adapter
from specrefine.artifacts.writers import FORMATS, generate_output_path, read_spec, write_spec
from specrefine.cache import ResultCache
from specrefine.config import PROVIDERS, Settings, load_settings, resolve_api_key
from specrefine.errors import InputError, ServiceError
from specrefine.gates.repair import ResponseRepairEngine
from specrefine.gates.validation import format_issues, validate_spec
from specrefine.pipeline_refinement import OrchestrationPipeline, PipelineResult
from specrefine.refinement import RefinementServiceAdapter
from specrefine.utils.io import read_input
from specrefine.wizard import ConsoleWizard

DEFAULT_OUTPUT_DIR = Path("specs")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="specrefine",
        description="Turn free-form requirement text into a structured spec",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Convert raw text or a file into a structured spec")
    parse.add_argument("input", help="Input file path or raw text")
    parse.add_argument("--output", help="Output file path")
    parse.add_argument("--format", choices=FORMATS, default="json")
    parse.add_argument("--provider", choices=sorted(PROVIDERS))
    parse.add_argument("--model")
    parse.add_argument("--token", help="API key for the provider")
    parse.add_argument("--no-cache", action="store_true", help="Disable result caching")
    parse.add_argument(
        "--no-wizard", action="store_true", help="Disable wizard mode fallback on AI failure"
    )
    parse.add_argument("--verbose", action="store_true")

    cache = subparsers.add_parser("cache", help="Show or clear the in-process result cache")
    cache.add_argument("action", nargs="?", choices=["status", "clear"], default="status")

    validate = subparsers.add_parser("validate", help="Validate a spec file (JSON or YAML)")
    validate.add_argument("spec_file")
    return parser


def build_pipeline(
    settings: Settings, token: str | None = None, cache: ResultCache | None = None
) -> OrchestrationPipeline:
    refiner = None
    try:
        client = create_adapter(settings, resolve_api_key(settings.provider, token))
    except ServiceError as exc:
        print(f"Warning: {exc} Continuing without AI refinement.")
    else:
        refiner = RefinementServiceAdapter(
            client,
            repair_engine=ResponseRepairEngine(settings.repair_lookback),
            params=settings.generation_params(),
        )

    return OrchestrationPipeline(
        refiner=refiner,
        cache=cache if cache is not None else ResultCache(settings.cache_size),
        wizard=ConsoleWizard(),
        use_cache=settings.use_cache,
        enable_wizard=settings.enable_wizard,
    )


def _print_summary(result: PipelineResult, output_path: Path) -> None:
    spec = result.spec
    print("\nSpec generated successfully.\n")
    print("Preview:")
    print(f"  Title: {spec.title}")
    print(f"  Domain: {spec.domain}")
    print(f"  Requirements: {len(spec.requirements)} items")
    if spec.tech_stack:
        print(f"  Tech Stack: {', '.join(spec.tech_stack)}")
    print(f"\nSpec saved to: {output_path}\n")

    metadata = result.metadata
    print("Metadata:")
    print(f"  Provider: {metadata.provider}")
    print(f"  Model: {metadata.model}")
    print(f"  AI Refinement: {'Yes' if metadata.ai_refinement_applied else 'No'}")
    print(f"  Refinement Method: {metadata.refinement_method}")
    print(f"  Cache Hit: {'Yes' if metadata.cache_hit else 'No'}")
    print(f"  Heuristic Confidence: {metadata.heuristic_confidence * 100:.0f}%")
    if result.repair is not None and result.repair.tried:
        print(f"  Repair: {result.repair.summary()}")


def run_parse(args: argparse.Namespace, settings: Settings) -> int:
    settings = settings.with_overrides(provider=args.provider, model=args.model)
    if args.no_cache:
        settings = settings.with_overrides(use_cache=False)
    if args.no_wizard:
        settings = settings.with_overrides(enable_wizard=False)

    print("Reading input...")
    text = read_input(args.input)
    print(f"  Input length: {len(text)} characters\n")

    pipeline = build_pipeline(settings, args.token)
    try:
        result = pipeline.run(text)
    except InputError as exc:
        print(f"Error: {exc}")
        return 1
    for warning in result.warnings:
        print(f"Warning: {warning}")

    if args.output:
        output_path = Path(args.output)
    else:
        output_path = generate_output_path(DEFAULT_OUTPUT_DIR, args.format)
    write_spec(output_path, result.spec, args.format)
    _print_summary(result, output_path)
    return 0


def run_cache(args: argparse.Namespace, cache: ResultCache) -> int:
    if args.action == "clear":
        if len(cache) == 0:
            print("Cache is already empty.")
            return 0
        cleared = len(cache)
        cache.clear()
        print(f"Cache cleared ({cleared} entries removed).")
        return 0

    stats = cache.stats()
    print("Cache Statistics:")
    print(f"  Current Size: {stats['size']} / {stats['max_size']} entries")
    print(f"  Total Hits: {stats['hits']}")
    print(f"  Total Misses: {stats['misses']}")
    print(f"  Hit Rate: {cache.hit_rate():.1f}%")
    print(f"  Evictions: {stats['evictions']}")
    if stats["size"] == 0:
        print("Cache is empty. Run some parse commands to populate it.")
    else:
        print(f"Cache is using {stats['size'] / stats['max_size'] * 100:.0f}% of capacity.")
    return 0


def run_validate(args: argparse.Namespace) -> int:
    print(f"Reading spec from: {args.spec_file}")
    try:
        spec = read_spec(Path(args.spec_file))
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1

    issues = validate_spec(spec)
    if issues:
        print(f"Spec is invalid ({len(issues)} errors)\n")
        print("Validation Errors:")
        print(format_issues(issues))
        return 1

    print("Spec is valid!\n")
    print("Summary:")
    print(f"  Title: {spec['title']}")
    print(f"  Domain: {spec['domain']}")
    print(f"  Requirements: {len(spec['requirements'])}")
    for key, label in (
        ("components", "Components"),
        ("tech_stack", "Tech Stack"),
        ("acceptance_criteria", "Acceptance Criteria"),
    ):
        if spec.get(key) is not None:
            print(f"  {label}: {len(spec[key])}")
    return 0


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings(Path.cwd())

    try:
        if args.command == "parse":
            return run_parse(args, settings)
        if args.command == "cache":
            return run_cache(args, ResultCache(settings.cache_size))
        return run_validate(args)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
