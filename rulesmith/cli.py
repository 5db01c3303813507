"""
Rulesmith CLI - Command-line interface for the authoring pipeline.

Usage:
    rulesmith synthesize <subject_file>   Generate rules for a subject document
    rulesmith repair <file>               Repair a malformed object literal
    rulesmith validate <rules_file>       Validate a rule list
    rulesmith serve                       Run the HTTP API
"""

import argparse
import asyncio
import json
import logging
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Rulesmith - LLM-assisted rule authoring",
        prog="rulesmith",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Synthesize command
    synth_parser = subparsers.add_parser("synthesize", help="Generate rules for a subject document")
    synth_parser.add_argument("subject_file", help="Path to the subject's JSON document")
    synth_parser.add_argument("--requirements", "-r", help="Custom requirements, highest priority")
    synth_parser.add_argument(
        "--ignore-description", action="store_true",
        help="Drop the subject's own description (needs --requirements)",
    )
    synth_parser.add_argument(
        "--mode", choices=["toggle", "discrete-effect"], default="toggle",
        help="How transient effects are represented",
    )
    synth_parser.add_argument("--index", help="Reference index JSON export")
    synth_parser.add_argument("--no-mechanics", action="store_true", help="Skip mechanics analysis")
    synth_parser.add_argument("--output", "-o", help="Write the result JSON here")

    # Repair command
    repair_parser = subparsers.add_parser("repair", help="Repair a malformed object literal")
    repair_parser.add_argument("file", help="Path to the text to repair ('-' for stdin)")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a rule list")
    validate_parser.add_argument("rules_file", help="Path to a JSON list of rule objects")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "synthesize":
        cmd_synthesize(args)
    elif args.command == "repair":
        cmd_repair(args)
    elif args.command == "validate":
        cmd_validate(args)
    elif args.command == "serve":
        cmd_serve(args)
    else:
        parser.print_help()
        sys.exit(1)


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {path}")
        sys.exit(1)


def cmd_synthesize(args):
    """Generate a rule set and print it for review. Nothing is committed."""
    from .config import load_config
    from .pipeline import build_pipeline
    from .rule_schema import GenerationFailure, GenerationRequest, PreconditionError, SideEffectMode, SubjectDescription

    subject = SubjectDescription.from_document(json.loads(_read(args.subject_file)))
    request = GenerationRequest(
        custom_requirements=args.requirements,
        ignore_original_description=args.ignore_description,
        side_effect_mode=SideEffectMode(args.mode),
    )

    config = load_config()
    if args.index:
        config.retrieval.index_path = args.index
    pipeline = build_pipeline(config)

    try:
        result = asyncio.run(pipeline.synthesize(subject, request, use_mechanics=not args.no_mechanics))
    except PreconditionError as e:
        print(f"Error: {e}")
        sys.exit(2)
    except GenerationFailure as e:
        print(f"Generation failed ({e.stage}): {e}")
        sys.exit(1)

    payload = {
        "subject": subject.name,
        "mechanics": result.mechanics,
        "rules": result.rules,
        "explanation": result.explanation,
        "references": [
            {"name": e.name, "source": e.source_label, "relevance": e.relevance_score}
            for e in result.reference_examples
        ],
        "side_effects": [
            {"name": p.name, "type": p.effect_type.value, "duration": p.duration.to_dict(), "rules": p.rules}
            for p in result.side_effect_plans
        ],
    }
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"Wrote {len(result.rules)} rule(s) to {args.output}")
    else:
        print(text)


def cmd_repair(args):
    """Repair a malformed literal and print strict JSON."""
    from .extraction import RepairError, parse_lenient

    try:
        value = parse_lenient(_read(args.file))
    except RepairError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(json.dumps(value, indent=2, ensure_ascii=False))


def cmd_validate(args):
    """Validate a rule list."""
    from .rule_schema import validate_rules

    try:
        rules = json.loads(_read(args.rules_file))
    except json.JSONDecodeError as e:
        print(f"Error: not valid JSON: {e}")
        sys.exit(1)
    if isinstance(rules, dict) and "rules" in rules:
        rules = rules["rules"]

    result = validate_rules(rules)
    print(f"Validating: {args.rules_file}")
    print(f"Valid: {result.valid}")

    if result.warnings:
        print("\nWarnings:")
        for w in result.warnings:
            print(f"  - {w}")

    if result.errors:
        print("\nErrors:")
        for e in result.errors:
            print(f"  - {e}")
        sys.exit(1)


def cmd_serve(args):
    """Run the HTTP API with uvicorn."""
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not installed. Install with: pip install rulesmith[api]")
        sys.exit(1)

    from .api import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
