"""Main CLI entry point for the tag-extract command-line tool.

Runs a JSON schema over one or more markup files and prints the extracted
results as JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from streaming_tag_extractor import __version__
from streaming_tag_extractor.api import to_jsonable
from streaming_tag_extractor.engine import Extractor
from streaming_tag_extractor.schema import ElementType, load_schema_file
from streaming_tag_extractor.shared import (
    ConfigError,
    ExtractorConfig,
    SchemaDeclarationError,
    get_logger,
)

EXIT_OK = 0
EXIT_EXTRACTION_FAILED = 1
EXIT_USAGE = 2


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="tag-extract",
        description="Declarative streaming extraction of structured data from XML"
    )

    parser.add_argument("--version", action="version", version=__version__)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    extract_parser = subparsers.add_parser("extract", help="Extract data from XML files")
    extract_parser.add_argument(
        "schema",
        type=Path,
        help="JSON schema file"
    )
    extract_parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="XML files to extract from"
    )
    extract_parser.add_argument(
        "--format", "-f",
        choices=["json", "jsonl"],
        default="json",
        help="Output format (default: json)"
    )
    extract_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output file (default: stdout)"
    )
    extract_parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Extractor configuration file (JSON)"
    )
    extract_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on malformed numbers and dates instead of using sentinels"
    )

    check_parser = subparsers.add_parser("check-schema", help="Validate a JSON schema file")
    check_parser.add_argument(
        "schema",
        type=Path,
        help="JSON schema file"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Quiet output"
    )

    return parser


def load_config(args: argparse.Namespace) -> ExtractorConfig:
    """Build the extractor configuration from file and command-line flags."""
    config = ExtractorConfig()
    if args.config:
        config = ExtractorConfig.from_json(args.config.read_text(encoding="utf-8"))
    if args.strict:
        config = config.override(coercion__strict=True)
    return config


def build_schema_extractor(schema_path: Path, config: ExtractorConfig) -> Extractor:
    extractor = Extractor(config=config)
    load_schema_file(extractor, schema_path)
    extractor.seal()
    return extractor


def format_results(records: List[Dict[str, Any]], format_type: str) -> str:
    """Format per-file extraction records for output."""
    if format_type == "jsonl":
        lines = []
        for record in records:
            for value in record["results"]:
                lines.append(json.dumps({"file": record["file"], "result": value}))
        return "\n".join(lines)
    return json.dumps(records, indent=2)


def cmd_extract(args: argparse.Namespace) -> int:
    """Handle extract command."""
    logger = get_logger(__name__, None, "cli_extract")

    try:
        config = load_config(args)
        extractor = build_schema_extractor(args.schema, config)
    except (ConfigError, SchemaDeclarationError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    records = []
    failed = 0
    for path in args.paths:
        result = extractor.parse_file(path)
        if not result.success:
            failed += 1
            logger.warning(
                "Extraction failed",
                extra={"path": str(path), "error": str(result.error)},
            )
        records.append({
            "file": str(path),
            "success": result.success,
            "error": str(result.error) if result.error else None,
            "results": to_jsonable(result.results),
            "summary": result.summary(),
        })

    formatted_output = format_results(records, args.format)

    if args.output:
        try:
            args.output.write_text(formatted_output, encoding="utf-8")
        except OSError as e:
            print(f"Error writing output: {e}", file=sys.stderr)
            return EXIT_EXTRACTION_FAILED
        if not args.quiet:
            print(f"Results written to {args.output}", file=sys.stderr)
    else:
        print(formatted_output)

    return EXIT_OK if failed == 0 else EXIT_EXTRACTION_FAILED


def cmd_check_schema(args: argparse.Namespace) -> int:
    """Handle check-schema command."""
    try:
        extractor = build_schema_extractor(args.schema, ExtractorConfig())
    except (SchemaDeclarationError, OSError, ValueError) as e:
        print(f"Invalid schema: {e}", file=sys.stderr)
        return EXIT_USAGE

    declared = sorted(
        name for name, value_type in extractor.element_types.items()
        if isinstance(value_type, ElementType)
    )
    if not args.quiet:
        print(f"Schema OK: {', '.join(declared)}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    elif args.quiet:
        logging.basicConfig(level=logging.ERROR)

    try:
        if args.command == "extract":
            return cmd_extract(args)
        elif args.command == "check-schema":
            return cmd_check_schema(args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return EXIT_USAGE

    except KeyboardInterrupt:
        print("\nOperation interrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
