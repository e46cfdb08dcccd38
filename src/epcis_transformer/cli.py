"""
CLI commands for EPCIS document conversion.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import load_settings
from .coordinator import create_coordinator
from .errors import EpcisTransformerError, TransformationError, ValidationError
from .models import JsonLdTransformOptions, XmlTransformOptions
from .stylesheet import clear_stylesheet_cache, download_stylesheet


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _report_error(error: Exception) -> int:
    if isinstance(error, ValidationError):
        print(f"✗ Validation Error: {error.message}", file=sys.stderr)
    elif isinstance(error, TransformationError):
        print(f"✗ Transformation Error: {error.message}", file=sys.stderr)
    else:
        print(f"✗ Error: {error}", file=sys.stderr)
    return 1


def _read_input(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _write_output(result: str, output) -> None:
    if output:
        Path(output).write_text(result, encoding="utf-8")
        print(f"✓ Written to: {output}", file=sys.stderr)
    else:
        print(result)


def _jsonld_options(args) -> JsonLdTransformOptions:
    return JsonLdTransformOptions(
        pretty_print=not args.no_pretty, include_context=not args.no_context
    )


def cmd_convert_to_epcis20(args):
    """Convert EPCIS 1.x XML to EPCIS 2.0 XML."""
    setup_logging(args.verbose)
    options = XmlTransformOptions(
        validate_before_transform=args.validate,
        preserve_comments=args.preserve_comments,
    )
    try:
        xml = _read_input(args.input)
        coordinator = create_coordinator()
        result = asyncio.run(coordinator.convert_to_v2(xml, options, args.local))
        _write_output(result, args.output)
        return 0
    except (EpcisTransformerError, OSError) as e:
        return _report_error(e)


def cmd_convert_to_jsonld(args):
    """Convert EPCIS 2.0 XML to JSON-LD."""
    setup_logging(args.verbose)
    try:
        xml = _read_input(args.input)
        coordinator = create_coordinator()
        result = asyncio.run(
            coordinator.convert_to_jsonld(xml, _jsonld_options(args), args.local)
        )
        _write_output(result, args.output)
        return 0
    except (EpcisTransformerError, OSError) as e:
        return _report_error(e)


def cmd_convert_from_12_to_jsonld(args):
    """Convert EPCIS 1.x XML directly to JSON-LD."""
    setup_logging(args.verbose)
    try:
        xml = _read_input(args.input)
        coordinator = create_coordinator()
        result = asyncio.run(
            coordinator.convert_v1_to_jsonld(xml, _jsonld_options(args), args.local)
        )
        _write_output(result, args.output)
        return 0
    except (EpcisTransformerError, OSError) as e:
        return _report_error(e)


def cmd_test_connection(args):
    """Test connectivity to the remote OpenEPCIS service."""
    setup_logging(args.verbose)
    coordinator = create_coordinator()
    if asyncio.run(coordinator.test_connection()):
        print("✓ Connection to OpenEPCIS API successful")
        return 0
    print("✗ Failed to connect to OpenEPCIS API", file=sys.stderr)
    return 1


def cmd_stylesheet_download(args):
    """Download the migration stylesheet into the local cache."""
    setup_logging(args.verbose)
    url = args.url or load_settings().stylesheet_url
    if not url:
        print("✗ No stylesheet URL given (use --url or EPCIS_STYLESHEET_URL)", file=sys.stderr)
        return 1
    try:
        path = download_stylesheet(url, force=args.force)
    except TransformationError as e:
        return _report_error(e)
    print(f"✓ Stylesheet cached at: {path}")
    return 0


def cmd_stylesheet_clear(args):
    """Clear the stylesheet cache."""
    setup_logging(args.verbose)
    try:
        clear_stylesheet_cache()
        print("✓ Stylesheet cache cleared")
        return 0
    except OSError as e:
        print(f"✗ Failed to clear cache: {e}", file=sys.stderr)
        return 1


def _add_conversion_arguments(parser, input_help):
    parser.add_argument("input", help=input_help)
    parser.add_argument("-o", "--output", help="Output file path (default: stdout)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Use the local engine only, never the remote service",
    )


def _add_jsonld_flags(parser):
    parser.add_argument(
        "--no-pretty", action="store_true", help="Disable pretty printing of JSON"
    )
    parser.add_argument(
        "--no-context", action="store_true", help="Exclude the JSON-LD @context"
    )


def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="EPCIS document conversion CLI",
        prog="epcis-transformer",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands"
    )

    to_v2_parser = subparsers.add_parser(
        "convert-to-epcis20",
        help="Convert EPCIS 1.x XML to EPCIS 2.0 XML"
    )
    _add_conversion_arguments(to_v2_parser, "Input EPCIS 1.x XML file path")
    to_v2_parser.add_argument(
        "--preserve-comments",
        action="store_true",
        help="Preserve comments in the XML"
    )
    to_v2_parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the document type before conversion"
    )
    to_v2_parser.set_defaults(func=cmd_convert_to_epcis20)

    jsonld_parser = subparsers.add_parser(
        "convert-to-jsonld",
        help="Convert EPCIS 2.0 XML to JSON-LD"
    )
    _add_conversion_arguments(jsonld_parser, "Input EPCIS 2.0 XML file path")
    _add_jsonld_flags(jsonld_parser)
    jsonld_parser.set_defaults(func=cmd_convert_to_jsonld)

    direct_parser = subparsers.add_parser(
        "convert-from-12-to-jsonld",
        help="Convert EPCIS 1.x XML directly to JSON-LD"
    )
    _add_conversion_arguments(direct_parser, "Input EPCIS 1.x XML file path")
    _add_jsonld_flags(direct_parser)
    direct_parser.set_defaults(func=cmd_convert_from_12_to_jsonld)

    connection_parser = subparsers.add_parser(
        "test-connection",
        help="Test connection to the OpenEPCIS API"
    )
    connection_parser.set_defaults(func=cmd_test_connection)

    stylesheet_parser = subparsers.add_parser(
        "stylesheet",
        help="Manage the cached migration stylesheet"
    )
    stylesheet_commands = stylesheet_parser.add_subparsers(dest="stylesheet_command")

    download_parser = stylesheet_commands.add_parser(
        "download",
        help="Download the stylesheet into the local cache"
    )
    download_parser.add_argument(
        "--url",
        help="Stylesheet URL (default: EPCIS_STYLESHEET_URL)"
    )
    download_parser.add_argument(
        "--force",
        action="store_true",
        help="Force download even if a cached copy exists"
    )
    download_parser.set_defaults(func=cmd_stylesheet_download)

    clear_parser = stylesheet_commands.add_parser(
        "clear",
        help="Clear cached stylesheets"
    )
    clear_parser.set_defaults(func=cmd_stylesheet_clear)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
