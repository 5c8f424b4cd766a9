"""Command-line interface for html2canon."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .version import __version__

FORMATS = ("markdown", "html")
MATH_STRATEGIES = ("latex", "none", "image")


def _get_usage() -> str:
    return (
        f"html2canon {__version__}\n"
        "Usage:\n"
        "  html2canon [--help] [--version|--ver]\n"
        "  html2canon --input FILE [options]\n\n"
        "Options:\n"
        "  --output FILE                Write serialized output to FILE (default: stdout)\n"
        "  --manifest FILE              Write the asset manifest JSON to FILE\n"
        "  --tree FILE                  Write the canonical tree JSON to FILE\n"
        "  --base-url URL               Resolve relative references against URL\n"
        "  --content-selector CSS       Convert only the first element matching CSS\n"
        "  --format markdown|html       Output format (default: markdown)\n"
        "  --inline-styles              Inline theme styles into html output\n"
        "  --theme NAME                 Style theme for --inline-styles (default: default)\n"
        "  --math latex|none|image      Formula rendering strategy (default: latex)\n"
        "  --preserve-unknown-html      Keep unrecognized empty elements as raw markup\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("--input", help="Markup fragment to convert")
    parser.add_argument("--output", help="Output file (stdout when omitted)")
    parser.add_argument("--manifest", help="Write the asset manifest JSON to this path")
    parser.add_argument("--tree", help="Write the canonical tree JSON to this path")
    parser.add_argument("--base-url", help="Base URL for relative references")
    parser.add_argument("--content-selector", help="CSS selector of the region to convert")
    parser.add_argument("--format", default="markdown", help="Output format: markdown or html")
    parser.add_argument("--inline-styles", action="store_true", help="Inline theme styles into html output")
    parser.add_argument("--theme", default="default", help="Style theme used by --inline-styles")
    parser.add_argument("--math", default="latex", help="Formula rendering strategy: latex, none or image")
    parser.add_argument(
        "--preserve-unknown-html",
        action="store_true",
        default=None,
        help="Keep unrecognized empty elements as raw markup (fallback: HTML2CANON_PRESERVE_UNKNOWN_HTML env var)",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def _validate_choice_args(args: argparse.Namespace) -> str | None:
    if args.format not in FORMATS:
        return f"Invalid value for --format: {args.format} (expected one of: {', '.join(FORMATS)})"
    if args.math not in MATH_STRATEGIES:
        return f"Invalid value for --math: {args.math} (expected one of: {', '.join(MATH_STRATEGIES)})"
    return None


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    choice_error = _validate_choice_args(args)
    if choice_error:
        print(choice_error, file=sys.stderr)
        return 6

    if not args.input:
        print(_get_usage())
        print("Option --input is required unless --help or --version/--ver is used", file=sys.stderr)
        return 6

    input_path = Path(args.input).expanduser().resolve()
    if not input_path.exists() or not input_path.is_file():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 6
    try:
        markup = input_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Unable to read input file {input_path}: {exc}", file=sys.stderr)
        return 6

    try:
        from html2canon import core
        from html2canon.serialize import SerializeOptions, serialize
        from html2canon.nodes import to_dict
    except Exception as exc:
        print(f"Unable to import html2canon core: {exc}", file=sys.stderr)
        return 6

    core.setup_logging(args.verbose, args.debug)

    preserve_unknown_html = args.preserve_unknown_html
    if preserve_unknown_html is None:
        preserve_unknown_html = core.preserve_unknown_html_default()

    options = core.ConversionOptions(
        base_url=args.base_url,
        content_selector=args.content_selector,
        preserve_unknown_html=bool(preserve_unknown_html),
    )
    try:
        result = core.convert_html(markup, options)
    except core.ConversionError as exc:
        print(str(exc), file=sys.stderr)
        return 6

    serialize_options = SerializeOptions(
        format=args.format,
        inline_styles=bool(args.inline_styles),
        theme=args.theme,
        math_rendering=args.math,
    )
    try:
        text = serialize(result.tree, result.assets, serialize_options)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 6

    text = text.strip() + "\n"
    if args.output:
        output_path = Path(args.output).expanduser().resolve()
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(text, encoding="utf-8")
        except OSError as exc:
            print(f"Unable to write output file {output_path}: {exc}", file=sys.stderr)
            return 7
    else:
        sys.stdout.write(text)

    json_outputs = [
        ("manifest", args.manifest, result.assets.to_dict()),
        ("tree", args.tree, to_dict(result.tree)),
    ]
    for label, target, payload in json_outputs:
        if not target:
            continue
        json_path = Path(target).expanduser().resolve()
        try:
            json_path.parent.mkdir(parents=True, exist_ok=True)
            json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        except OSError as exc:
            print(f"Unable to write {label} file {json_path}: {exc}", file=sys.stderr)
            return 7

    if args.verbose:
        metrics = result.metrics
        print(
            f"Converted {input_path.name}: {metrics.images} image(s), {metrics.formulas} formula(s), "
            f"{metrics.embeds} embed(s), {metrics.tables} table(s), {metrics.code_blocks} code block(s)",
            file=sys.stderr,
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
