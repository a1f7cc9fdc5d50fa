#!/usr/bin/env python3
"""psscriptlint/main.py: command-line entry point.

Usage examples
--------------
    # Resolve the settings that apply to a directory and print them
    python -m psscriptlint settings --path ./scripts

    # Resolve a preset or an explicit settings file
    python -m psscriptlint settings PSGallery
    python -m psscriptlint settings ./PSScriptAnalyzerSettings.psd1

    # List the shipped presets
    python -m psscriptlint presets

    # Evaluate the first hashtable of a data file and print it as JSON
    python -m psscriptlint parse ./module.psd1

Exit codes
----------
    0   Success.
    1   The settings are invalid (unknown key, wrong type, unsupported literal, ...).
    2   Infrastructure failure (unreadable file, syntax error, internal error).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from typing import Optional, Sequence

from psscriptlint import __version__
from psscriptlint.ast_nodes import HashtableNode
from psscriptlint.errors import ParserFailure, PSLintError, SettingsError
from psscriptlint.literal import LiteralEvaluator, to_plain
from psscriptlint.parser import DataFileParser
from psscriptlint.settings import get_setting_presets, resolve_settings

_log = logging.getLogger("psscriptlint")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_SETTINGS_ERROR: int = 1
EXIT_FAILURE: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Attach a stderr handler to the ``psscriptlint`` logger.

    0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("psscriptlint")
    root.setLevel(level)
    if not any(isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
               for h in root.handlers):
        root.addHandler(handler)


def _report(exc: PSLintError) -> int:
    sys.stderr.write(f"{exc.to_gcc_format()}\n")
    return EXIT_SETTINGS_ERROR if isinstance(exc, SettingsError) else EXIT_FAILURE


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_settings(args: argparse.Namespace) -> int:
    """Resolve settings and print the Configuration as JSON."""
    try:
        configuration = resolve_settings(args.settings or None, args.path)
    except PSLintError as exc:
        return _report(exc)
    sys.stdout.write(configuration.to_json() + "\n")
    return EXIT_OK


def cmd_presets(args: argparse.Namespace) -> int:
    """List the shipped presets."""
    for name in get_setting_presets():
        sys.stdout.write(name + "\n")
    return EXIT_OK


def cmd_parse(args: argparse.Namespace) -> int:
    """Evaluate the first hashtable of a data file and print it."""
    try:
        ast, _tokens, errors = DataFileParser().parse_file(args.input)
        if errors:
            raise ParserFailure.from_issues(args.input, list(errors))
        table = ast.find_first(lambda n: isinstance(n, HashtableNode), into_script_blocks=False)
        node = table if table is not None else ast
        value = LiteralEvaluator().evaluate(node)
    except PSLintError as exc:
        return _report(exc.with_file(args.input))
    sys.stdout.write(json.dumps(to_plain(value), indent=args.indent) + "\n")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="psscriptlint",
        description="Settings resolution and rule dispatch for PowerShell script analysis.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              %(prog)s settings --path ./scripts
              %(prog)s settings CodeFormatting
              %(prog)s presets
              %(prog)s parse ./module.psd1
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # ── settings ──────────────────────────────────────────────────────
    p_settings = subparsers.add_parser(
        "settings",
        help="Resolve settings and print them as JSON.",
    )
    p_settings.add_argument(
        "settings",
        nargs="?",
        default=None,
        help="Preset name or settings file path (default: discover in --path).",
    )
    p_settings.add_argument(
        "--path",
        default=None,
        metavar="DIR",
        help="Directory searched for PSScriptAnalyzerSettings.psd1.",
    )
    p_settings.set_defaults(func=cmd_settings)

    # ── presets ───────────────────────────────────────────────────────
    p_presets = subparsers.add_parser(
        "presets",
        help="List the shipped setting presets.",
    )
    p_presets.set_defaults(func=cmd_presets)

    # ── parse ─────────────────────────────────────────────────────────
    p_parse = subparsers.add_parser(
        "parse",
        help="Evaluate a data file and print it as JSON.",
    )
    p_parse.add_argument("input", help="Data file (.psd1).")
    p_parse.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: 2).",
    )
    p_parse.set_defaults(func=cmd_parse)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_FAILURE

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
