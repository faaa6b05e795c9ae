#!/usr/bin/env python3
"""seminal_input/cli.py — command-line driver of the seminal input detector.

Usage examples
--------------
    # Compile a C file with clang, analyse it, write seminal-values.json
    seminal-input prog.c

    # Analyse existing IR and choose the report path
    seminal-input prog.ll -o report.json

    # Keep the intermediate IR and treat fgets like scanf
    seminal-input prog.c --keep --source fgets:arguments

    # Use a JSON configuration, debug logging
    seminal-input prog.c --config seminal.json -vv

Exit codes
----------
    0   Success (the report was written, possibly empty).
    1   No input file was given.
    2   Infrastructure failure (missing file, clang failure, unreadable IR,
        bad configuration, unwritable report).

The module doubles as ``python -m seminal_input`` via the companion
``seminal_input/__main__.py``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import tempfile
import textwrap
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .analysis import SeminalInputDetector
from .config import AnalysisConfig, parse_source_spec
from .errors import SeminalInputError
from .llparser import parse_file
from .toolchain import DEFAULT_CLANG, compile_to_ir, is_ir_file

_log = logging.getLogger("seminal_input")
_handler: Optional[logging.StreamHandler] = None

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_USAGE: int = 1
EXIT_INFRA: int = 2


def _configure_logging(verbosity: int) -> None:
    """Set up the ``seminal_input`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    global _handler
    root = logging.getLogger("seminal_input")
    root.setLevel(level)
    if _handler is not None:
        # main() may run more than once per process
        root.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(_handler)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seminal-input",
        description=(
            "Report the input-populated variables that bound the loops of\n"
            "each function of a C program (or of an LLVM IR file)."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              seminal-input prog.c
              seminal-input prog.ll -o report.json
              seminal-input prog.c --source fgets:arguments --nested-loops
        """),
    )
    parser.add_argument(
        "file",
        nargs="?",
        metavar="FILE",
        help="C/C++ source file, or an LLVM IR file (.ll).",
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
        help="Increase verbosity (-v info, -vv debug).",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        metavar="OUT",
        help="Report path (default: seminal-values.json or the config's 'output').",
    )
    parser.add_argument(
        "--config",
        default=None,
        metavar="CFG",
        help="JSON configuration file.",
    )

    g = parser.add_argument_group("analysis")
    g.add_argument(
        "--source",
        action="append",
        default=[],
        metavar="PATTERN[:KIND]",
        help="Add an input function (KIND: arguments or return_store; "
             "default arguments).  May be repeated.",
    )
    g.add_argument(
        "--nested-loops",
        action="store_true",
        help="Also use the exit tests of nested loops as seeds.",
    )

    g = parser.add_argument_group("front end")
    g.add_argument(
        "--clang",
        default=DEFAULT_CLANG,
        metavar="PATH",
        help="C compiler used to produce IR (default: clang).",
    )
    g.add_argument(
        "--keep",
        action="store_true",
        help="Write the intermediate .ll into the working directory and keep it.",
    )
    return parser


def _load_config(args: argparse.Namespace) -> AnalysisConfig:
    config = AnalysisConfig.from_file(args.config) if args.config else AnalysisConfig()
    for entry in args.source:
        config.catalog.add_source(parse_source_spec(entry))
    if args.nested_loops:
        config.include_nested_loops = True
    if args.output:
        config.output_path = args.output
    return config


def run(args: argparse.Namespace) -> int:
    """Compile (if needed), analyse every function, write and print the report.

    Workflow:
        1. Build the configuration from ``--config`` and the flags.
        2. Compile the source with clang unless it already is IR, into a
           temporary directory (or the working directory with ``--keep``).
        3. Parse the IR and analyse every defined function.
        4. Flush the report once, echo it to stdout.
    """
    source = Path(args.file)
    if not source.exists():
        _log.error("input file not found: %s", source)
        return EXIT_INFRA

    config = _load_config(args)
    if is_ir_file(source):
        return _analyse(source, config)
    if args.keep:
        return _analyse(compile_to_ir(source, Path.cwd(), clang=args.clang), config)
    with tempfile.TemporaryDirectory(prefix="seminal-input-") as tmp:
        return _analyse(compile_to_ir(source, Path(tmp), clang=args.clang), config)


def _analyse(ir_path: Path, config: AnalysisConfig) -> int:
    _log.info("Parsing IR: %s", ir_path)
    module = parse_file(ir_path)
    detector = SeminalInputDetector(config)
    detector.analyze_module(module)
    detector.finalize()
    sys.stdout.write(detector.accumulator.to_json(config.indent) + "\n")
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if args.file is None:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    try:
        return run(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SeminalInputError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except OSError as exc:
        _log.error("I/O error: %s", exc)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
