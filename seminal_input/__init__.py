"""
seminal_input — Seminal Input Detection over LLVM IR
====================================================

Finds the declared variables of a function whose values come from
external input (``scanf``, ``getc``, ``fopen``, ...) and that feed the
exit tests of the function's loops.  Those "seminal" inputs are what
determines how much work a program does.

Core modules
------------
ir
    Read-only model of functions, blocks, instructions and values.
llparser
    Reader for textual LLVM IR (``.ll``) including declaration metadata.
loops
    Dominators, natural loops and the loop-condition seed extractor.
defuse
    Definition map, backward def-use tracer and declaration scanning.
sources
    Input source catalog and classifier.
report
    Per-function reports, the accumulator and the JSON writer.
config
    Analysis settings, optionally read from JSON.
analysis
    Per-function orchestration.
toolchain
    clang front end producing ``.ll`` files.

Quick start
-----------
>>> from seminal_input import parse_file, SeminalInputDetector
>>> detector = SeminalInputDetector()
>>> detector.analyze_module(parse_file("prog.ll"))
>>> detector.finalize("seminal-values.json")

Package layout
--------------
::

    seminal_input/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── analysis.py
    ├── cli.py
    ├── config.py
    ├── defuse.py
    ├── errors.py
    ├── ir.py
    ├── llparser.py
    ├── loops.py
    ├── report.py
    ├── sources.py
    └── toolchain.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__license__ = "MIT"
__all__: List[str] = []          # populated below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "SeminalInputError",
        "IRParseError",
        "ConfigError",
        "ReportError",
        "ToolchainError",
    ],
    "ir": [
        "Opcode",
        "Value",
        "Constant",
        "Argument",
        "GlobalRef",
        "Instruction",
        "BasicBlock",
        "DebugVariable",
        "Function",
        "Module",
        "FunctionBuilder",
    ],
    "llparser": [
        "parse_module",
        "parse_file",
    ],
    "loops": [
        "DominatorTree",
        "NaturalLoop",
        "LoopNest",
        "loop_condition_seeds",
    ],
    "defuse": [
        "VariableRecord",
        "DefinitionMap",
        "DefUseTracer",
        "scan_declarations",
    ],
    "sources": [
        "SourceKind",
        "InputSource",
        "SourceCatalog",
        "InputSourceClassifier",
        "create_default_catalog",
    ],
    "report": [
        "VariableEntry",
        "FunctionReport",
        "ReportAccumulator",
        "build_function_report",
        "load_report",
        "loads_report",
    ],
    "config": [
        "AnalysisConfig",
    ],
    "analysis": [
        "FunctionAnalysisResult",
        "SeminalInputDetector",
        "analyze_module",
    ],
    "toolchain": [
        "compile_to_ir",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"seminal_input: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(
                f"seminal_input.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)

    # Keep ``seminal_input.<module>`` reachable as an attribute too
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names
