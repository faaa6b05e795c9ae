"""
seminal_input.toolchain
=======================

Front end: turn a C/C++ source file into textual LLVM IR with clang.

The IR is emitted unoptimised and with debug information, which the
analysis needs for variable names and declaration lines::

    clang -g -O0 -emit-llvm -S input.c -o input.ll

Files that already contain IR (``.ll``) are passed through untouched.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from .errors import ToolchainError

_log = logging.getLogger(__name__)

IR_SUFFIX = ".ll"
DEFAULT_CLANG = "clang"
DEFAULT_TIMEOUT = 120


def is_ir_file(path: Union[str, Path]) -> bool:
    return Path(path).suffix == IR_SUFFIX


def clang_command(source: Path, output: Path, clang: str = DEFAULT_CLANG) -> List[str]:
    return [clang, "-g", "-O0", "-emit-llvm", "-S", str(source), "-o", str(output)]


def compile_to_ir(
    source: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    clang: str = DEFAULT_CLANG,
    timeout: int = DEFAULT_TIMEOUT,
) -> Path:
    """
    Compile *source* to ``<output_dir>/<stem>.ll`` and return that path.

    *output_dir* defaults to the current directory.  Raises
    :class:`ToolchainError` when the compiler is missing, times out or
    exits with a non-zero status.
    """
    source = Path(source)
    if is_ir_file(source):
        return source
    if not source.is_file():
        raise ToolchainError(f"no such file: {source}", file=str(source))

    out_dir = Path(output_dir) if output_dir is not None else Path(os.getcwd())
    output = out_dir / (source.stem + IR_SUFFIX)
    cmd = clang_command(source, output, clang)
    _log.debug("running %s", " ".join(cmd))

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise ToolchainError(
            f"C compiler {clang!r} not found",
            hint="install clang or pass --clang PATH",
            cause=exc,
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise ToolchainError(
            f"{clang} timed out after {timeout}s", file=str(source), cause=exc,
        ) from exc

    if result.returncode != 0:
        raise ToolchainError(
            f"{clang} exited with status {result.returncode}",
            file=str(source),
            returncode=result.returncode,
            stderr=result.stderr,
        )
    if not output.exists():
        raise ToolchainError(f"{clang} did not produce {output}", file=str(source))
    _log.info("compiled %s -> %s", source, output)
    return output
