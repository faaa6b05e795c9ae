# seminal_input/errors.py
"""
Error types for the seminal input detector.

Hierarchy
─────────
::

    SeminalInputError (base)
    ├── IRParseError     - textual LLVM IR could not be read
    ├── ConfigError      - invalid analysis configuration
    ├── ReportError      - misuse of the report accumulator
    └── ToolchainError   - clang missing or failing

Only the conditions above propagate.  Everything the analysis core meets
while walking a function (absent values, missing declaration metadata) is
logged and skipped instead; see :mod:`seminal_input.defuse`.

Output-file failures are deliberately *not* wrapped: the ``OSError``
raised by :meth:`seminal_input.report.ReportAccumulator.flush` propagates
unchanged to the caller.
"""

from __future__ import annotations

from typing import Optional


class SeminalInputError(Exception):
    """
    Base exception for all seminal input detector errors.

    Carries an optional source location (file and line) and an optional
    hint, rendered GCC-style by ``__str__``.
    """

    def __init__(
        self,
        message: str,
        *,
        file: Optional[str] = None,
        line: Optional[int] = None,
        hint: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.file = file
        self.line = line
        self.hint = hint
        self.cause = cause

    def location(self) -> str:
        if self.file and self.line is not None:
            return f"{self.file}:{self.line}"
        if self.line is not None:
            return f"<input>:{self.line}"
        return self.file or ""

    def to_gcc_format(self) -> str:
        """Format as ``file:line: error: message`` (location omitted if unknown)."""
        loc = self.location()
        text = f"{loc}: error: {self.message}" if loc else self.message
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text

    def __str__(self) -> str:
        return self.to_gcc_format()


class IRParseError(SeminalInputError):
    """Raised when a line of textual LLVM IR cannot be mapped to the IR model."""

    def __init__(
        self,
        message: str,
        *,
        text: str = "",
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.text = text


class ConfigError(SeminalInputError):
    """Raised for malformed configuration files or input source entries."""


class ReportError(SeminalInputError):
    """Raised when the report accumulator is used after it has been flushed."""


class ToolchainError(SeminalInputError):
    """Raised when the C front end cannot produce IR."""

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.returncode = returncode
        self.stderr = stderr
