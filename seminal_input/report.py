"""
seminal_input.report
====================

Per-function reports, the run-wide accumulator and the JSON writer.

Output schema::

    [
        {
            "function": "main",
            "important_variables": [
                {"type": "IO", "name": "n", "line": 4}
            ]
        }
    ]

The accumulator is append-only and written exactly once; anything else
(appending after the flush, flushing twice) is a programming error and
raises :class:`~seminal_input.errors.ReportError`.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .defuse import DefinitionMap
from .errors import ReportError

_log = logging.getLogger(__name__)

DEFAULT_OUTPUT = "seminal-values.json"
DEFAULT_INDENT = 4
IO_TYPE = "IO"


@dataclass(frozen=True)
class VariableEntry:
    name: str
    line: int = -1
    type: str = IO_TYPE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "name": self.name, "line": self.line}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VariableEntry":
        try:
            return cls(name=str(data["name"]), line=int(data["line"]),
                       type=str(data.get("type", IO_TYPE)))
        except (KeyError, TypeError, ValueError) as exc:
            raise ReportError(f"malformed variable entry: {data!r}", cause=exc) from exc


@dataclass(frozen=True)
class FunctionReport:
    """The seminal input variables found in one function."""
    function: str
    important_variables: Tuple[VariableEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function": self.function,
            "important_variables": [v.to_dict() for v in self.important_variables],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FunctionReport":
        if not isinstance(data, dict) or "function" not in data:
            raise ReportError(f"malformed function report: {data!r}")
        entries = data.get("important_variables", [])
        if not isinstance(entries, list):
            raise ReportError(
                f"'important_variables' of {data['function']!r} is not a list")
        return cls(
            function=str(data["function"]),
            important_variables=tuple(VariableEntry.from_dict(e) for e in entries),
        )


def build_function_report(
    function_name: str,
    definitions: DefinitionMap,
    io_variables: Iterable[str],
) -> Optional[FunctionReport]:
    """
    Keep the definitions that were tagged as input-populated.

    Entries come out in definition-map order.  Returns None when no
    definition is tagged, so that functions without seminal inputs are
    left out of the report.
    """
    if definitions is None:
        _log.error("Null definition map passed to build_function_report.")
        return None
    tagged = set(io_variables or ())
    entries = tuple(
        VariableEntry(rec.name, rec.line)
        for rec in definitions
        if rec.name in tagged
    )
    if not entries:
        return None
    return FunctionReport(function_name, entries)


class ReportAccumulator:
    """Ordered collection of :class:`FunctionReport`, flushed once."""

    def __init__(self) -> None:
        self._reports: List[FunctionReport] = []
        self._lock = threading.Lock()
        self._flushed = False

    def append(self, report: Optional[FunctionReport]) -> None:
        if report is None:
            _log.error("Null report passed to ReportAccumulator.append.")
            return
        with self._lock:
            if self._flushed:
                raise ReportError(
                    f"cannot add report for {report.function!r}: "
                    "the accumulator has already been flushed")
            self._reports.append(report)

    @property
    def reports(self) -> List[FunctionReport]:
        return list(self._reports)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._reports]

    def to_json(self, indent: int = DEFAULT_INDENT) -> str:
        return json.dumps(self.to_list(), indent=indent)

    def flush(self, path: Union[str, Path] = DEFAULT_OUTPUT,
              indent: int = DEFAULT_INDENT) -> Path:
        """
        Write every accumulated report to *path* as one JSON array.

        ``OSError`` from opening or writing the file propagates; the
        accumulator then counts as not flushed.
        """
        with self._lock:
            if self._flushed:
                raise ReportError("report has already been flushed",
                                  file=str(path))
            out = Path(path)
            out.write_text(self.to_json(indent) + "\n", encoding="utf-8")
            self._flushed = True
        _log.info("wrote %d function report(s) to %s", len(self._reports), out)
        return out

    def __iter__(self) -> Iterator[FunctionReport]:
        return iter(self.reports)

    def __len__(self) -> int:
        return len(self._reports)


def loads_report(text: str) -> List[FunctionReport]:
    """Parse report JSON text back into :class:`FunctionReport` objects."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ReportError(f"report is not valid JSON: {exc.msg}",
                          line=exc.lineno, cause=exc) from exc
    if not isinstance(data, list):
        raise ReportError("report must be a JSON array")
    return [FunctionReport.from_dict(item) for item in data]


def load_report(path: Union[str, Path]) -> List[FunctionReport]:
    return loads_report(Path(path).read_text(encoding="utf-8"))
