"""
seminal_input.analysis
======================

Per-function orchestration of the detector.

For each function, in order:

    1. trace backwards from the operands of every loop exit test
    2. record declared allocations and trace every store
    3. tag the variables populated by input calls
    4. build the function's report and append it to the accumulator

The definition map, the IO variable set and the visited set are created
fresh for every function, so analysing the same function twice yields the
same report.  The accumulator is shared by every function of a run and
written once by :meth:`SeminalInputDetector.finalize`.

Usage::

    detector = SeminalInputDetector()
    for fn in module.defined_functions():
        detector.analyze_function(fn)
    detector.finalize("seminal-values.json")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set, Union

from .config import AnalysisConfig
from .defuse import DefinitionMap, DefUseTracer, scan_declarations
from .ir import Function, Module, Value
from .loops import LoopNest, loop_condition_seeds
from .report import FunctionReport, ReportAccumulator, build_function_report
from .sources import InputSourceClassifier

_log = logging.getLogger(__name__)


@dataclass
class FunctionAnalysisResult:
    """
    Everything computed for one function.

    Attributes:
        function: Name of the analysed function
        definitions: Declared variables reached by the tracer or scan
        io_variables: Names tagged by an input call
        visited: Values processed by the tracer
        loop_seeds: Number of loop-condition operands used as seeds
        report: The report appended to the accumulator, or None
        analysis_time_ms: Wall-clock time spent on the function
    """
    function: str
    definitions: DefinitionMap = field(default_factory=DefinitionMap)
    io_variables: Set[str] = field(default_factory=set)
    visited: Set[Value] = field(default_factory=set)
    loop_seeds: int = 0
    report: Optional[FunctionReport] = None
    analysis_time_ms: float = 0.0

    @property
    def has_seminal_inputs(self) -> bool:
        return self.report is not None


class SeminalInputDetector:
    """Runs the per-function pipeline and owns the run's accumulator."""

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        accumulator: Optional[ReportAccumulator] = None,
    ) -> None:
        self.config = config if config is not None else AnalysisConfig()
        self.accumulator = accumulator if accumulator is not None else ReportAccumulator()
        self.classifier = InputSourceClassifier(self.config.catalog)
        self.results: List[FunctionAnalysisResult] = []

    def analyze_function(
        self,
        function: Function,
        loop_nest: Optional[LoopNest] = None,
    ) -> Optional[FunctionAnalysisResult]:
        """
        Analyse one function and append its report, if any.

        *loop_nest* is computed from the function when not supplied.
        """
        if function is None:
            _log.error("Null function passed to SeminalInputDetector.analyze_function.")
            return None

        start_time = time.time()
        result = FunctionAnalysisResult(function=function.name)
        if function.is_declaration:
            return result

        if loop_nest is None:
            loop_nest = LoopNest.from_function(function)
        tracer = DefUseTracer(function, result.definitions, result.visited)

        seeds = list(loop_condition_seeds(loop_nest, self.config.include_nested_loops))
        tracer.trace_all(seeds)
        result.loop_seeds = len(seeds)

        scan_declarations(function, result.definitions, tracer)
        self.classifier.classify(function, result.definitions, result.io_variables)

        result.report = build_function_report(
            function.name, result.definitions, result.io_variables)
        if result.report is not None:
            self.accumulator.append(result.report)

        result.analysis_time_ms = (time.time() - start_time) * 1000
        _log.debug(
            "@%s: %d loop seed(s), %d value(s) visited, %d definition(s), "
            "%d IO variable(s)",
            function.name, result.loop_seeds, len(result.visited),
            len(result.definitions), len(result.io_variables),
        )
        self.results.append(result)
        return result

    def analyze_module(self, module: Module) -> List[FunctionAnalysisResult]:
        """Analyse every defined function of *module*, in module order."""
        if module is None:
            _log.error("Null module passed to SeminalInputDetector.analyze_module.")
            return []
        results = []
        for function in module.defined_functions():
            result = self.analyze_function(function)
            if result is not None:
                results.append(result)
        _log.info(
            "%s: analysed %d function(s), %d with seminal inputs",
            module.source_filename or "<module>", len(results),
            sum(1 for r in results if r.has_seminal_inputs),
        )
        return results

    def finalize(self, path: Union[str, Path, None] = None) -> Path:
        """Write the accumulated reports; *path* defaults to the configured output."""
        target = path if path is not None else self.config.output_path
        return self.accumulator.flush(target, indent=self.config.indent)


def analyze_module(
    module: Module,
    config: Optional[AnalysisConfig] = None,
) -> ReportAccumulator:
    """Analyse *module* and return the (unflushed) accumulator."""
    detector = SeminalInputDetector(config)
    detector.analyze_module(module)
    return detector.accumulator
