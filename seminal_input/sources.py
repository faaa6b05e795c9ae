"""
seminal_input.sources
=====================

Input source catalog and the classifier that tags the variables a call to
an input function populates.

Two kinds of input operations are recognised:

    ARGUMENTS     the call writes through its pointer arguments
                  (``scanf``, ``getc``); every argument that resolves to a
                  declared variable is tagged.
    RETURN_STORE  the call returns a handle that is stored into a variable
                  (``fopen``); the first store of the result in the same
                  basic block, to a declared variable, is tagged.

Callee names are matched by substring, so ``__isoc99_scanf`` and
``fscanf`` both match a ``scanf`` pattern.  Entries are checked in the
order they were added and the first match wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Set

from .defuse import DefinitionMap
from .errors import ConfigError
from .ir import Function, Instruction, Opcode

_log = logging.getLogger(__name__)


class SourceKind(Enum):
    """How an input operation hands its data to the program."""
    ARGUMENTS = "arguments"        # written through pointer arguments
    RETURN_STORE = "return_store"  # returned, then stored into a variable

    @classmethod
    def parse(cls, text: str) -> "SourceKind":
        key = text.strip().lower().replace("-", "_")
        for kind in cls:
            if key in (kind.value, kind.name.lower()):
                return kind
        raise ConfigError(
            f"unknown input source kind {text!r}",
            hint="expected one of: " + ", ".join(k.value for k in cls),
        )


@dataclass(frozen=True)
class InputSource:
    """
    One catalog entry.

    Attributes:
        pattern: Substring looked for in the callee name
        kind: How the call delivers its input
        description: Human-readable description
    """
    pattern: str
    kind: SourceKind = SourceKind.ARGUMENTS
    description: str = ""

    def matches(self, callee: str) -> bool:
        return self.pattern in callee


class SourceCatalog:
    """Ordered collection of :class:`InputSource` entries."""

    def __init__(self, sources: Optional[Iterable[InputSource]] = None) -> None:
        self._sources: List[InputSource] = []
        for src in sources or ():
            self.add_source(src)

    def add_source(self, source: InputSource) -> "SourceCatalog":
        if not source.pattern:
            raise ConfigError("input source pattern must not be empty")
        self._sources.append(source)
        return self

    def match(self, callee: Optional[str]) -> Optional[InputSource]:
        """Return the first entry whose pattern occurs in *callee*."""
        if not callee:
            return None
        for src in self._sources:
            if src.matches(callee):
                return src
        return None

    @property
    def patterns(self) -> List[str]:
        return [s.pattern for s in self._sources]

    def __iter__(self) -> Iterator[InputSource]:
        return iter(list(self._sources))

    def __len__(self) -> int:
        return len(self._sources)

    def __repr__(self) -> str:
        return f"SourceCatalog({', '.join(self.patterns)})"


def create_default_catalog() -> SourceCatalog:
    """The C standard-library input functions recognised out of the box."""
    return SourceCatalog([
        InputSource("scanf", SourceKind.ARGUMENTS,
                    "Formatted input into pointer arguments"),
        InputSource("fopen", SourceKind.RETURN_STORE,
                    "Opened stream handle stored into a variable"),
        InputSource("getc", SourceKind.ARGUMENTS,
                    "Character read from a stream"),
    ])


class InputSourceClassifier:
    """Tags the variables populated by calls to catalogued input functions."""

    def __init__(self, catalog: Optional[SourceCatalog] = None) -> None:
        self.catalog = catalog if catalog is not None else create_default_catalog()

    def classify(
        self,
        function: Function,
        definitions: DefinitionMap,
        io_variables: Set[str],
    ) -> int:
        """Scan every call of *function*; return the number of tags added."""
        if function is None:
            _log.error("Null function passed to InputSourceClassifier.classify.")
            return 0
        tagged = 0
        for inst in function.instructions():
            if inst.opcode is Opcode.CALL:
                tagged += self.classify_call(function, inst, definitions, io_variables)
        return tagged

    def classify_call(
        self,
        function: Function,
        call: Instruction,
        definitions: DefinitionMap,
        io_variables: Set[str],
    ) -> int:
        if function is None:
            _log.error("Null function passed to InputSourceClassifier.classify_call.")
            return 0
        if call is None:
            _log.error("Null instruction passed to InputSourceClassifier.classify_call.")
            return 0
        if definitions is None or io_variables is None:
            _log.error("InputSourceClassifier needs a definition map and an IO set.")
            return 0
        if call.callee is None:
            # indirect call
            return 0
        source = self.catalog.match(call.callee)
        if source is None:
            return 0

        if source.kind is SourceKind.ARGUMENTS:
            tagged = 0
            for arg in call.arguments:
                record = definitions.record_declaration(function, arg)
                if record is not None:
                    io_variables.add(record.name)
                    tagged += 1
            _log.debug("@%s: %s tags %d argument(s)", function.name, call.callee, tagged)
            return tagged

        return self._tag_result_store(function, call, definitions, io_variables)

    def _tag_result_store(
        self,
        function: Function,
        call: Instruction,
        definitions: DefinitionMap,
        io_variables: Set[str],
    ) -> int:
        block = call.block
        if block is None:
            return 0
        insts = block.instructions
        for inst in insts[block.index_of(call):]:
            if inst.opcode is not Opcode.STORE or inst.value_operand is not call:
                continue
            record = definitions.record_declaration(function, inst.pointer_operand)
            if record is None:
                continue
            io_variables.add(record.name)
            _log.debug("@%s: %s result stored into %s", function.name, call.callee, record.name)
            return 1
        return 0
