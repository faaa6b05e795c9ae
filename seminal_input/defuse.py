"""
seminal_input.defuse
====================

Definition map and backward def-use chain tracer.

The tracer walks the def-use graph *backwards* from a seed value and
records, in a :class:`DefinitionMap`, every declared variable whose
address it reaches through a load.  The graph is cyclic (loop-carried
values, stores and loads of the same slot), so a visited set shared by
all traversals of one function guarantees that every value is processed
at most once.

The walk is an explicit stack rather than recursion; successors are
pushed in reverse so values are processed in the same pre-order a
recursive walk would use.

Dispatch per instruction kind:

    LOAD    record the pointer's declaration, follow the pointer
    STORE   follow the stored value, then the destination
    CALL    follow the result (if non-void), then every argument
    other   follow every operand
    leaves  constants, arguments and globals end the walk
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .ir import Function, Instruction, Opcode, Value

_log = logging.getLogger(__name__)

UNRESOLVED_LINE = -1


# ═══════════════════════════════════════════════════════════════════════
#  Definition map
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VariableRecord:
    """A declared source-level variable; ``line == -1`` means unresolved."""

    name: str
    line: int = UNRESOLVED_LINE


class DefinitionMap:
    """
    Variable name → most recently observed :class:`VariableRecord`.

    Later writes for a name overwrite earlier ones but keep the name's
    original position, so iteration order is the order of first sighting.
    """

    def __init__(self) -> None:
        self._records: Dict[str, VariableRecord] = {}

    def upsert(self, record: VariableRecord) -> VariableRecord:
        self._records[record.name] = record
        return record

    def record(self, name: str, line: int = UNRESOLVED_LINE) -> VariableRecord:
        return self.upsert(VariableRecord(name, line))

    def record_declaration(
        self, function: Function, value: Optional[Value]
    ) -> Optional[VariableRecord]:
        """Upsert the declaration attached to *value*, if it has one."""
        if function is None:
            return None
        var = function.declaration_for(value)
        if var is None:
            return None
        return self.record(var.name, var.line)

    def get(self, name: str) -> Optional[VariableRecord]:
        return self._records.get(name)

    def names(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[VariableRecord]:
        return list(self._records.values())

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __iter__(self) -> Iterator[VariableRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"DefinitionMap({', '.join(self._records)})"


# ═══════════════════════════════════════════════════════════════════════
#  Tracer
# ═══════════════════════════════════════════════════════════════════════

class DefUseTracer:
    """
    Backward reachability over one function's def-use graph.

    Parameters
    ----------
    function:
        The function whose declaration metadata resolves loads.
    definitions:
        Map receiving every declaration the walk resolves.
    visited:
        Identity set of values already processed.  Shared across all
        seeds of one function; never reuse it for another function.
    """

    def __init__(
        self,
        function: Function,
        definitions: DefinitionMap,
        visited: Optional[Set[Value]] = None,
    ) -> None:
        self.function = function
        self.definitions = definitions
        self.visited: Set[Value] = visited if visited is not None else set()
        self.trail: List[Value] = []
        self._handlers: Dict[Opcode, Callable[[Instruction], List[Value]]] = {
            Opcode.LOAD: self._follow_load,
            Opcode.STORE: self._follow_store,
            Opcode.CALL: self._follow_call,
        }

    def trace(self, seed: Optional[Value]) -> int:
        """Walk backwards from *seed*; return the number of values newly visited."""
        if seed is None:
            _log.error("Null value passed to DefUseTracer.trace.")
            return 0
        if self.function is None or self.definitions is None:
            _log.error("DefUseTracer used without a function or definition map.")
            return 0

        before = len(self.trail)
        stack: List[Value] = [seed]
        while stack:
            value = stack.pop()
            if value in self.visited:
                continue
            self.visited.add(value)
            self.trail.append(value)
            if not value.is_instruction:
                continue
            handler = self._handlers.get(value.opcode, self._follow_operands)
            nexts = [v for v in handler(value) if v is not None]
            stack.extend(reversed(nexts))
        return len(self.trail) - before

    def trace_all(self, seeds: Iterable[Optional[Value]]) -> int:
        """Trace every seed with the shared visited set; return the total newly visited."""
        return sum(self.trace(seed) for seed in seeds)

    # ---- per-kind handlers --------------------------------------------

    def _follow_load(self, inst: Instruction) -> List[Value]:
        pointer = inst.pointer_operand
        self.definitions.record_declaration(self.function, pointer)
        return [pointer]

    def _follow_store(self, inst: Instruction) -> List[Value]:
        return [inst.value_operand, inst.pointer_operand]

    def _follow_call(self, inst: Instruction) -> List[Value]:
        # The call's result is the call itself, already visited here.
        result = [inst] if inst.produces_value else []
        return result + inst.arguments

    def _follow_operands(self, inst: Instruction) -> List[Value]:
        return list(inst.operands)


# ═══════════════════════════════════════════════════════════════════════
#  Declaration / store scanning
# ═══════════════════════════════════════════════════════════════════════

def scan_declarations(
    function: Function,
    definitions: DefinitionMap,
    tracer: DefUseTracer,
) -> Tuple[int, int]:
    """
    Record every declared allocation and trace every store.

    Returns ``(allocations recorded, stores traced)``.
    """
    if function is None:
        _log.error("Null function passed to scan_declarations.")
        return 0, 0
    if definitions is None or tracer is None:
        _log.error("scan_declarations needs a definition map and a tracer.")
        return 0, 0

    allocations = stores = 0
    for inst in function.instructions():
        if inst.opcode is Opcode.ALLOCA:
            if definitions.record_declaration(function, inst) is not None:
                allocations += 1
        elif inst.opcode is Opcode.STORE:
            tracer.trace(inst.value_operand)
            tracer.trace(inst.pointer_operand)
            stores += 1
    return allocations, stores
