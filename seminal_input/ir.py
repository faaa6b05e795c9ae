"""
seminal_input.ir
================

A small, read-only model of the per-function LLVM IR that the analysis
consumes.

Values form a def-use graph: an :class:`Instruction` holds references to
its operand values, which may themselves be instructions, function
arguments, globals or constants.  All values hash by *identity*, so two
textually equal constants are still distinct nodes; sets of values behave
like LLVM's ``std::set<Value *>``.

Public API
----------
    Opcode          - instruction kind enumeration
    Value           - base of every IR value
    Constant        - literal / constant expression (terminal)
    Argument        - formal function parameter (terminal)
    GlobalRef       - reference to a global symbol (terminal)
    Instruction     - one IR instruction
    BasicBlock      - labelled, ordered list of instructions
    DebugVariable   - declaration metadata (source name + line)
    Function        - blocks, arguments and declaration metadata
    Module          - ordered collection of functions
    FunctionBuilder - programmatic construction of a Function

Typical usage::

    from seminal_input.ir import FunctionBuilder

    fb = FunctionBuilder("main")
    fb.block("entry")
    n = fb.alloca("n.addr", declare=("n", 4))
    fb.call("__isoc99_scanf", [fb.const("@.str", "ptr"), n], type="i32")
    fn = fb.build()
"""

from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass, field
from typing import (
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)


# ---------------------------------------------------------------------------
# Instruction kinds
# ---------------------------------------------------------------------------


class Opcode(enum.Enum):
    """Classification of an IR instruction."""

    ALLOCA = "alloca"
    LOAD = "load"
    STORE = "store"
    CALL = "call"
    BR = "br"
    SWITCH = "switch"
    RET = "ret"
    UNREACHABLE = "unreachable"
    PHI = "phi"
    ICMP = "icmp"
    FCMP = "fcmp"
    BINARY = "binary"
    CAST = "cast"
    GEP = "getelementptr"
    SELECT = "select"
    OTHER = "other"

    @property
    def is_terminator(self) -> bool:
        return self in _TERMINATORS


_TERMINATORS = frozenset(
    {Opcode.BR, Opcode.SWITCH, Opcode.RET, Opcode.UNREACHABLE}
)

VOID = "void"


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Value:
    """Base class of every node in the def-use graph.

    ``eq=False`` keeps the default identity ``__eq__``/``__hash__``.
    """

    name: str = ""
    type: str = ""

    @property
    def is_instruction(self) -> bool:
        return False

    def ref(self) -> str:
        """Return the value as it would be spelled in textual IR."""
        return f"%{self.name}" if self.name else "<unnamed>"


@dataclass(eq=False)
class Constant(Value):
    """A literal (``0``, ``null``, ``c"..."``) or constant expression."""

    def ref(self) -> str:
        return self.name


@dataclass(eq=False)
class Argument(Value):
    """A formal parameter of the enclosing function."""

    index: int = 0


@dataclass(eq=False)
class GlobalRef(Value):
    """A global variable or function symbol (``@name``)."""

    def ref(self) -> str:
        return f"@{self.name}"


@dataclass(eq=False)
class Instruction(Value):
    """
    One IR instruction.

    Operand layout per opcode:

    =========== =============================================
    LOAD        ``[pointer]``
    STORE       ``[value, pointer]``
    CALL        call arguments, in order (callee kept apart)
    BR          ``[condition]`` if conditional, else ``[]``
    SWITCH      ``[condition]``
    RET         ``[value]`` or ``[]``
    PHI         incoming values, parallel to ``labels``
    other       operands in textual order
    =========== =============================================

    ``labels`` holds successor block labels for terminators and incoming
    block labels for phis.
    """

    opcode: Opcode = Opcode.OTHER
    operands: List[Value] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    callee: Optional[str] = None
    called_value: Optional[Value] = None
    line: int = -1
    text: str = ""
    block: Optional["BasicBlock"] = field(default=None, repr=False)

    @property
    def is_instruction(self) -> bool:
        return True

    @property
    def produces_value(self) -> bool:
        return self.type != VOID

    @property
    def pointer_operand(self) -> Optional[Value]:
        if self.opcode is Opcode.LOAD:
            return self.operands[0] if self.operands else None
        if self.opcode is Opcode.STORE:
            return self.operands[1] if len(self.operands) > 1 else None
        return None

    @property
    def value_operand(self) -> Optional[Value]:
        if self.opcode is Opcode.STORE and self.operands:
            return self.operands[0]
        return None

    @property
    def arguments(self) -> List[Value]:
        if self.opcode is Opcode.CALL:
            return list(self.operands)
        return []

    @property
    def is_conditional(self) -> bool:
        return self.opcode is Opcode.BR and len(self.labels) == 2

    @property
    def condition(self) -> Optional[Value]:
        if self.opcode in (Opcode.BR, Opcode.SWITCH) and self.operands:
            return self.operands[0]
        return None

    def successor_labels(self) -> List[str]:
        if self.opcode.is_terminator:
            return list(self.labels)
        return []

    def __repr__(self) -> str:
        res = f"{self.ref()} = " if self.produces_value and self.name else ""
        return f"Instruction({res}{self.opcode.value}, noperands={len(self.operands)})"


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DebugVariable:
    """Declaration metadata: the source-level name and line of a variable."""

    name: str
    line: int = -1


class BasicBlock:
    """A labelled straight-line sequence of instructions."""

    __slots__ = ("label", "instructions", "function")

    def __init__(
        self,
        label: str,
        instructions: Optional[List[Instruction]] = None,
        function: Optional["Function"] = None,
    ) -> None:
        self.label = label
        self.instructions: List[Instruction] = []
        self.function = function
        for inst in instructions or []:
            self.append(inst)

    def append(self, inst: Instruction) -> Instruction:
        inst.block = self
        self.instructions.append(inst)
        return inst

    @property
    def terminator(self) -> Optional[Instruction]:
        if self.instructions and self.instructions[-1].opcode.is_terminator:
            return self.instructions[-1]
        return None

    def index_of(self, inst: Instruction) -> int:
        for i, candidate in enumerate(self.instructions):
            if candidate is inst:
                return i
        raise ValueError(f"{inst!r} is not in block {self.label!r}")

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)

    def __repr__(self) -> str:
        return f"BasicBlock({self.label!r}, ninstructions={len(self.instructions)})"


class Function:
    """
    A function: arguments, basic blocks in layout order, and the
    declaration metadata table mapping an address value (normally an
    ``alloca``) to its :class:`DebugVariable`.
    """

    def __init__(
        self,
        name: str,
        arguments: Optional[List[Argument]] = None,
        blocks: Optional[List[BasicBlock]] = None,
        return_type: str = VOID,
    ) -> None:
        self.name = name
        self.return_type = return_type
        self.arguments: List[Argument] = list(arguments or [])
        self.blocks: List[BasicBlock] = []
        self.declarations: Dict[Value, DebugVariable] = {}
        self._edges: Optional[Tuple[Dict[str, List[str]], Dict[str, List[str]]]] = None
        for bb in blocks or []:
            self.add_block(bb)

    # ----- construction -----------------------------------------------------

    def add_block(self, block: BasicBlock) -> BasicBlock:
        block.function = self
        self.blocks.append(block)
        self._edges = None
        return block

    def declare(self, address: Value, name: str, line: int = -1) -> DebugVariable:
        """Attach declaration metadata to *address*."""
        var = DebugVariable(name, line)
        self.declarations[address] = var
        return var

    # ----- queries ----------------------------------------------------------

    @property
    def is_declaration(self) -> bool:
        """True for external functions (``declare``) that have no body."""
        return not self.blocks

    @property
    def entry(self) -> Optional[BasicBlock]:
        return self.blocks[0] if self.blocks else None

    def declaration_for(self, value: Optional[Value]) -> Optional[DebugVariable]:
        if value is None:
            return None
        return self.declarations.get(value)

    def block(self, label: str) -> Optional[BasicBlock]:
        for bb in self.blocks:
            if bb.label == label:
                return bb
        return None

    def instructions(self) -> Iterator[Instruction]:
        for bb in self.blocks:
            yield from bb.instructions

    def _edge_maps(self) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
        if self._edges is None:
            succ: Dict[str, List[str]] = {bb.label: [] for bb in self.blocks}
            pred: Dict[str, List[str]] = {bb.label: [] for bb in self.blocks}
            for bb in self.blocks:
                term = bb.terminator
                if term is None:
                    continue
                for dst in term.successor_labels():
                    if dst not in succ or dst in succ[bb.label]:
                        continue
                    succ[bb.label].append(dst)
                    pred[dst].append(bb.label)
            self._edges = (succ, pred)
        return self._edges

    def successors(self, block: BasicBlock) -> List[BasicBlock]:
        succ, _ = self._edge_maps()
        return [self.block(lbl) for lbl in succ.get(block.label, [])]

    def predecessors(self, block: BasicBlock) -> List[BasicBlock]:
        _, pred = self._edge_maps()
        return [self.block(lbl) for lbl in pred.get(block.label, [])]

    def __repr__(self) -> str:
        return f"Function({self.name!r}, nblocks={len(self.blocks)})"


@dataclass
class Module:
    """An ordered collection of functions read from one IR file."""

    source_filename: str = ""
    functions: List[Function] = field(default_factory=list)

    def defined_functions(self) -> List[Function]:
        return [f for f in self.functions if not f.is_declaration]

    def function(self, name: str) -> Optional[Function]:
        for f in self.functions:
            if f.name == name:
                return f
        return None


# ---------------------------------------------------------------------------
# FunctionBuilder
# ---------------------------------------------------------------------------


class FunctionBuilder:
    """
    Incremental construction of a :class:`Function`.

    Instructions are appended to the current block (the one most recently
    opened with :meth:`block`).  Result names are numbered automatically
    unless given.
    """

    def __init__(self, name: str, params: Sequence[Tuple[str, str]] = ()) -> None:
        self._fn = Function(
            name,
            arguments=[Argument(n, t, index=i) for i, (n, t) in enumerate(params)],
        )
        self._current: Optional[BasicBlock] = None
        self._counter = itertools.count(len(params))

    # ----- blocks -----------------------------------------------------------

    def block(self, label: str) -> BasicBlock:
        self._current = self._fn.add_block(BasicBlock(label))
        return self._current

    @property
    def function(self) -> Function:
        return self._fn

    def arg(self, index: int) -> Argument:
        return self._fn.arguments[index]

    # ----- values -----------------------------------------------------------

    @staticmethod
    def const(text: str, type: str = "i32") -> Value:
        if text.startswith("@"):
            return GlobalRef(text[1:], type)
        return Constant(text, type)

    def _emit(
        self,
        opcode: Opcode,
        operands: Iterable[Value] = (),
        *,
        type: str = VOID,
        name: Optional[str] = None,
        **extra,
    ) -> Instruction:
        if self._current is None:
            raise RuntimeError("FunctionBuilder: open a block before emitting")
        if type != VOID and name is None:
            name = str(next(self._counter))
        inst = Instruction(
            name=name or "", type=type, opcode=opcode,
            operands=list(operands), **extra,
        )
        return self._current.append(inst)

    def alloca(
        self,
        name: Optional[str] = None,
        type: str = "i32",
        declare: Optional[Tuple[str, int]] = None,
    ) -> Instruction:
        inst = self._emit(Opcode.ALLOCA, type="ptr", name=name, text=f"alloca {type}")
        if declare is not None:
            self._fn.declare(inst, declare[0], declare[1])
        return inst

    def load(self, pointer: Value, type: str = "i32", name: Optional[str] = None) -> Instruction:
        return self._emit(Opcode.LOAD, [pointer], type=type, name=name)

    def store(self, value: Value, pointer: Value) -> Instruction:
        return self._emit(Opcode.STORE, [value, pointer])

    def call(
        self,
        callee: Optional[str],
        args: Sequence[Value] = (),
        type: str = VOID,
        name: Optional[str] = None,
        called_value: Optional[Value] = None,
    ) -> Instruction:
        return self._emit(
            Opcode.CALL, args, type=type, name=name,
            callee=callee, called_value=called_value,
        )

    def op(
        self,
        opcode: Opcode,
        operands: Sequence[Value],
        type: str = "i32",
        name: Optional[str] = None,
    ) -> Instruction:
        return self._emit(opcode, operands, type=type, name=name)

    def icmp(self, lhs: Value, rhs: Value, name: Optional[str] = None) -> Instruction:
        return self._emit(Opcode.ICMP, [lhs, rhs], type="i1", name=name)

    def phi(self, incoming: Sequence[Tuple[Value, str]], type: str = "i32",
            name: Optional[str] = None) -> Instruction:
        return self._emit(
            Opcode.PHI, [v for v, _ in incoming], type=type, name=name,
            labels=[lbl for _, lbl in incoming],
        )

    def br(self, cond: Value, if_true: str, if_false: str) -> Instruction:
        return self._emit(Opcode.BR, [cond], labels=[if_true, if_false])

    def jump(self, dest: str) -> Instruction:
        return self._emit(Opcode.BR, labels=[dest])

    def ret(self, value: Optional[Value] = None) -> Instruction:
        return self._emit(Opcode.RET, [value] if value is not None else [])

    def build(self) -> Function:
        self._fn._edges = None
        return self._fn
