"""
seminal_input.loops
===================

Loop-nest structure of a :class:`~seminal_input.ir.Function` and the
loop-condition extractor that feeds the def-use tracer.

Contents
--------
    DominatorTree        - Cooper–Harvey–Kennedy iterative dominators
    NaturalLoop          - one loop: header, body, back edges, nesting
    LoopNest             - all natural loops of a function
    loop_condition_seeds - operands of the exit tests in loop headers

Only the header of a loop is inspected for seeds.  Every iteration passes
through the header, so its conditional branch is the exit test that bounds
the trip count; branches in the loop body never seed the tracer.

References
----------
[1] Cooper, Harvey, Kennedy – "A Simple, Fast Dominance Algorithm", 2001.
[2] Aho, Lam, Sethi, Ullman – "Compilers: Principles, Techniques, and
    Tools", 2e, §9.6 (natural loops).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

from .ir import BasicBlock, Function, Opcode, Value

_log = logging.getLogger(__name__)


# ===================================================================
#  1. Dominator Tree
# ===================================================================

class DominatorTree:
    """
    Immediate dominators of the blocks of one function, keyed by label.

    The entry block's immediate dominator is itself
    (``idom[entry] == entry``); walks up the idom chain stop there.
    Blocks unreachable from the entry have no entry in ``idom``.
    """

    def __init__(self, function: Function):
        self.function = function
        self.idom: Dict[str, str] = {}
        self.rpo: List[str] = []
        self._computed = False

    def compute(self) -> "DominatorTree":
        if self._computed:
            return self
        entry = self.function.entry
        if entry is not None:
            self._compute_idom(entry)
        self._computed = True
        return self

    def dominates(self, a: str, b: str) -> bool:
        """True if block *a* dominates block *b* (reflexive)."""
        self.compute()
        if b not in self.idom:
            return False
        cur = b
        while True:
            if cur == a:
                return True
            parent = self.idom[cur]
            if parent == cur:
                return False
            cur = parent

    # ---- internals ---------------------------------------------------

    def _reverse_postorder(self, entry: BasicBlock) -> List[str]:
        finish: List[str] = []
        seen: Set[str] = {entry.label}
        stack: List[Tuple[BasicBlock, int]] = [(entry, 0)]
        while stack:
            block, idx = stack[-1]
            succs = self.function.successors(block)
            if idx < len(succs):
                stack[-1] = (block, idx + 1)
                child = succs[idx]
                if child is not None and child.label not in seen:
                    seen.add(child.label)
                    stack.append((child, 0))
            else:
                stack.pop()
                finish.append(block.label)
        return list(reversed(finish))

    def _compute_idom(self, entry: BasicBlock) -> None:
        self.rpo = self._reverse_postorder(entry)
        rpo_num = {label: i for i, label in enumerate(self.rpo)}
        idom: Dict[str, Optional[str]] = {label: None for label in self.rpo}
        idom[entry.label] = entry.label

        def _intersect(b1: str, b2: str) -> str:
            while b1 != b2:
                while rpo_num[b1] > rpo_num[b2]:
                    b1 = idom[b1]
                while rpo_num[b2] > rpo_num[b1]:
                    b2 = idom[b2]
            return b1

        changed = True
        while changed:
            changed = False
            for label in self.rpo[1:]:
                block = self.function.block(label)
                preds = [p.label for p in self.function.predecessors(block)
                         if p.label in rpo_num and idom[p.label] is not None]
                if not preds:
                    continue
                new_idom = preds[0]
                for p in preds[1:]:
                    new_idom = _intersect(new_idom, p)
                if idom[label] != new_idom:
                    idom[label] = new_idom
                    changed = True

        self.idom = {k: v for k, v in idom.items() if v is not None}


# ===================================================================
#  2. Natural loops
# ===================================================================

@dataclass(eq=False)
class NaturalLoop:
    """
    A natural loop.

    Attributes
    ----------
    header     : the loop header block
    body       : labels of the blocks in the loop (header included)
    back_edges : (tail, header) label pairs
    depth      : nesting depth, 1 = outermost
    parent     : enclosing loop, or None
    children   : immediately nested loops
    """
    header: BasicBlock
    body: FrozenSet[str]
    back_edges: List[Tuple[str, str]]
    depth: int = 1
    parent: Optional["NaturalLoop"] = field(default=None, repr=False)
    children: List["NaturalLoop"] = field(default_factory=list, repr=False)

    def contains(self, block: BasicBlock) -> bool:
        return block.label in self.body

    def __repr__(self) -> str:
        return (f"NaturalLoop(header={self.header.label!r}, "
                f"nblocks={len(self.body)}, depth={self.depth})")


class LoopNest:
    """
    The loop-nest structure of one function.

    Algorithm:
    1. Compute dominators.
    2. Back edges are edges t→h where h dominates t.
    3. Each header's body is the reverse reachability from its tails,
       stopping at the header; loops sharing a header are merged.
    4. A loop is nested in the smallest loop whose body strictly
       contains its own.
    """

    def __init__(self, function: Function, loops: List[NaturalLoop]):
        self.function = function
        self.loops = loops

    @classmethod
    def from_function(cls, function: Function) -> "LoopNest":
        if function is None:
            _log.error("Null function passed to LoopNest.from_function.")
            return cls(Function("<null>"), [])
        domtree = DominatorTree(function).compute()

        tails_by_header: Dict[str, List[str]] = {}
        for label in domtree.rpo:
            block = function.block(label)
            for succ in function.successors(block):
                if domtree.dominates(succ.label, label):
                    tails_by_header.setdefault(succ.label, []).append(label)

        loops: Dict[str, NaturalLoop] = {}
        for header, tails in tails_by_header.items():
            body: Set[str] = {header}
            work: Deque[str] = deque()
            for tail in tails:
                if tail not in body:
                    body.add(tail)
                    work.append(tail)
            while work:
                label = work.popleft()
                for pred in function.predecessors(function.block(label)):
                    if pred.label not in body and pred.label in domtree.idom:
                        body.add(pred.label)
                        work.append(pred.label)
            loops[header] = NaturalLoop(
                header=function.block(header),
                body=frozenset(body),
                back_edges=[(t, header) for t in tails],
            )

        by_size = sorted(loops.values(), key=lambda lp: len(lp.body))
        for i, inner in enumerate(by_size):
            for outer in by_size[i + 1:]:
                if inner.body < outer.body:
                    inner.parent = outer
                    outer.children.append(inner)
                    break

        layout = {bb.label: i for i, bb in enumerate(function.blocks)}
        ordered = sorted(loops.values(), key=lambda lp: layout[lp.header.label])
        for lp in ordered:
            depth, cur = 1, lp.parent
            while cur is not None:
                depth += 1
                cur = cur.parent
            lp.depth = depth
            lp.children.sort(key=lambda c: layout[c.header.label])
        _log.debug("@%s: %d natural loop(s)", function.name, len(ordered))
        return cls(function, ordered)

    def top_level(self) -> List[NaturalLoop]:
        """Outermost loops, in block layout order of their headers."""
        return [lp for lp in self.loops if lp.parent is None]

    def all_loops(self) -> List[NaturalLoop]:
        return list(self.loops)

    def loop_for(self, block: BasicBlock) -> Optional[NaturalLoop]:
        """Innermost loop containing *block*, or None."""
        best: Optional[NaturalLoop] = None
        for lp in self.loops:
            if lp.contains(block) and (best is None or lp.depth > best.depth):
                best = lp
        return best

    def __iter__(self) -> Iterator[NaturalLoop]:
        return iter(self.top_level())

    def __len__(self) -> int:
        return len(self.loops)


# ===================================================================
#  3. Loop condition extraction
# ===================================================================

def loop_condition_seeds(
    loop_nest: Optional[LoopNest],
    include_nested: bool = False,
) -> Iterator[Value]:
    """
    Yield the operands of every exit-test condition found in loop headers.

    Only conditional branches located in a header are considered, and only
    when their condition is itself an instruction; the condition value is
    not yielded, its operands are.  With *include_nested* false (the
    default) only the headers of outermost loops are inspected.
    """
    if loop_nest is None:
        _log.error("Null loop nest passed to loop_condition_seeds.")
        return
    loops = loop_nest.all_loops() if include_nested else loop_nest.top_level()
    for lp in loops:
        for inst in lp.header.instructions:
            if inst.opcode is not Opcode.BR or not inst.is_conditional:
                continue
            cond = inst.condition
            if cond is None or not cond.is_instruction:
                continue
            yield from cond.operands
