"""
seminal_input/llparser.py
═════════════════════════

Reader for textual LLVM IR (``.ll``) as emitted by ``clang -g -O0 -S
-emit-llvm``.  Produces the :mod:`seminal_input.ir` model.

Scope
─────
Only what the analysis needs is modelled:

    • ``define`` bodies: arguments, labelled blocks, instructions with
      their operands resolved to IR values (forward references allowed);
    • ``declare`` lines (body-less functions);
    • declaration metadata, in both spellings:

          call void @llvm.dbg.declare(metadata ptr %2, metadata !15,
                                      metadata !DIExpression()), !dbg !17
          #dbg_declare(ptr %2, !15, !DIExpression(), !17)

      resolved through ``!DILocalVariable`` (the name) and
      ``!DILocation`` (the line) records.

Metadata records are parsed with a PEG grammar (parsimonious); instruction
lines are split on top-level commas and dispatched per opcode.  Other
``llvm.dbg.*`` intrinsics are dropped, they are not part of the program's
data flow.

Usage::

    from seminal_input.llparser import parse_file

    module = parse_file("loop.ll")
    for fn in module.defined_functions():
        print(fn.name, len(fn.blocks))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from .errors import IRParseError
from .ir import (
    VOID,
    Argument,
    BasicBlock,
    Constant,
    Function,
    GlobalRef,
    Instruction,
    Module,
    Opcode,
    Value,
)

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
#  Metadata grammar
# ═══════════════════════════════════════════════════════════════════════

METADATA_GRAMMAR = Grammar(r"""
    record      = "!" name "(" _ fields? _ ")"
    fields      = field (_ "," _ field)*
    field       = name _ ":" _ value
    value       = string / group / bare
    group       = call_group / tuple_group
    call_group  = "!"? name? "(" _ items? _ ")"
    tuple_group = "!{" _ items? _ "}"
    items       = item (_ "," _ item)*
    item        = string / group / bare
    string      = ~'"[^"]*"'
    bare        = ~'[^,(){}"]+'
    name        = ~"[A-Za-z_][A-Za-z0-9_.]*"
    _           = ~r"\s*"
""")


def _flatten(items) -> List:
    out: List = []
    stack = [items]
    while stack:
        cur = stack.pop()
        if isinstance(cur, list):
            stack.extend(reversed(cur))
        else:
            out.append(cur)
    return out


class MetadataRecordVisitor(NodeVisitor):
    """Turn a parsed ``!DIxxx(...)`` record into ``(kind, {field: text})``."""

    def visit_record(self, node, visited_children):
        kind = node.children[1].text
        fields: Dict[str, str] = {}
        for item in _flatten(visited_children):
            if isinstance(item, tuple):
                fields[item[0]] = item[1]
        return kind, fields

    def visit_field(self, node, visited_children):
        return node.children[0].text, node.children[4].text.strip()

    def generic_visit(self, node, visited_children):
        return visited_children or node


_RECORD_VISITOR = MetadataRecordVisitor()


def parse_metadata_record(text: str) -> Tuple[str, Dict[str, str]]:
    """Parse ``!DILocation(line: 4, column: 7, scope: !10)``.

    Returns the record kind (``"DILocation"``) and a mapping from field name
    to the raw field text.  Raises :class:`IRParseError` on malformed input.
    """
    try:
        tree = METADATA_GRAMMAR.parse(text.strip())
    except ParseError as exc:
        raise IRParseError(f"malformed metadata record: {exc}", text=text) from exc
    return _RECORD_VISITOR.visit(tree)


def unquote(text: str) -> str:
    """Strip the quotes of an IR string and decode ``\\XX`` hex escapes."""
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    return re.sub(r"\\([0-9A-Fa-f]{2})", lambda m: chr(int(m.group(1), 16)), text)


# ═══════════════════════════════════════════════════════════════════════
#  Lexical helpers
# ═══════════════════════════════════════════════════════════════════════

_IDENT = r'(?:[-\w.$]+|"[^"]*")'
_TRAILING_VALUE_RE = re.compile(r"([%@]" + _IDENT + r")\s*$")
_LABEL_LINE_RE = re.compile(r"^(" + _IDENT + r"):$")
_LABEL_REF_RE = re.compile(r"label\s+%(" + _IDENT + r")")
_RESULT_RE = re.compile(r"^(%" + _IDENT + r")\s*=\s*(.*)$")
_DEFINE_RE = re.compile(r"^(define|declare)\b(.*?)@(" + _IDENT + r")\s*\(")
_CALLEE_RE = re.compile(r"([%@]" + _IDENT + r")\s*\(")
_ATTACHMENTS_RE = re.compile(r"(?:,\s*![-\w.]+\s+!\d+)+\s*$")
_DBG_RE = re.compile(r"!dbg\s+!(\d+)")
_MD_LINE_RE = re.compile(r"^!(\d+)\s*=\s*(?:distinct\s+)?(!(DI\w+)\(.*\))\s*$")
_PHI_INCOMING_RE = re.compile(r"\[\s*(.+?)\s*,\s*%(" + _IDENT + r")\s*\]")

_BINARY_OPS = frozenset({
    "add", "fadd", "sub", "fsub", "mul", "fmul", "udiv", "sdiv", "fdiv",
    "urem", "srem", "frem", "shl", "lshr", "ashr", "and", "or", "xor",
})
_CAST_OPS = frozenset({
    "trunc", "zext", "sext", "fptrunc", "fpext", "fptoui", "fptosi",
    "uitofp", "sitofp", "ptrtoint", "inttoptr", "bitcast", "addrspacecast",
})
_SIMPLE_OPCODES = {
    "alloca": Opcode.ALLOCA,
    "load": Opcode.LOAD,
    "store": Opcode.STORE,
    "call": Opcode.CALL,
    "br": Opcode.BR,
    "switch": Opcode.SWITCH,
    "ret": Opcode.RET,
    "unreachable": Opcode.UNREACHABLE,
    "phi": Opcode.PHI,
    "icmp": Opcode.ICMP,
    "fcmp": Opcode.FCMP,
    "getelementptr": Opcode.GEP,
    "select": Opcode.SELECT,
}
_CALL_PREFIXES = frozenset({"tail", "musttail", "notail"})
_MEMORY_QUALIFIERS = frozenset({"volatile", "atomic"})


def _classify(word: str) -> Opcode:
    if word in _SIMPLE_OPCODES:
        return _SIMPLE_OPCODES[word]
    if word in _BINARY_OPS:
        return Opcode.BINARY
    if word in _CAST_OPS:
        return Opcode.CAST
    return Opcode.OTHER


def _strip_comment(line: str) -> str:
    in_str = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_str = not in_str
        elif ch == ";" and not in_str:
            return line[:i].rstrip()
    return line.rstrip()


def _split_top(text: str) -> List[str]:
    """Split *text* on commas that are not nested in brackets or strings."""
    parts: List[str] = []
    depth = 0
    start = 0
    in_str = False
    for i, ch in enumerate(text):
        if ch == '"':
            in_str = not in_str
        elif in_str:
            continue
        elif ch in "([{<":
            depth += 1
        elif ch in ")]}>":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(text[start:i].strip())
            start = i + 1
    tail = text[start:].strip()
    if tail:
        parts.append(tail)
    return parts


def _bracket_balance(text: str) -> int:
    depth = 0
    in_str = False
    for ch in text:
        if ch == '"':
            in_str = not in_str
        elif not in_str and ch == "[":
            depth += 1
        elif not in_str and ch == "]":
            depth -= 1
    return depth


def _matching_paren(text: str, open_idx: int) -> int:
    depth = 0
    in_str = False
    for i in range(open_idx, len(text)):
        ch = text[i]
        if ch == '"':
            in_str = not in_str
        elif in_str:
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _ident(token: str) -> str:
    """``%"a b"`` → ``a b``; ``@main`` → ``main``."""
    name = token[1:] if token[:1] in "%@" else token
    return unquote(name) if name.startswith('"') else name


# ═══════════════════════════════════════════════════════════════════════
#  Pending operand references
# ═══════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class _Ref:
    """A ``%local`` or ``@global`` token awaiting resolution."""

    token: str
    type: str
    lineno: int
    optional: bool = False


Operand = Union[Value, _Ref]


def _operand(text: str, lineno: int) -> Operand:
    """Map ``"ptr noundef %2"`` / ``"i32 0"`` / ``"%7"`` to an operand."""
    text = text.strip()
    m = _TRAILING_VALUE_RE.search(text)
    if m and (m.start() == 0 or text[m.start() - 1].isspace()):
        return _Ref(m.group(1), text[: m.start()].strip(), lineno)
    if text.endswith(")") or text.endswith("}") or text.endswith(">"):
        return Constant(text)
    pieces = text.rsplit(None, 1)
    if len(pieces) == 2:
        return Constant(pieces[1], pieces[0])
    return Constant(text)


def _generic_refs(text: str, lineno: int) -> List[Operand]:
    refs: List[Operand] = []
    scrubbed = re.sub(r'c?"[^"]*"', "", _LABEL_REF_RE.sub("", text))
    for m in re.finditer(r"[%@]" + _IDENT, scrubbed):
        refs.append(_Ref(m.group(0), "", lineno, optional=True))
    return refs


# ═══════════════════════════════════════════════════════════════════════
#  Module reader
# ═══════════════════════════════════════════════════════════════════════

class _ModuleReader:
    """Line-driven reader; one instance per input text."""

    def __init__(self, text: str, filename: Optional[str] = None) -> None:
        self.text = text
        self.filename = filename
        self.module = Module()
        self.metadata: Dict[str, Tuple[str, Dict[str, str]]] = {}
        self._globals: Dict[str, GlobalRef] = {}
        # per-function state
        self._fn: Optional[Function] = None
        self._block: Optional[BasicBlock] = None
        self._locals: Dict[str, Value] = {}
        self._declares: List[Tuple[Operand, str, Optional[str]]] = []
        # module-wide fix-ups, resolved once all metadata has been read
        self._pending_decls: List[Tuple[Function, Value, str, Optional[str], int]] = []
        self._pending_lines: List[Tuple[Instruction, str]] = []

    def error(self, message: str, lineno: int, text: str = "") -> IRParseError:
        return IRParseError(message, file=self.filename, line=lineno, text=text)

    # ----- driver ----------------------------------------------------------

    def read(self) -> Module:
        buffered = ""
        buffered_at = 0
        for lineno, raw in enumerate(self.text.splitlines(), start=1):
            line = _strip_comment(raw).strip()
            if buffered:
                buffered = f"{buffered} {line}"
                if _bracket_balance(buffered) > 0:
                    continue
                line, lineno = buffered, buffered_at
                buffered = ""
            if not line:
                continue
            if self._fn is not None and _bracket_balance(line) > 0:
                buffered, buffered_at = line, lineno
                continue
            self._read_line(line, lineno)
        if self._fn is not None:
            raise self.error(f"unterminated body of function @{self._fn.name}",
                             len(self.text.splitlines()))
        self._resolve_metadata()
        return self.module

    def _read_line(self, line: str, lineno: int) -> None:
        if self._fn is None:
            if line.startswith("source_filename"):
                self.module.source_filename = unquote(line.split("=", 1)[1].strip())
            elif line.startswith(("define", "declare")):
                self._start_function(line, lineno)
            else:
                m = _MD_LINE_RE.match(line)
                if m and m.group(3) in ("DILocalVariable", "DILocation"):
                    self.metadata[m.group(1)] = parse_metadata_record(m.group(2))
            return
        if line == "}":
            self._finish_function(lineno)
            return
        m = _LABEL_LINE_RE.match(line)
        if m:
            self._block = self._fn.add_block(BasicBlock(_ident("%" + m.group(1))))
            return
        if line.startswith("#dbg_"):
            self._read_debug_record(line, lineno)
            return
        self._read_instruction(line, lineno)

    # ----- functions -------------------------------------------------------

    def _start_function(self, line: str, lineno: int) -> None:
        m = _DEFINE_RE.match(line)
        if not m:
            raise self.error("malformed function header", lineno, line)
        keyword, prefix, raw_name = m.group(1), m.group(2), m.group(3)
        open_idx = m.end() - 1
        close_idx = _matching_paren(line, open_idx)
        if close_idx < 0:
            raise self.error("unbalanced parameter list", lineno, line)
        prefix_tokens = prefix.split()
        fn = Function(
            _ident("@" + raw_name),
            return_type=prefix_tokens[-1] if prefix_tokens else VOID,
        )
        for index, param in enumerate(_split_top(line[open_idx + 1:close_idx])):
            if param == "...":
                continue
            pm = _TRAILING_VALUE_RE.search(param)
            ptype = param.split()[0] if param.split() else ""
            pname = _ident(pm.group(1)) if pm and pm.group(1).startswith("%") else ""
            fn.arguments.append(Argument(pname, ptype, index=index))
        self.module.functions.append(fn)
        if keyword == "declare":
            return
        if not line.rstrip().endswith("{"):
            raise self.error(f"expected '{{' after definition of @{fn.name}", lineno, line)
        self._fn = fn
        self._block = None
        self._locals = {arg.name: arg for arg in fn.arguments if arg.name}
        self._declares = []

    def _finish_function(self, lineno: int) -> None:
        fn = self._fn
        assert fn is not None
        for inst in fn.instructions():
            inst.operands = [self._resolve(op) for op in inst.operands]
            inst.operands = [op for op in inst.operands if op is not None]
            if isinstance(inst.called_value, _Ref):
                inst.called_value = self._resolve(inst.called_value)
        for address, var_md, loc_md in self._declares:
            value = self._resolve(address) if isinstance(address, _Ref) else None
            if value is None:
                _log.debug("@%s: declaration without an addressable value (%s)",
                           fn.name, var_md)
                continue
            self._pending_decls.append((fn, value, var_md, loc_md, lineno))
        _log.debug("Read @%s: %d blocks, %d values", fn.name,
                   len(fn.blocks), len(self._locals))
        self._fn = None
        self._block = None
        self._locals = {}

    def _resolve(self, op: Operand) -> Optional[Value]:
        if not isinstance(op, _Ref):
            return op
        name = _ident(op.token)
        if op.token.startswith("@"):
            ref = self._globals.get(name)
            if ref is None:
                ref = self._globals[name] = GlobalRef(name, "ptr")
            return ref
        value = self._locals.get(name)
        if value is None:
            if op.optional:
                return None
            raise self.error(f"use of undefined value {op.token}", op.lineno)
        return value

    # ----- instructions ----------------------------------------------------

    def _current_block(self) -> BasicBlock:
        if self._block is None:
            self._block = self._fn.add_block(BasicBlock("entry"))
        return self._block

    def _read_instruction(self, line: str, lineno: int) -> None:
        body = line
        dbg: Optional[str] = None
        tail = _ATTACHMENTS_RE.search(body)
        if tail:
            dm = _DBG_RE.search(tail.group(0))
            dbg = dm.group(1) if dm else None
            body = body[: tail.start()].rstrip()

        result: Optional[str] = None
        m = _RESULT_RE.match(body)
        if m:
            result, body = _ident(m.group(1)), m.group(2)

        words = body.split(None, 1)
        if not words:
            raise self.error("missing instruction", lineno, line)
        word = words[0]
        rest = words[1] if len(words) > 1 else ""
        while word in _CALL_PREFIXES and rest:
            word, _, rest = rest.partition(" ")

        if word == "call" and "@llvm.dbg." in rest:
            self._read_debug_intrinsic(rest, dbg, lineno)
            return

        opcode = _classify(word)
        inst = Instruction(name=result or "", type=VOID, opcode=opcode,
                           text=line)
        reader = getattr(self, f"_read_{opcode.name.lower()}", None)
        if reader is None:
            inst.operands = _generic_refs(rest, lineno)
            inst.labels = [_ident("%" + lbl) for lbl in _LABEL_REF_RE.findall(rest)]
            inst.type = "?" if result else VOID
        else:
            reader(inst, word, rest, lineno)
        if result is not None:
            if result in self._locals:
                raise self.error(f"redefinition of %{result}", lineno, line)
            self._locals[result] = inst
            if inst.type == VOID:
                inst.type = "?"
        self._current_block().append(inst)
        if dbg is not None:
            self._pending_lines.append((inst, dbg))

    def _read_alloca(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        inst.type = "ptr"
        inst.text = f"alloca {parts[0]}" if parts else "alloca"
        for part in parts[1:]:
            if not part.startswith(("align", "addrspace")):
                inst.operands.append(_operand(part, lineno))

    def _read_load(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        if len(parts) < 2:
            raise self.error("load without a pointer operand", lineno, rest)
        type_words = [w for w in parts[0].split() if w not in _MEMORY_QUALIFIERS]
        inst.type = " ".join(type_words)
        inst.operands = [_operand(parts[1], lineno)]

    def _read_store(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        if len(parts) < 2:
            raise self.error("store needs a value and a pointer", lineno, rest)
        inst.operands = [_operand(parts[0], lineno), _operand(parts[1], lineno)]

    def _read_call(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        m = _CALLEE_RE.search(rest)
        if not m:
            raise self.error("call without a callee", lineno, rest)
        close_idx = _matching_paren(rest, m.end() - 1)
        if close_idx < 0:
            raise self.error("unbalanced call arguments", lineno, rest)
        token = m.group(1)
        if token.startswith("@"):
            inst.callee = _ident(token)
        else:
            inst.called_value = _Ref(token, "ptr", lineno)
        inst.operands = [_operand(arg, lineno)
                         for arg in _split_top(rest[m.end():close_idx])]
        prefix = rest[: m.start()].strip()
        if prefix.endswith(")"):
            # explicit function type: "i32 (ptr, ...)"
            prefix = prefix[: prefix.rfind("(")].strip()
        ret_tokens = prefix.split()
        inst.type = ret_tokens[-1] if ret_tokens else VOID

    def _read_br(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        if len(parts) == 3:
            inst.operands = [_operand(parts[0], lineno)]
            parts = parts[1:]
        labels = [_LABEL_REF_RE.search(p) for p in parts]
        if not labels or not all(labels):
            raise self.error("malformed branch", lineno, rest)
        inst.labels = [_ident("%" + lm.group(1)) for lm in labels]

    def _read_switch(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        head, _, cases = rest.partition("[")
        parts = _split_top(head)
        if len(parts) != 2:
            raise self.error("malformed switch", lineno, rest)
        inst.operands = [_operand(parts[0], lineno)]
        inst.labels = [_ident("%" + lbl) for lbl in _LABEL_REF_RE.findall(parts[1] + " " + cases)]

    def _read_ret(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        if rest and rest != VOID:
            inst.operands = [_operand(rest, lineno)]

    def _read_unreachable(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        pass

    def _read_phi(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        type_part = rest.split("[", 1)[0].split()
        inst.type = type_part[-1] if type_part else "?"
        for value_text, label in _PHI_INCOMING_RE.findall(rest):
            inst.operands.append(_operand(value_text, lineno))
            inst.labels.append(_ident("%" + label))

    def _read_icmp(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        inst.type = "i1"
        inst.operands = [_operand(p, lineno) for p in _split_top(rest)]

    _read_fcmp = _read_icmp

    def _read_binary(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        inst.operands = [_operand(p, lineno) for p in parts]
        first = parts[0].split() if parts else []
        inst.type = first[-2] if len(first) >= 2 else "?"

    def _read_cast(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        source, _, target = rest.rpartition(" to ")
        if not source:
            raise self.error(f"malformed {word}", lineno, rest)
        inst.operands = [_operand(source, lineno)]
        inst.type = target.strip()

    def _read_gep(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        inst.type = "ptr"
        inst.operands = [_operand(p, lineno) for p in parts[1:]]

    def _read_select(self, inst: Instruction, word: str, rest: str, lineno: int) -> None:
        parts = _split_top(rest)
        inst.operands = [_operand(p, lineno) for p in parts]
        second = parts[1].split() if len(parts) > 1 else []
        inst.type = second[0] if second else "?"

    # ----- declaration metadata -------------------------------------------

    def _read_debug_intrinsic(self, rest: str, dbg: Optional[str], lineno: int) -> None:
        m = _CALLEE_RE.search(rest)
        if not m or _ident(m.group(1)) != "llvm.dbg.declare":
            return
        close_idx = _matching_paren(rest, m.end() - 1)
        args = _split_top(rest[m.end():close_idx])
        if len(args) < 2:
            raise self.error("malformed llvm.dbg.declare", lineno, rest)
        address = args[0].split(None, 1)[1] if args[0].startswith("metadata") else args[0]
        var_md = args[1].split()[-1].lstrip("!")
        self._declares.append((_operand(address, lineno), var_md, dbg))

    def _read_debug_record(self, line: str, lineno: int) -> None:
        if not line.startswith("#dbg_declare("):
            return
        open_idx = line.index("(")
        close_idx = _matching_paren(line, open_idx)
        args = _split_top(line[open_idx + 1:close_idx])
        if len(args) < 4:
            raise self.error("malformed #dbg_declare record", lineno, line)
        self._declares.append(
            (_operand(args[0], lineno), args[1].lstrip("!"), args[3].lstrip("!"))
        )

    def _location_line(self, md_id: Optional[str]) -> int:
        record = self.metadata.get(md_id) if md_id is not None else None
        if record is None or record[0] != "DILocation":
            return -1
        try:
            line = int(record[1].get("line", "0"))
        except ValueError:
            return -1
        return line if line > 0 else -1

    def _resolve_metadata(self) -> None:
        for inst, md_id in self._pending_lines:
            inst.line = self._location_line(md_id)
        for fn, value, var_md, loc_md, lineno in self._pending_decls:
            record = self.metadata.get(var_md)
            if record is None or record[0] != "DILocalVariable":
                _log.debug("@%s: !%s is not a local variable record", fn.name, var_md)
                continue
            fields = record[1]
            if "name" not in fields:
                continue
            line = self._location_line(loc_md)
            if line < 0:
                try:
                    line = int(fields.get("line", "-1"))
                except ValueError:
                    line = -1
            fn.declare(value, unquote(fields["name"]), line)


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def parse_module(text: str, filename: Optional[str] = None) -> Module:
    """Parse textual LLVM IR into a :class:`~seminal_input.ir.Module`."""
    return _ModuleReader(text, filename).read()


def parse_file(path: Union[str, Path]) -> Module:
    """Read and parse an ``.ll`` file."""
    p = Path(path)
    _log.info("Reading IR: %s", p)
    module = parse_module(p.read_text(encoding="utf-8"), filename=str(p))
    if not module.source_filename:
        module.source_filename = p.name
    return module
