# tests/conftest.py
"""
Shared fixtures for the seminal_input test suite.

The ``*_LL`` constants are trimmed ``clang -g -O0 -emit-llvm -S`` output
for small C programs; the C source is reproduced above each one so the
expected declaration lines can be checked by eye.  The ``build_*``
helpers construct the same kind of functions programmatically.
"""

import pytest

from seminal_input.ir import FunctionBuilder, Opcode
from seminal_input.llparser import parse_module


# ── Scenario A: scanf into two variables, loop bounded by one ────────
#
#   1  #include <stdio.h>
#   2
#   3  int main(void) {
#   4    int id;
#   5    int n;
#   6    int i;
#   7    scanf("%d, %d", &id, &n);
#   8    for (i = 0; i < n; i++) {
#   9      printf("%d\n", id);
#  10    }
#  11    return 0;
#  12  }

SCANF_LOOP_LL = r"""; ModuleID = 'scan.c'
source_filename = "scan.c"
target triple = "x86_64-pc-linux-gnu"

@.str = private unnamed_addr constant [7 x i8] c"%d, %d\00", align 1
@.str.1 = private unnamed_addr constant [4 x i8] c"%d\0A\00", align 1

; Function Attrs: noinline nounwind optnone uwtable
define dso_local i32 @main() #0 !dbg !10 {
  %1 = alloca i32, align 4
  %2 = alloca i32, align 4
  %3 = alloca i32, align 4
  %4 = alloca i32, align 4
  store i32 0, ptr %1, align 4
  call void @llvm.dbg.declare(metadata ptr %2, metadata !15, metadata !DIExpression()), !dbg !16
  call void @llvm.dbg.declare(metadata ptr %3, metadata !17, metadata !DIExpression()), !dbg !18
  call void @llvm.dbg.declare(metadata ptr %4, metadata !19, metadata !DIExpression()), !dbg !20
  %5 = call i32 (ptr, ...) @__isoc99_scanf(ptr noundef @.str, ptr noundef %2, ptr noundef %3), !dbg !21
  store i32 0, ptr %4, align 4, !dbg !22
  br label %6, !dbg !24

6:                                                ; preds = %13, %0
  %7 = load i32, ptr %4, align 4, !dbg !25
  %8 = load i32, ptr %3, align 4, !dbg !27
  %9 = icmp slt i32 %7, %8, !dbg !28
  br i1 %9, label %10, label %16, !dbg !29

10:                                               ; preds = %6
  %11 = load i32, ptr %2, align 4, !dbg !30
  %12 = call i32 (ptr, ...) @printf(ptr noundef @.str.1, i32 noundef %11), !dbg !32
  br label %13, !dbg !33

13:                                               ; preds = %10
  %14 = load i32, ptr %4, align 4, !dbg !34
  %15 = add nsw i32 %14, 1, !dbg !34
  store i32 %15, ptr %4, align 4, !dbg !34
  br label %6, !dbg !35, !llvm.loop !36

16:                                               ; preds = %6
  ret i32 0, !dbg !39
}

; Function Attrs: nocallback nofree nosync nounwind speculatable willreturn memory(none)
declare void @llvm.dbg.declare(metadata, metadata, metadata) #1

declare i32 @__isoc99_scanf(ptr noundef, ...) #2

declare i32 @printf(ptr noundef, ...) #2

attributes #0 = { noinline nounwind optnone uwtable "frame-pointer"="all" }

!llvm.dbg.cu = !{!0}
!llvm.module.flags = !{!2, !3}

!0 = distinct !DICompileUnit(language: DW_LANG_C11, file: !1, producer: "clang version 17.0.6", isOptimized: false, runtimeVersion: 0, emissionKind: FullDebug, splitDebugInlining: false, nameTableKind: None)
!1 = !DIFile(filename: "scan.c", directory: "/tmp")
!2 = !{i32 7, !"Dwarf Version", i32 5}
!3 = !{i32 2, !"Debug Info Version", i32 3}
!10 = distinct !DISubprogram(name: "main", scope: !1, file: !1, line: 3, type: !11, scopeLine: 3, spFlags: DISPFlagDefinition, unit: !0, retainedNodes: !13)
!11 = !DISubroutineType(types: !12)
!12 = !{!14}
!13 = !{}
!14 = !DIBasicType(name: "int", size: 32, encoding: DW_ATE_signed)
!15 = !DILocalVariable(name: "id", scope: !10, file: !1, line: 4, type: !14)
!16 = !DILocation(line: 4, column: 7, scope: !10)
!17 = !DILocalVariable(name: "n", scope: !10, file: !1, line: 5, type: !14)
!18 = !DILocation(line: 5, column: 7, scope: !10)
!19 = !DILocalVariable(name: "i", scope: !10, file: !1, line: 6, type: !14)
!20 = !DILocation(line: 6, column: 7, scope: !10)
!21 = !DILocation(line: 7, column: 3, scope: !10)
!25 = !DILocation(line: 8, column: 15, scope: !26)
!27 = !DILocation(line: 8, column: 19, scope: !26)
"""


# ── Scenario B: fopen result stored into fp, getc loop ───────────────
#
#   1  #include <stdio.h>
#   2
#   3  int count(const char *path) {
#   4    int c;
#   5    int total = 0;
#   6    FILE *fp = fopen(path, "r");
#   7    while ((c = getc(fp)) != EOF)
#   8      total++;
#   9    return total;
#  10  }

FOPEN_LOOP_LL = r"""; ModuleID = 'count.c'
source_filename = "count.c"

@.str = private unnamed_addr constant [2 x i8] c"r\00", align 1

define dso_local i32 @count(ptr noundef %0) #0 !dbg !10 {
  %2 = alloca ptr, align 8
  %3 = alloca i32, align 4
  %4 = alloca i32, align 4
  %5 = alloca ptr, align 8
  store ptr %0, ptr %2, align 8
  call void @llvm.dbg.declare(metadata ptr %2, metadata !20, metadata !DIExpression()), !dbg !21
  call void @llvm.dbg.declare(metadata ptr %3, metadata !22, metadata !DIExpression()), !dbg !23
  call void @llvm.dbg.declare(metadata ptr %4, metadata !24, metadata !DIExpression()), !dbg !25
  store i32 0, ptr %4, align 4, !dbg !25
  call void @llvm.dbg.declare(metadata ptr %5, metadata !26, metadata !DIExpression()), !dbg !27
  %6 = load ptr, ptr %2, align 8, !dbg !28
  %7 = call noalias ptr @fopen(ptr noundef %6, ptr noundef @.str), !dbg !29
  store ptr %7, ptr %5, align 8, !dbg !27
  br label %8, !dbg !30

8:                                                ; preds = %12, %1
  %9 = load ptr, ptr %5, align 8, !dbg !31
  %10 = call i32 @getc(ptr noundef %9), !dbg !32
  store i32 %10, ptr %3, align 4, !dbg !33
  %11 = icmp ne i32 %10, -1, !dbg !34
  br i1 %11, label %12, label %15, !dbg !30

12:                                               ; preds = %8
  %13 = load i32, ptr %4, align 4, !dbg !35
  %14 = add nsw i32 %13, 1, !dbg !35
  store i32 %14, ptr %4, align 4, !dbg !35
  br label %8, !dbg !30, !llvm.loop !36

15:                                               ; preds = %8
  %16 = load i32, ptr %4, align 4, !dbg !38
  ret i32 %16, !dbg !39
}

declare void @llvm.dbg.declare(metadata, metadata, metadata) #1

declare noalias ptr @fopen(ptr noundef, ptr noundef) #2

declare i32 @getc(ptr noundef) #2

!20 = !DILocalVariable(name: "path", arg: 1, scope: !10, file: !1, line: 3, type: !14)
!21 = !DILocation(line: 3, column: 23, scope: !10)
!22 = !DILocalVariable(name: "c", scope: !10, file: !1, line: 4, type: !18)
!23 = !DILocation(line: 4, column: 7, scope: !10)
!24 = !DILocalVariable(name: "total", scope: !10, file: !1, line: 5, type: !18)
!25 = !DILocation(line: 5, column: 7, scope: !10)
!26 = !DILocalVariable(name: "fp", scope: !10, file: !1, line: 6, type: !19)
!27 = !DILocation(line: 6, column: 9, scope: !10)
"""


# ── Scenario C: no input call at all (LLVM 19 debug records) ─────────
#
#   1  int sum(int n) {
#   2    int s = 0;
#   3    for (int i = 0; i < n; i++)
#   4      s += i;
#   5    return s;
#   6  }

SUM_LOOP_LL = r"""source_filename = "sum.c"

define dso_local i32 @sum(i32 noundef %0) #0 !dbg !10 {
  %2 = alloca i32, align 4
  %3 = alloca i32, align 4
  %4 = alloca i32, align 4
  store i32 %0, ptr %2, align 4
    #dbg_declare(ptr %2, !15, !DIExpression(), !16)
    #dbg_declare(ptr %3, !17, !DIExpression(), !18)
  store i32 0, ptr %3, align 4, !dbg !18
    #dbg_declare(ptr %4, !19, !DIExpression(), !20)
  store i32 0, ptr %4, align 4, !dbg !20
  br label %5, !dbg !21

5:                                                ; preds = %9, %1
  %6 = load i32, ptr %4, align 4, !dbg !22
  %7 = load i32, ptr %2, align 4, !dbg !23
  %8 = icmp slt i32 %6, %7, !dbg !24
  br i1 %8, label %9, label %14, !dbg !25

9:                                                ; preds = %5
  %10 = load i32, ptr %4, align 4, !dbg !26
  %11 = load i32, ptr %3, align 4, !dbg !27
  %12 = add nsw i32 %11, %10, !dbg !27
  store i32 %12, ptr %3, align 4, !dbg !27
  %13 = add nsw i32 %10, 1, !dbg !28
  store i32 %13, ptr %4, align 4, !dbg !28
  br label %5, !dbg !21, !llvm.loop !29

14:                                               ; preds = %5
  %15 = load i32, ptr %3, align 4, !dbg !31
  ret i32 %15, !dbg !32
}

!15 = !DILocalVariable(name: "n", arg: 1, scope: !10, file: !1, line: 1, type: !13)
!16 = !DILocation(line: 1, column: 13, scope: !10)
!17 = !DILocalVariable(name: "s", scope: !10, file: !1, line: 2, type: !13)
!18 = !DILocation(line: 2, column: 7, scope: !10)
!19 = !DILocalVariable(name: "i", scope: !33, file: !1, line: 3, type: !13)
!20 = !DILocation(line: 3, column: 12, scope: !33)
"""


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def scanf_module():
    return parse_module(SCANF_LOOP_LL, filename="scan.ll")


@pytest.fixture
def fopen_module():
    return parse_module(FOPEN_LOOP_LL, filename="count.ll")


@pytest.fixture
def sum_module():
    return parse_module(SUM_LOOP_LL, filename="sum.ll")


@pytest.fixture
def ll_file(tmp_path):
    """The Scenario A module written to disk."""
    path = tmp_path / "scan.ll"
    path.write_text(SCANF_LOOP_LL, encoding="utf-8")
    return path


# ── Builders ─────────────────────────────────────────────────────────

def build_countdown():
    """
    A loop whose exit test depends only on a compiler temporary::

        entry:  br loop
        loop:   %t = phi [%k, entry], [%next, body]
                %c = icmp sgt %t, 0
                br %c, body, exit
        body:   %next = sub %t, 1
                br loop
        exit:   ret
    """
    fb = FunctionBuilder("countdown", params=[("k", "i32")])
    fb.block("entry")
    fb.jump("loop")
    fb.block("loop")
    t = fb.phi([(fb.arg(0), "entry")], name="t")
    c = fb.icmp(t, fb.const("0"), name="c")
    fb.br(c, "body", "exit")
    fb.block("body")
    nxt = fb.op(Opcode.BINARY, [t, fb.const("1")], name="next")
    fb.jump("loop")
    fb.block("exit")
    fb.ret()
    t.operands.append(nxt)
    t.labels.append("body")
    return fb.build()


def build_nested():
    """
    Two nested loops, each header testing declared variables::

        outer:  i < n           (n is a parameter)
        inner:  j < m
    """
    fb = FunctionBuilder("nested", params=[("n", "i32")])
    fb.block("entry")
    i_addr = fb.alloca("i.addr", declare=("i", 2))
    j_addr = fb.alloca("j.addr", declare=("j", 3))
    m_addr = fb.alloca("m.addr", declare=("m", 4))
    fb.jump("outer")
    fb.block("outer")
    i = fb.load(i_addr, name="i")
    c1 = fb.icmp(i, fb.arg(0), name="c1")
    fb.br(c1, "inner", "exit")
    fb.block("inner")
    j = fb.load(j_addr, name="j")
    m = fb.load(m_addr, name="m")
    c2 = fb.icmp(j, m, name="c2")
    fb.br(c2, "inner.body", "outer.latch")
    fb.block("inner.body")
    fb.jump("inner")
    fb.block("outer.latch")
    fb.jump("outer")
    fb.block("exit")
    fb.ret()
    return fb.build()
