# tests/test_cli.py
"""Tests for the command-line driver and the clang front end."""

import json
import logging
import subprocess
from pathlib import Path

import pytest

from seminal_input import cli, toolchain
from seminal_input.cli import EXIT_INFRA, EXIT_OK, EXIT_USAGE, main
from seminal_input.errors import ToolchainError
from seminal_input.toolchain import clang_command, compile_to_ir
from tests.conftest import SCANF_LOOP_LL


@pytest.fixture(autouse=True)
def _reset_logging():
    """main() attaches a stderr handler; drop it so later tests start clean."""
    yield
    logger = logging.getLogger("seminal_input")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_clang(monkeypatch):
    """Replace the compiler with one that emits the Scenario A module."""
    calls = []

    def _compile(source, output_dir, clang="clang", **kwargs):
        calls.append((Path(source), clang))
        out = Path(output_dir) / (Path(source).stem + ".ll")
        out.write_text(SCANF_LOOP_LL, encoding="utf-8")
        return out

    monkeypatch.setattr(cli, "compile_to_ir", _compile)
    return calls


class TestMain:

    def test_no_file_argument(self, capsys):
        assert main([]) == EXIT_USAGE
        assert "usage:" in capsys.readouterr().err

    def test_ir_input(self, in_tmp, ll_file, capsys):
        assert main([str(ll_file)]) == EXIT_OK
        written = json.loads((in_tmp / "seminal-values.json").read_text())
        printed = json.loads(capsys.readouterr().out)
        assert written == printed
        assert written == [{
            "function": "main",
            "important_variables": [
                {"type": "IO", "name": "n", "line": 5},
                {"type": "IO", "name": "id", "line": 4},
            ],
        }]
        assert ll_file.exists()

    def test_output_option(self, in_tmp, ll_file):
        out = in_tmp / "report.json"
        assert main([str(ll_file), "-o", str(out)]) == EXIT_OK
        assert out.exists()
        assert not (in_tmp / "seminal-values.json").exists()

    def test_c_input_removes_intermediate_ir(self, in_tmp, fake_clang):
        src = in_tmp / "scan.c"
        src.write_text("int main(void) { return 0; }\n")
        assert main([str(src), "--clang", "clang-17"]) == EXIT_OK
        assert fake_clang == [(src, "clang-17")]
        assert not (in_tmp / "scan.ll").exists()
        assert (in_tmp / "seminal-values.json").exists()

    def test_keep_intermediate_ir(self, in_tmp, fake_clang):
        src = in_tmp / "scan.c"
        src.write_text("int main(void) { return 0; }\n")
        assert main([str(src), "--keep"]) == EXIT_OK
        assert (in_tmp / "scan.ll").exists()

    def test_existing_ir_in_working_directory_untouched(self, in_tmp, monkeypatch):
        dirs = []

        def _compile(source, output_dir, clang="clang", **kwargs):
            dirs.append(Path(output_dir))
            out = Path(output_dir) / (Path(source).stem + ".ll")
            out.write_text(SCANF_LOOP_LL, encoding="utf-8")
            return out

        monkeypatch.setattr(cli, "compile_to_ir", _compile)
        (in_tmp / "src").mkdir()
        src = in_tmp / "src" / "prog.c"
        src.write_text("int main(void) { return 0; }\n")
        unrelated = in_tmp / "prog.ll"
        unrelated.write_text("; hand-written\n")

        assert main([str(src)]) == EXIT_OK
        assert unrelated.read_text() == "; hand-written\n"
        assert dirs[0] != in_tmp
        assert not dirs[0].exists()

    def test_missing_file(self, in_tmp):
        assert main([str(in_tmp / "absent.c")]) == EXIT_INFRA

    def test_toolchain_failure(self, in_tmp, monkeypatch):
        def _fail(*args, **kwargs):
            raise ToolchainError("clang exited with status 1", returncode=1)

        monkeypatch.setattr(cli, "compile_to_ir", _fail)
        src = in_tmp / "bad.c"
        src.write_text("int main(void) {\n")
        assert main([str(src)]) == EXIT_INFRA
        assert not (in_tmp / "seminal-values.json").exists()

    def test_parse_failure(self, in_tmp):
        bad = in_tmp / "bad.ll"
        bad.write_text("define i32 @f() {\n  ret i32 %9\n}\n")
        assert main([str(bad)]) == EXIT_INFRA

    def test_unwritable_output(self, in_tmp, ll_file):
        assert main([str(ll_file), "-o", str(in_tmp / "no" / "such" / "out.json")]) == EXIT_INFRA

    def test_config_and_sources(self, in_tmp, ll_file, capsys):
        cfg = in_tmp / "seminal.json"
        cfg.write_text(json.dumps({
            "output": "from-config.json",
            "sources": [{"pattern": "fopen", "kind": "return_store"}],
        }))
        assert main([str(ll_file), "--config", str(cfg)]) == EXIT_OK
        assert json.loads(capsys.readouterr().out) == []

        assert main([str(ll_file), "--config", str(cfg),
                     "--source", "scanf:arguments", "-o", "second.json"]) == EXIT_OK
        assert (in_tmp / "from-config.json").exists()
        second = json.loads((in_tmp / "second.json").read_text())
        assert [v["name"] for v in second[0]["important_variables"]] == ["n", "id"]

    def test_bad_config(self, in_tmp, ll_file):
        cfg = in_tmp / "seminal.json"
        cfg.write_text('{"sources": 3}')
        assert main([str(ll_file), "--config", str(cfg)]) == EXIT_INFRA

    def test_bad_source_spec(self, in_tmp, ll_file):
        assert main([str(ll_file), "--source", "read:sometimes"]) == EXIT_INFRA

    def test_verbose_logging(self, in_tmp, ll_file, capsys):
        assert main([str(ll_file), "-vv"]) == EXIT_OK
        assert "seminal_input" in capsys.readouterr().err
        assert main([str(ll_file), "-o", "quiet.json"]) == EXIT_OK

    def test_repeated_runs_keep_one_handler(self, in_tmp, ll_file):
        logger = logging.getLogger("seminal_input")
        before = len(logger.handlers)
        assert main([str(ll_file), "-o", "one.json"]) == EXIT_OK
        assert main([str(ll_file), "-o", "two.json"]) == EXIT_OK
        assert len(logger.handlers) == before + 1
        assert cli._handler in logger.handlers


class TestCompileToIR:

    def test_command_line(self):
        cmd = clang_command(Path("a.c"), Path("out/a.ll"))
        assert cmd == ["clang", "-g", "-O0", "-emit-llvm", "-S", "a.c", "-o", "out/a.ll"]

    def test_ir_passes_through(self, ll_file):
        assert compile_to_ir(ll_file) == ll_file

    def test_success(self, tmp_path, monkeypatch):
        src = tmp_path / "prog.c"
        src.write_text("int main(void) { return 0; }\n")
        seen = []

        def _run(cmd, **kwargs):
            seen.append(cmd)
            Path(cmd[-1]).write_text(SCANF_LOOP_LL)
            return subprocess.CompletedProcess(cmd, 0, "", "")

        monkeypatch.setattr(toolchain.subprocess, "run", _run)
        out = compile_to_ir(src, tmp_path)
        assert out == tmp_path / "prog.ll"
        assert out.exists()
        assert seen[0][0] == "clang"

    def test_missing_compiler(self, tmp_path, monkeypatch):
        src = tmp_path / "prog.c"
        src.write_text("")

        def _run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(toolchain.subprocess, "run", _run)
        with pytest.raises(ToolchainError) as info:
            compile_to_ir(src, tmp_path, clang="no-such-clang")
        assert "not found" in str(info.value)

    def test_compiler_error(self, tmp_path, monkeypatch):
        src = tmp_path / "prog.c"
        src.write_text("int main(void) {\n")

        def _run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, "", "prog.c:1:17: error: expected '}'")

        monkeypatch.setattr(toolchain.subprocess, "run", _run)
        with pytest.raises(ToolchainError) as info:
            compile_to_ir(src, tmp_path)
        assert info.value.returncode == 1
        assert "expected '}'" in info.value.stderr

    def test_timeout(self, tmp_path, monkeypatch):
        src = tmp_path / "prog.c"
        src.write_text("")

        def _run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        monkeypatch.setattr(toolchain.subprocess, "run", _run)
        with pytest.raises(ToolchainError):
            compile_to_ir(src, tmp_path, timeout=1)

    def test_missing_source(self, tmp_path):
        with pytest.raises(ToolchainError):
            compile_to_ir(tmp_path / "absent.c", tmp_path)
