"""Tests for the execution engine."""

import shutil
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

from pseudoide.errors import ExecutionIOError, SpawnFailure, UnsupportedLanguageError
from pseudoide.execution import ExecutionEngine, ExecutionOutcome
from pseudoide.process_controller import ProcessController, ProcessResult
from pseudoide.session import SessionState
from pseudoide.toolchains import executable_name


@pytest.fixture
def session(tmp_path: Path) -> SessionState:
    return SessionState(tmp_path)


@pytest.fixture
def engine(session: SessionState) -> ExecutionEngine:
    return ExecutionEngine(session, interpreter_overrides={"python": sys.executable})


def _result(exit_code: int = 0, stdout: str = "", stderr: str = "") -> ProcessResult:
    return ProcessResult(exit_code=exit_code, stdout=stdout, stderr=stderr, duration_seconds=0.0)


def test_python_print(engine: ExecutionEngine, tmp_path: Path) -> None:
    result = engine.execute("python", "print(2+2)")

    assert result.combined_text == "4\n"
    assert result.stderr == ""
    assert result.outcome is ExecutionOutcome.COMPLETED
    assert (tmp_path / "main.py").read_text(encoding="utf-8") == "print(2+2)"


def test_stderr_is_appended_after_newline(engine: ExecutionEngine) -> None:
    source = "import sys\nprint('a')\nprint('b', file=sys.stderr)\n"

    result = engine.execute("Python", source)

    assert result.combined_text == "a\n\nb\n"


def test_runtime_error_is_a_completed_result(engine: ExecutionEngine) -> None:
    result = engine.execute("python", "raise SystemExit('boom')")

    assert result.outcome is ExecutionOutcome.COMPLETED
    assert result.exit_code == 1
    assert "boom" in result.combined_text


def test_source_is_overwritten(engine: ExecutionEngine, tmp_path: Path) -> None:
    engine.execute("python", "print('first')")
    result = engine.execute("python", "print('second')")

    assert result.combined_text == "second\n"
    assert (tmp_path / "main.py").read_text(encoding="utf-8") == "print('second')"


def test_runs_in_session_directory(engine: ExecutionEngine, session: SessionState, tmp_path: Path) -> None:
    sub = tmp_path / "project"
    sub.mkdir()
    session.set(sub)

    result = engine.execute("python", "import os; print(os.getcwd())")

    assert Path(result.stdout.strip()).resolve() == sub.resolve()
    assert (sub / "main.py").exists()


def test_unsupported_language(engine: ExecutionEngine, tmp_path: Path) -> None:
    with pytest.raises(UnsupportedLanguageError, match="cobol"):
        engine.execute("cobol", "DISPLAY 'HI'.")
    assert list(tmp_path.iterdir()) == []


def test_unwritable_source_raises_io_failure(engine: ExecutionEngine, tmp_path: Path) -> None:
    (tmp_path / "main.py").mkdir()

    with pytest.raises(ExecutionIOError):
        engine.execute("python", "print(1)")


def test_missing_interpreter_raises_spawn_failure(session: SessionState, tmp_path: Path) -> None:
    engine = ExecutionEngine(
        session, interpreter_overrides={"python": str(tmp_path / "missing-python")}
    )

    with pytest.raises(SpawnFailure):
        engine.execute("python", "print(1)")


def test_compile_failure_returns_diagnostics_without_running(session: SessionState, tmp_path: Path) -> None:
    controller = Mock(spec=ProcessController)
    controller.run.return_value = _result(exit_code=1, stderr="main.cpp:1: error: expected ';'")
    engine = ExecutionEngine(session, process_controller=controller)

    result = engine.execute("c++", "int main() { return 0 }")

    assert result.outcome is ExecutionOutcome.DIAGNOSTICS
    assert result.combined_text == "main.cpp:1: error: expected ';'"
    controller.run.assert_called_once()
    cmd, cwd = controller.run.call_args.args[:2]
    assert cmd == ["g++", "main.cpp", "-o", executable_name()]
    assert cwd == tmp_path


def test_compile_success_runs_executable(session: SessionState, tmp_path: Path) -> None:
    controller = Mock(spec=ProcessController)
    controller.run.side_effect = [_result(), _result(stdout="hello\n")]
    engine = ExecutionEngine(session, process_controller=controller)

    result = engine.execute("rust", "fn main() {}")

    assert result.combined_text == "hello\n"
    assert controller.run.call_count == 2
    run_cmd = controller.run.call_args_list[1].args[0]
    assert run_cmd == [str(tmp_path / executable_name())]
    assert (tmp_path / "main.rs").exists()


def test_session_lock_held_while_program_runs(session: SessionState) -> None:
    observed = []

    def fake_run(cmd, cwd, description="command"):
        observed.append(session._lock.locked())
        return _result(stdout="ok\n")

    controller = Mock(spec=ProcessController)
    controller.run.side_effect = fake_run
    engine = ExecutionEngine(session, process_controller=controller)

    engine.execute("javascript", "console.log('ok')")

    assert observed == [True]
    assert not session._lock.locked()


@pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")
def test_invalid_cpp_reports_compiler_output(engine: ExecutionEngine) -> None:
    result = engine.execute("cpp", "int main() { this is not c++ }")

    assert result.outcome is ExecutionOutcome.DIAGNOSTICS
    assert "error" in result.combined_text


@pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")
def test_c_program_compiles_and_runs(engine: ExecutionEngine) -> None:
    source = '#include <stdio.h>\nint main(void) { printf("%d\\n", 6 * 7); return 0; }\n'

    result = engine.execute("C", source)

    assert result.outcome is ExecutionOutcome.COMPLETED
    assert result.combined_text == "42\n"
