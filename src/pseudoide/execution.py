"""
Execution engine module.

Writes user source into the session directory as ``main.<ext>``, compiles
it when the language needs it, runs it and returns the merged output.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from pseudoide.errors import ExecutionIOError, UnsupportedLanguageError
from pseudoide.process_controller import ProcessController, combine_output
from pseudoide.session import SessionState
from pseudoide.toolchains import Language, resolve

logger = logging.getLogger(__name__)


class ExecutionOutcome(Enum):
    """How an execution ended."""

    COMPLETED = "completed"
    DIAGNOSTICS = "diagnostics"


@dataclass
class ExecutionResult:
    """
    Output of an execution or shell command.

    A program that crashed or printed errors is still COMPLETED. DIAGNOSTICS
    means the build step rejected the source and nothing was run.
    """

    stdout: str
    stderr: str
    combined_text: str
    outcome: ExecutionOutcome = ExecutionOutcome.COMPLETED
    exit_code: Optional[int] = None

    @classmethod
    def completed(
        cls, stdout: str, stderr: str, exit_code: Optional[int] = None
    ) -> "ExecutionResult":
        return cls(
            stdout=stdout,
            stderr=stderr,
            combined_text=combine_output(stdout, stderr),
            outcome=ExecutionOutcome.COMPLETED,
            exit_code=exit_code,
        )

    @classmethod
    def diagnostics(
        cls, text: str, stdout: str = "", exit_code: Optional[int] = None
    ) -> "ExecutionResult":
        return cls(
            stdout=stdout,
            stderr=text,
            combined_text=text,
            outcome=ExecutionOutcome.DIAGNOSTICS,
            exit_code=exit_code,
        )

    @classmethod
    def empty(cls) -> "ExecutionResult":
        return cls(stdout="", stderr="", combined_text="")


class ExecutionEngine:
    """
    Builds and runs source snippets inside the session directory.

    The session lock is held from the directory snapshot until the program
    exits, so other session operations wait behind a running program.
    """

    def __init__(
        self,
        session: SessionState,
        process_controller: Optional[ProcessController] = None,
        interpreter_overrides: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize execution engine.

        Args:
            session: Shared session state
            process_controller: Process launcher (default: new ProcessController)
            interpreter_overrides: Toolchain key -> program replacing the default
        """
        self.session = session
        self.process_controller = process_controller or ProcessController()
        self.interpreter_overrides: Dict[Language, str] = {}
        for key, program in (interpreter_overrides or {}).items():
            language = resolve(key)
            if language is None:
                logger.warning(f"Ignoring interpreter override for unknown language: {key}")
                continue
            self.interpreter_overrides[language] = program

    def _program_for(self, language: Language) -> Optional[str]:
        return self.interpreter_overrides.get(language)

    def execute(self, language: str, source: str) -> ExecutionResult:
        """
        Write, build and run a source snippet.

        Args:
            language: Language key (case-insensitive, synonyms accepted)
            source: Program text

        Returns:
            ExecutionResult with program output, or compiler diagnostics

        Raises:
            UnsupportedLanguageError: If the language has no toolchain
            ExecutionIOError: If the source file cannot be written
            SpawnFailure: If the compiler, interpreter or program cannot be launched
            SessionLockError: If the session lock is unavailable
        """
        resolved = resolve(language)
        if resolved is None:
            raise UnsupportedLanguageError(language)
        toolchain = resolved.toolchain
        program = self._program_for(resolved)

        with self.session.checkout() as view:
            workdir = view.directory
            source_path = workdir / toolchain.source_name
            try:
                source_path.write_bytes(source.encode("utf-8"))
            except OSError as e:
                raise ExecutionIOError(f"Failed to write {source_path}: {e}") from e
            logger.info(f"Wrote {len(source)} chars to {source_path}")

            if toolchain.compiled:
                build = self.process_controller.run(
                    toolchain.compile_command(program), workdir, description="compiler"
                )
                if not build.succeeded:
                    logger.info(f"{toolchain.key} build failed with exit code {build.exit_code}")
                    return ExecutionResult.diagnostics(
                        build.stderr, stdout=build.stdout, exit_code=build.exit_code
                    )
                run = self.process_controller.run(
                    toolchain.run_command(workdir), workdir, description="executable"
                )
            else:
                run = self.process_controller.run(
                    toolchain.run_command(workdir, program), workdir, description="interpreter"
                )

        return ExecutionResult.completed(run.stdout, run.stderr, exit_code=run.exit_code)
