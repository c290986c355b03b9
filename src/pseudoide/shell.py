"""
Shell emulator module.

Runs terminal commands in the session directory. ``cd`` is handled here
because a directory change inside a spawned shell would be lost when it
exits; everything else goes to the platform shell.
"""

import errno
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from pseudoide.execution import ExecutionResult
from pseudoide.process_controller import ProcessController
from pseudoide.session import SessionState, SessionView

logger = logging.getLogger(__name__)


def shell_command(command: str) -> List[str]:
    """Wrap a command line for the platform shell."""
    if sys.platform == "win32":
        return ["powershell", "-NoProfile", "-Command", command]
    return ["sh", "-c", command]


def parse_cd(command: str) -> Optional[str]:
    """
    Return the ``cd`` target if the command is a directory change.

    Bare ``cd`` yields ``""``; anything that is not a directory change
    yields None.
    """
    trimmed = command.strip()
    if trimmed == "cd":
        return ""
    if trimmed.startswith("cd "):
        return trimmed[3:].strip()
    return None


class ShellEmulator:
    """Executes terminal commands scoped to the session directory."""

    def __init__(
        self,
        session: SessionState,
        process_controller: Optional[ProcessController] = None,
    ) -> None:
        self.session = session
        self.process_controller = process_controller or ProcessController()

    def run(self, command: str) -> ExecutionResult:
        """
        Run a terminal command.

        Args:
            command: Command line as typed by the user

        Returns:
            ExecutionResult. A failed ``cd`` or a command exiting non-zero
            is reported through the output text.

        Raises:
            SessionLockError: If the session lock is unavailable
            SpawnFailure: If the platform shell cannot be launched
        """
        target = parse_cd(command)

        with self.session.checkout() as view:
            if target is not None:
                return self._change_directory(view, target)

            result = self.process_controller.run(
                shell_command(command), view.directory, description="command"
            )

        return ExecutionResult.completed(result.stdout, result.stderr, exit_code=result.exit_code)

    def _change_directory(self, view: SessionView, target: str) -> ExecutionResult:
        home = Path.home()
        if not target:
            label = str(home)
            candidate = home
        elif target == "~" or target.startswith("~/") or target.startswith("~\\"):
            label = target
            candidate = home / target[2:] if len(target) > 1 else home
        else:
            label = target
            candidate = view.directory / target

        try:
            resolved = candidate.resolve(strict=True)
            if not resolved.is_dir():
                raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR))
            if not os.access(resolved, os.R_OK | os.X_OK):
                raise PermissionError(errno.EACCES, os.strerror(errno.EACCES))
        except (OSError, RuntimeError) as e:
            message = getattr(e, "strerror", None) or str(e)
            logger.info(f"cd to {label} failed: {message}")
            return ExecutionResult.completed(f"cd: {label}: {message}", "")

        view.change_to(resolved)
        return ExecutionResult.empty()
