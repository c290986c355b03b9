"""
Process controller utility for running child processes and capturing output.

Provides cross-platform launching with stdout/stderr capture, the output
merging rule shared by the execution engine and shell emulator, and
termination of process trees.
"""

import logging
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

import psutil

from pseudoide.errors import SpawnFailure

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Result of a subprocess execution."""

    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def combine_output(stdout: str, stderr: str) -> str:
    """
    Merge captured streams.

    Returns stdout alone, or stdout, a newline and stderr when stderr is
    non-empty.
    """
    if stderr:
        return f"{stdout}\n{stderr}"
    return stdout


class ProcessController:
    """
    Runs child processes to completion and captures their output.

    No timeout is applied; the call returns when the child exits.
    """

    def run(self, cmd: List[str], cwd: Path, description: str = "command") -> ProcessResult:
        """
        Execute a command and wait for it.

        Args:
            cmd: Command and arguments to execute
            cwd: Working directory for the child
            description: Label used in the failure message

        Returns:
            ProcessResult with captured output

        Raises:
            SpawnFailure: If the process cannot be launched
        """
        start_time = time.time()
        logger.info(f"Running subprocess: {' '.join(cmd)}")
        logger.debug(f"Working directory: {cwd}")

        creation_flags = 0
        if sys.platform == "win32":
            creation_flags = subprocess.CREATE_NO_WINDOW

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                creationflags=creation_flags,
            )
        except OSError as e:
            logger.error(f"Failed to launch {cmd[0]}: {e}")
            raise SpawnFailure(f"Failed to run {description}: {e}", cmd) from e

        stdout, stderr = process.communicate()
        duration = time.time() - start_time

        logger.debug(f"Raw stdout: {stdout}")
        logger.debug(f"Raw stderr: {stderr}")
        logger.info(
            f"Process completed in {duration:.2f}s with exit code {process.returncode}"
        )

        return ProcessResult(
            exit_code=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration_seconds=duration,
        )


def kill_process_tree(pid: int) -> None:
    """
    Kill a process and all of its children.

    Args:
        pid: Process ID to terminate
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {pid} already exited")
        return

    children = parent.children(recursive=True)
    logger.info(f"Killing process tree: PID {pid} with {len(children)} children")

    for child in children:
        try:
            child.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.warning(f"Failed to kill child {child.pid}: {e}")

    try:
        parent.kill()
    except psutil.NoSuchProcess:
        pass
    except psutil.AccessDenied as e:
        logger.warning(f"Failed to kill process {pid}: {e}")
