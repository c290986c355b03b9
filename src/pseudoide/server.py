"""
Inference server lifecycle module.

Checks that the model, server binary and its runtime libraries are
installed, spawns the server, and kills it on shutdown. At most one
server process is tracked at a time since the client always talks to a
single fixed port.
"""

import logging
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pseudoide.config import ServerConfig
from pseudoide.errors import MissingArtifactError, SpawnFailure, StorageError
from pseudoide.process_controller import kill_process_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerArtifacts:
    """Installed files required to run the inference server."""

    model: Path
    server: Path
    dependencies: List[Path]

    @classmethod
    def from_config(cls, config: ServerConfig) -> "ServerArtifacts":
        return cls(
            model=config.model_path,
            server=config.server_path,
            dependencies=[config.app_data_dir / name for name in config.dependency_files],
        )

    def verify(self) -> None:
        """
        Raise for the first missing artifact.

        Raises:
            MissingArtifactError: Naming the model, server or dependency
        """
        if not self.model.exists():
            raise MissingArtifactError("model", "Model not found. Please download it.")
        if not self.server.exists():
            raise MissingArtifactError("server", "Server binary not found. Please download it.")
        for dependency in self.dependencies:
            if not dependency.exists():
                raise MissingArtifactError(
                    "dependency",
                    f"Server dependencies ({dependency.name}) not found. Please re-download.",
                )


class ServerLifecycleManager:
    """Owns the single inference server child process."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None

    @property
    def artifacts(self) -> ServerArtifacts:
        return ServerArtifacts.from_config(self.config)

    def _launch_command(self) -> List[str]:
        return [
            str(self.config.server_path),
            "-m",
            str(self.config.model_path),
            "--port",
            str(self.config.port),
            "-c",
            str(self.config.context_size),
        ]

    def _reap(self) -> None:
        if self._process is not None and self._process.poll() is not None:
            logger.warning(
                f"Server process {self._process.pid} exited with code {self._process.returncode}"
            )
            self._process = None

    def is_running(self) -> bool:
        """True if a server process is tracked and still alive."""
        with self._lock:
            self._reap()
            return self._process is not None

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process is not None else None

    def start(self) -> str:
        """
        Spawn the inference server if it is not already running.

        Returns:
            Status text

        Raises:
            MissingArtifactError: If the model, server or a dependency is missing
            SpawnFailure: If the server cannot be launched
        """
        self.artifacts.verify()

        with self._lock:
            self._reap()
            if self._process is not None:
                logger.info("Server already running, not spawning another")
                return "Server already running"

            log_path = self.config.log_path
            cmd = self._launch_command()
            creation_flags = 0
            if sys.platform == "win32":
                creation_flags = subprocess.CREATE_NO_WINDOW

            try:
                log_file = open(log_path, "w", encoding="utf-8")
            except OSError as e:
                raise StorageError(f"Failed to open server log {log_path}: {e}") from e

            with log_file:
                try:
                    self._process = subprocess.Popen(
                        cmd,
                        cwd=str(self.config.app_data_dir),
                        stdin=subprocess.DEVNULL,
                        stdout=log_file,
                        stderr=subprocess.STDOUT,
                        creationflags=creation_flags,
                    )
                except OSError as e:
                    logger.error(f"Failed to start server: {e}")
                    raise SpawnFailure(f"Failed to start server: {e}", cmd) from e

            logger.info(f"Started inference server (PID {self._process.pid}), logs at {log_path}")

        return f"Model loaded (Server started). Logs at {log_path}"

    def shutdown(self) -> None:
        """Kill the tracked server process, if any. Safe to call repeatedly."""
        with self._lock:
            process = self._process
            self._process = None
            if process is None:
                return

            logger.info(f"Shutting down inference server (PID {process.pid})")
            kill_process_tree(process.pid)
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning(f"Server process {process.pid} did not exit after kill")
