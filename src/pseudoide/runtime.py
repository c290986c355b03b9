"""
Runtime module.

Wires the session, execution, download, server and inference components
together and exposes every operation as a coroutine. Blocking work runs
on worker threads so the caller's event loop stays responsive.
"""

import asyncio
import atexit
import logging
from pathlib import Path
from typing import List, Optional

import requests

from pseudoide.config import PseudoIDEConfig
from pseudoide.downloads import DownloadManager, ProgressCallback
from pseudoide.execution import ExecutionEngine, ExecutionResult
from pseudoide.inference import ChatMessage, GenerationResult, InferenceClient
from pseudoide.server import ServerLifecycleManager
from pseudoide.session import SessionState
from pseudoide.shell import ShellEmulator

logger = logging.getLogger(__name__)


class Runtime:
    """
    One assistant session.

    ``close()`` is the application shutdown hook; it is also registered
    with atexit so the inference server never outlives the process.
    """

    def __init__(
        self,
        config: Optional[PseudoIDEConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
        http: Optional[requests.Session] = None,
        register_atexit: bool = True,
    ) -> None:
        self.config = config or PseudoIDEConfig()
        self.http = http or requests.Session()

        self.session = SessionState(
            lock_timeout=self.config.session.lock_timeout,
            scratch_dir_name=self.config.session.scratch_dir_name,
        )
        self.engine = ExecutionEngine(
            self.session,
            interpreter_overrides=self.config.execution.interpreter_overrides,
        )
        self.shell = ShellEmulator(self.session)
        self.downloads = DownloadManager(
            self.config.server, http=self.http, progress_callback=progress_callback
        )
        self.server = ServerLifecycleManager(self.config.server)
        self.inference = InferenceClient(
            self.config.server, self.config.inference, http=self.http
        )

        self._closed = False
        if register_atexit:
            atexit.register(self.close)
        logger.info("Runtime initialized")

    async def execute_code(self, language: str, source: str) -> ExecutionResult:
        return await asyncio.to_thread(self.engine.execute, language, source)

    async def run_terminal_command(self, command: str) -> ExecutionResult:
        return await asyncio.to_thread(self.shell.run, command)

    async def change_working_directory(self, path: str) -> str:
        return await asyncio.to_thread(self.session.set, Path(path).expanduser())

    async def current_directory(self) -> Path:
        return await asyncio.to_thread(self.session.get)

    async def ensure_testing_grounds(self) -> Path:
        return await asyncio.to_thread(self.session.initialize_scratch_workspace)

    async def download_model(self) -> str:
        return await asyncio.to_thread(self.downloads.fetch_model)

    async def download_server(self) -> str:
        return await asyncio.to_thread(self.downloads.fetch_server_bundle)

    async def load_model(self) -> str:
        return await asyncio.to_thread(self.server.start)

    async def chat(self, history: List[ChatMessage]) -> str:
        return await asyncio.to_thread(self.inference.chat, history)

    async def generate_code(self, prompt: str) -> GenerationResult:
        return await asyncio.to_thread(self.inference.generate_from_pseudocode, prompt)

    def close(self) -> None:
        """Stop the inference server and release HTTP connections."""
        if self._closed:
            return
        self._closed = True
        self.server.shutdown()
        self.http.close()
        atexit.unregister(self.close)
        logger.info("Runtime closed")
