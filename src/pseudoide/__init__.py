"""
PseudoIDE: local execution and inference backend for the PseudoIDE desktop app
"""

__version__ = "0.1.0"

from pseudoide.config import (
    ConfigLoader,
    ExecutionConfig,
    InferenceConfig,
    PseudoIDEConfig,
    ServerConfig,
    SessionConfig,
)
from pseudoide.downloads import DownloadManager, DownloadProgress
from pseudoide.errors import (
    ArchiveError,
    AssetNotFoundError,
    DownloadError,
    ExecutionIOError,
    InferenceConnectionError,
    InferenceError,
    InferenceServerError,
    InvalidDirectoryError,
    MissingArtifactError,
    NetworkError,
    PseudoIDEError,
    SessionLockError,
    SpawnFailure,
    StorageError,
    UnsupportedLanguageError,
)
from pseudoide.execution import ExecutionEngine, ExecutionOutcome, ExecutionResult
from pseudoide.inference import ChatMessage, GenerationResult, InferenceClient
from pseudoide.runtime import Runtime
from pseudoide.server import ServerArtifacts, ServerLifecycleManager
from pseudoide.session import SessionState
from pseudoide.shell import ShellEmulator
from pseudoide.toolchains import Language, Toolchain, resolve

__all__ = [
    "ArchiveError",
    "AssetNotFoundError",
    "ChatMessage",
    "ConfigLoader",
    "DownloadError",
    "DownloadManager",
    "DownloadProgress",
    "ExecutionConfig",
    "ExecutionEngine",
    "ExecutionIOError",
    "ExecutionOutcome",
    "ExecutionResult",
    "GenerationResult",
    "InferenceClient",
    "InferenceConfig",
    "InferenceConnectionError",
    "InferenceError",
    "InferenceServerError",
    "InvalidDirectoryError",
    "Language",
    "MissingArtifactError",
    "NetworkError",
    "PseudoIDEConfig",
    "PseudoIDEError",
    "Runtime",
    "ServerArtifacts",
    "ServerConfig",
    "ServerLifecycleManager",
    "SessionConfig",
    "SessionLockError",
    "SessionState",
    "ShellEmulator",
    "SpawnFailure",
    "StorageError",
    "Toolchain",
    "UnsupportedLanguageError",
    "resolve",
]
