"""
Exception hierarchy for PseudoIDE.

Only failures where an operation could not even be attempted are raised.
Compile errors, failed shell commands and bad ``cd`` targets are returned
as ordinary results carrying diagnostic text.
"""

from typing import Optional, Sequence


class PseudoIDEError(Exception):
    """Base class for all PseudoIDE failures."""


class UnsupportedLanguageError(PseudoIDEError):
    """Raised when no toolchain is registered for a language key."""

    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language for execution: {language}")


class StorageError(PseudoIDEError):
    """Raised when a file cannot be written or a directory cannot be created."""


class ExecutionIOError(StorageError):
    """Raised when the source file cannot be written into the session directory."""


class SpawnFailure(PseudoIDEError):
    """Raised when a compiler, interpreter, executable or shell cannot be launched."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None) -> None:
        self.command = list(command) if command else []
        super().__init__(message)


class SessionLockError(PseudoIDEError):
    """Raised when the session lock cannot be acquired."""


class InvalidDirectoryError(PseudoIDEError):
    """Raised when a requested session directory is missing or not a directory."""


class DownloadError(PseudoIDEError):
    """Base class for download failures."""


class NetworkError(DownloadError):
    """Raised when a remote resource cannot be fetched."""


class AssetNotFoundError(DownloadError):
    """Raised when release metadata lists no suitable server asset."""


class ArchiveError(DownloadError):
    """Raised when a server bundle cannot be extracted or lacks the server binary."""


class MissingArtifactError(PseudoIDEError):
    """Raised when an installed artifact required to start the server is absent."""

    def __init__(self, artifact: str, message: str) -> None:
        self.artifact = artifact
        super().__init__(message)


class InferenceError(PseudoIDEError):
    """Base class for inference request failures."""


class InferenceConnectionError(InferenceError):
    """Raised when the local inference server cannot be reached."""


class InferenceServerError(InferenceError):
    """Raised when the inference server answers with a non-success status."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        status = f"{status_code} {reason}".strip()
        super().__init__(f"Server error: {status}")
