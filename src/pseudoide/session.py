"""
Session state module.

Holds the single shared session directory that execution and shell
commands are scoped to. Every read and write goes through one exclusive
lock.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pseudoide.errors import InvalidDirectoryError, SessionLockError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_SCRATCH_DIR_NAME = "PseudoIDE_Testing_Grounds"


def _initial_directory() -> Path:
    try:
        return Path.cwd()
    except OSError:
        return Path(".")


class SessionView:
    """
    Handle to the session while its lock is held.

    Only valid inside ``SessionState.checkout()``.
    """

    def __init__(self, state: "SessionState") -> None:
        self._state = state

    @property
    def directory(self) -> Path:
        return self._state._directory

    def change_to(self, path: Path) -> None:
        """Replace the session directory without further validation."""
        logger.info(f"Session directory: {self._state._directory} -> {path}")
        self._state._directory = path


class SessionState:
    """
    The current working directory shared by all session operations.

    Callers never see the lock itself; they either use the single-shot
    ``get``/``set`` operations or hold the session for a longer unit of
    work with ``checkout()``.
    """

    def __init__(
        self,
        directory: Optional[Path] = None,
        lock_timeout: Optional[float] = None,
        scratch_dir_name: str = DEFAULT_SCRATCH_DIR_NAME,
    ) -> None:
        """
        Initialize session state.

        Args:
            directory: Starting directory (default: process working directory)
            lock_timeout: Seconds to wait for the lock, None to wait forever
            scratch_dir_name: Directory under home used by the scratch workspace
        """
        self._lock = threading.Lock()
        self._directory = Path(directory) if directory is not None else _initial_directory()
        self.lock_timeout = lock_timeout
        self.scratch_dir_name = scratch_dir_name

    @contextmanager
    def checkout(self) -> Iterator[SessionView]:
        """
        Hold the session lock for the duration of the block.

        Raises:
            SessionLockError: If the lock is not acquired within the timeout
        """
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not self._lock.acquire(timeout=timeout):
            raise SessionLockError(
                f"Session is busy: lock not acquired within {self.lock_timeout}s"
            )
        try:
            yield SessionView(self)
        finally:
            self._lock.release()

    def get(self) -> Path:
        """Return the current session directory."""
        with self.checkout() as view:
            return view.directory

    def set(self, path: Path) -> str:
        """
        Switch the session to an existing directory.

        Args:
            path: Target directory

        Returns:
            Status text

        Raises:
            InvalidDirectoryError: If the path does not exist or is not a directory
        """
        path = Path(path)
        with self.checkout() as view:
            if not path.exists():
                raise InvalidDirectoryError(f"Directory does not exist: {path}")
            if not path.is_dir():
                raise InvalidDirectoryError(f"Path is not a directory: {path}")
            view.change_to(path)
        return "CWD Updated"

    def compare_and_set(self, expected: Path, path: Path) -> bool:
        """
        Switch directories only if the session still points at ``expected``.

        Returns:
            True if the directory was replaced
        """
        path = Path(path)
        with self.checkout() as view:
            if view.directory != Path(expected):
                return False
            if not path.is_dir():
                raise InvalidDirectoryError(f"Path is not a directory: {path}")
            view.change_to(path)
            return True

    def initialize_scratch_workspace(self) -> Path:
        """
        Create the scratch workspace under home if needed and switch into it.

        Returns:
            Path to the scratch workspace

        Raises:
            StorageError: If the directory cannot be created
        """
        scratch = Path.home() / self.scratch_dir_name
        try:
            scratch.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create {scratch}: {e}") from e

        with self.checkout() as view:
            view.change_to(scratch)
        return scratch
