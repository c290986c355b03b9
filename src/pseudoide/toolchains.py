"""
Toolchain registry.

Maps language keys to the recipe used to build and run a ``main.<ext>``
source file. The set of languages is closed; unknown keys are rejected.
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple


def executable_name() -> str:
    """Platform-appropriate name of a compiled program."""
    return "main.exe" if sys.platform == "win32" else "main"


@dataclass(frozen=True)
class Toolchain:
    """Build and run recipe for one language."""

    key: str
    extension: str
    program: str
    run_args: Tuple[str, ...] = field(default_factory=tuple)
    compiled: bool = False

    @property
    def source_name(self) -> str:
        return f"main.{self.extension}"

    def compile_command(self, program: Optional[str] = None) -> List[str]:
        """
        Command that compiles ``main.<ext>`` into the fixed executable name.

        Args:
            program: Compiler to use instead of the default

        Returns:
            Argument list for the compiler
        """
        if not self.compiled:
            raise ValueError(f"{self.key} is not a compiled language")
        return [program or self.program, self.source_name, "-o", executable_name()]

    def run_command(self, workdir: Path, program: Optional[str] = None) -> List[str]:
        """
        Command that runs the program.

        Interpreted toolchains receive the source file as their final
        argument; compiled toolchains run the produced executable by its
        absolute path inside ``workdir``.
        """
        if self.compiled:
            return [str(workdir / executable_name())]
        return [program or self.program, *self.run_args, self.source_name]


class Language(Enum):
    """Supported languages."""

    PYTHON = Toolchain(key="python", extension="py", program="python")
    JAVASCRIPT = Toolchain(key="javascript", extension="js", program="node")
    GO = Toolchain(key="go", extension="go", program="go", run_args=("run",))
    C = Toolchain(key="c", extension="c", program="gcc", compiled=True)
    CPP = Toolchain(key="cpp", extension="cpp", program="g++", compiled=True)
    RUST = Toolchain(key="rust", extension="rs", program="rustc", compiled=True)

    @property
    def toolchain(self) -> Toolchain:
        return self.value


_ALIASES: Dict[str, Language] = {
    "python": Language.PYTHON,
    "javascript": Language.JAVASCRIPT,
    "typescript": Language.JAVASCRIPT,
    "go": Language.GO,
    "golang": Language.GO,
    "c": Language.C,
    "c++": Language.CPP,
    "cpp": Language.CPP,
    "rust": Language.RUST,
}


def supported_languages() -> List[str]:
    """All accepted language keys, including synonyms."""
    return sorted(_ALIASES)


def resolve(language: str) -> Optional[Language]:
    """
    Resolve a language key.

    Matching is case-insensitive after trimming whitespace.

    Args:
        language: User-supplied language name

    Returns:
        The matching Language, or None if the language is not supported
    """
    return _ALIASES.get(language.strip().lower())
