"""
Configuration models and loader.

Settings are plain pydantic models with defaults matching the desktop
application. A YAML or JSON file can override any field.
"""

import json
import logging
import platform
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".pseudoide" / "config.yaml"

MODEL_URL = (
    "https://huggingface.co/Qwen/Qwen2.5-Coder-7B-Instruct-GGUF/resolve/main/"
    "qwen2.5-coder-7b-instruct-q5_k_m.gguf"
)
MODEL_FILENAME = "qwen2.5-coder-7b-instruct-q5_k_m.gguf"
RELEASE_URL = "https://api.github.com/repos/ggerganov/llama.cpp/releases/latest"

CHAT_SYSTEM_PROMPT = (
    "You are an expert coding assistant for PseudoIDE. Help the user interactively. Be concise."
)

GENERATION_SYSTEM_PROMPT = (
    "You are an expert coding assistant. Your task is to transcribe the given pseudocode "
    "into valid, runnable code in the most appropriate language.\n"
    "Analyze the syntax and style to infer the target language (e.g., Python, JavaScript, Rust).\n"
    "Output result in the format:\n"
    "```language\n"
    "code\n"
    "```"
)


def _is_windows() -> bool:
    return sys.platform == "win32"


def default_server_filename() -> str:
    return "llama-server.exe" if _is_windows() else "llama-server"


def default_dependency_files() -> List[str]:
    if _is_windows():
        return ["llama.dll"]
    if sys.platform == "darwin":
        return ["libllama.dylib"]
    return ["libllama.so"]


def default_asset_pattern() -> str:
    """Release asset substring for the current platform and architecture."""
    machine = platform.machine().lower()
    arm = machine in ("arm64", "aarch64")
    if _is_windows():
        return "bin-win-cpu-arm64" if arm else "bin-win-cpu-x64"
    if sys.platform == "darwin":
        return "bin-macos-arm64" if arm else "bin-macos-x64"
    return "bin-ubuntu-arm64" if arm else "bin-ubuntu-x64"


class SessionConfig(BaseModel):
    """Session directory settings."""

    scratch_dir_name: str = Field(
        default="PseudoIDE_Testing_Grounds",
        description="Directory under the user's home used as the scratch workspace",
    )
    lock_timeout: Optional[float] = Field(
        default=None,
        description="Seconds to wait for the session lock (None waits forever)",
    )

    @field_validator("lock_timeout")
    @classmethod
    def _check_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("lock_timeout must be non-negative")
        return v


class ExecutionConfig(BaseModel):
    """Execution engine settings."""

    interpreter_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Language key -> executable used instead of the toolchain default",
    )

    @field_validator("interpreter_overrides", mode="before")
    @classmethod
    def _normalize_keys(cls, v: Any) -> Dict[str, str]:
        if v is None:
            return {}
        return {str(key).strip().lower(): str(value) for key, value in dict(v).items()}


class ServerConfig(BaseModel):
    """Inference server installation and launch settings."""

    app_data_dir: Path = Field(default_factory=lambda: Path.home() / ".pseudoide")
    model_url: str = MODEL_URL
    model_filename: str = MODEL_FILENAME
    release_url: str = RELEASE_URL
    asset_pattern: str = Field(default_factory=default_asset_pattern)
    server_filename: str = Field(default_factory=default_server_filename)
    dependency_files: List[str] = Field(default_factory=default_dependency_files)
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    context_size: int = Field(default=2048, gt=0)
    log_filename: str = "server.log"
    user_agent: str = "PseudoIDE"

    @field_validator("app_data_dir", mode="before")
    @classmethod
    def _expand_dir(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @property
    def model_path(self) -> Path:
        return self.app_data_dir / self.model_filename

    @property
    def server_path(self) -> Path:
        return self.app_data_dir / self.server_filename

    @property
    def log_path(self) -> Path:
        return self.app_data_dir / self.log_filename

    @property
    def completion_url(self) -> str:
        return f"http://{self.host}:{self.port}/completion"


class InferenceConfig(BaseModel):
    """Sampling parameters and system prompts for the completion endpoint."""

    n_predict: int = Field(default=512, gt=0)
    chat_temperature: float = Field(default=0.7, ge=0.0)
    generation_temperature: float = Field(default=0.2, ge=0.0)
    stop: List[str] = Field(default_factory=lambda: ["<|im_end|>"])
    chat_system_prompt: str = CHAT_SYSTEM_PROMPT
    generation_system_prompt: str = GENERATION_SYSTEM_PROMPT


class PseudoIDEConfig(BaseModel):
    """Top-level configuration."""

    session: SessionConfig = Field(default_factory=SessionConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)


class ConfigLoader:
    """Loads configuration from a YAML or JSON file, falling back to defaults."""

    def __init__(self, config_path: Optional[str] = None) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Explicit config file. When omitted, the default
                location is used if it exists.
        """
        self.config_path = Path(config_path).expanduser() if config_path else None

    def load(self) -> PseudoIDEConfig:
        """
        Load and validate configuration.

        Returns:
            PseudoIDEConfig instance

        Raises:
            FileNotFoundError: If an explicit config path does not exist
            ValueError: If the file cannot be parsed or fails validation
        """
        path = self.config_path
        if path is None:
            if not DEFAULT_CONFIG_PATH.exists():
                logger.debug("No config file found, using defaults")
                return PseudoIDEConfig()
            path = DEFAULT_CONFIG_PATH

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix.lower() == ".json":
                data = json.loads(text) if text.strip() else {}
            else:
                data = yaml.safe_load(text) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        logger.info(f"Loaded configuration from {path}")
        return PseudoIDEConfig.model_validate(data)
