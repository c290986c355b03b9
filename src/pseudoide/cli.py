"""
Command-line interface for PseudoIDE.

Exposes the runtime operations as subcommands so the backend can be used
without the desktop frontend.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pseudoide.config import ConfigLoader
from pseudoide.downloads import DownloadProgress
from pseudoide.errors import PseudoIDEError
from pseudoide.inference import ChatMessage
from pseudoide.runtime import Runtime
from pseudoide.toolchains import supported_languages

logger = logging.getLogger(__name__)


class InputFileError(PseudoIDEError):
    """Raised when a file named on the command line cannot be used."""


def _read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InputFileError(f"Cannot read {path}: {e}") from e


def _print_progress(event_type: str, progress: DownloadProgress) -> None:
    print(f"\r{progress.percent_complete:6.2f}%", end="", file=sys.stderr, flush=True)


def _load_history(path: Optional[str]) -> List[ChatMessage]:
    if not path:
        return []
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError("expected a JSON list of messages")
        return [ChatMessage.model_validate(item) for item in data]
    except (OSError, ValueError) as e:
        raise InputFileError(f"Invalid history file {path}: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pseudoide", description="Local execution and inference backend for PseudoIDE"
    )
    parser.add_argument(
        "--config", "-c", type=str, default=None, help="Path to configuration file (YAML or JSON)"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--cwd", type=str, default=None, help="Session directory to start in")
    parser.add_argument(
        "--scratch", action="store_true", help="Start in the scratch testing-grounds directory"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Build and run a source file")
    run.add_argument("language", help=f"One of: {', '.join(supported_languages())}")
    run.add_argument("file", help="Source file, or - for stdin")

    shell = sub.add_parser("shell", help="Run a terminal command in the session directory")
    shell.add_argument("cmd", nargs=argparse.REMAINDER, help="Command line")

    sub.add_parser("download-model", help="Download the model weights")
    sub.add_parser("download-server", help="Download and install the inference server")
    sub.add_parser("start-server", help="Start the inference server and wait")

    chat = sub.add_parser("chat", help="Send a chat message to the local model")
    chat.add_argument("message", help="User message")
    chat.add_argument("--history", type=str, default=None, help="JSON file with prior messages")

    generate = sub.add_parser("generate", help="Generate code from pseudocode")
    generate.add_argument("file", help="Pseudocode file, or - for stdin")

    return parser


async def _dispatch(runtime: Runtime, args: argparse.Namespace) -> int:
    if args.scratch:
        await runtime.ensure_testing_grounds()
    elif args.cwd:
        await runtime.change_working_directory(args.cwd)

    if args.command == "run":
        result = await runtime.execute_code(args.language, _read_source(args.file))
        print(result.combined_text, end="")
    elif args.command == "shell":
        result = await runtime.run_terminal_command(" ".join(args.cmd))
        print(result.combined_text, end="")
    elif args.command == "download-model":
        status = await runtime.download_model()
        print(file=sys.stderr)
        print(status)
    elif args.command == "download-server":
        print(await runtime.download_server())
    elif args.command == "start-server":
        print(await runtime.load_model())
        try:
            while runtime.server.is_running():
                await asyncio.sleep(1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Interrupted, stopping server")
        else:
            print("Server exited", file=sys.stderr)
            return 1
    elif args.command == "chat":
        history = _load_history(args.history)
        history.append(ChatMessage(role="user", content=args.message))
        print(await runtime.chat(history))
    elif args.command == "generate":
        result = await runtime.generate_code(_read_source(args.file))
        print(f"# language: {result.language}")
        print(result.code)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = ConfigLoader(config_path=args.config).load()
    except (FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    runtime = Runtime(config, progress_callback=_print_progress)
    try:
        return asyncio.run(_dispatch(runtime, args))
    except PseudoIDEError as e:
        logger.debug("Operation failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        runtime.close()
