"""Tests for model and server downloads."""

import io
import sys
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Tuple
from unittest.mock import MagicMock

import pytest
import requests

from pseudoide.config import ServerConfig
from pseudoide.downloads import (
    MODEL_PROGRESS_EVENT,
    DownloadManager,
    DownloadProgress,
    select_asset,
)
from pseudoide.errors import ArchiveError, AssetNotFoundError, NetworkError

ASSET_NAME = "llama-b4000-bin-ubuntu-x64.zip"


@pytest.fixture
def config(tmp_path: Path) -> ServerConfig:
    return ServerConfig(
        app_data_dir=tmp_path / "appdata",
        model_url="https://example.test/model.gguf",
        model_filename="model.gguf",
        release_url="https://example.test/releases/latest",
        asset_pattern="bin-ubuntu-x64",
        server_filename="llama-server",
        dependency_files=["libllama.so"],
    )


def _stream_response(chunks: List[bytes], length=None, status: int = 200) -> MagicMock:
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.reason = "OK" if status < 400 else "Not Found"
    response.headers = {"Content-Length": str(length)} if length is not None else {}
    response.iter_content.return_value = iter(chunks)
    return response


def _json_response(payload: Dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    return response


def _bytes_response(content: bytes) -> MagicMock:
    response = MagicMock()
    response.content = content
    return response


def _zip(entries: Dict[str, bytes], dirs: Tuple[str, ...] = ()) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name in dirs:
            archive.writestr(zipfile.ZipInfo(name), b"")
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def _tar_gz(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _release(name: str = ASSET_NAME) -> Dict:
    return {
        "assets": [
            {"name": "llama-b4000-bin-win-cpu-x64.zip", "browser_download_url": "https://x/win.zip"},
            {"name": f"{name}.sha256", "browser_download_url": "https://x/sum"},
            {"name": name, "browser_download_url": "https://x/bundle"},
        ]
    }


class TestFetchModel:
    def test_streams_chunks_and_reports_progress(self, config: ServerConfig) -> None:
        events: List[Tuple[str, DownloadProgress]] = []
        http = MagicMock()
        http.get.return_value = _stream_response([b"abc", b"", b"def"], length=6)
        manager = DownloadManager(config, http=http, progress_callback=lambda *e: events.append(e))

        status = manager.fetch_model()

        assert status == f"Model downloaded to {config.model_path}"
        assert config.model_path.read_bytes() == b"abcdef"
        assert [event for event, _ in events] == [MODEL_PROGRESS_EVENT] * 2
        assert [p.percent_complete for _, p in events] == [50.0, 100.0]
        assert events[-1][1].bytes_so_far == 6
        http.get.assert_called_once_with(config.model_url, stream=True)

    def test_existing_model_is_not_fetched_again(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.return_value = _stream_response([b"weights"], length=7)
        manager = DownloadManager(config, http=http)

        manager.fetch_model()
        status = manager.fetch_model()

        assert status.startswith("Model already exists at")
        assert http.get.call_count == 1
        assert config.model_path.read_bytes() == b"weights"

    def test_missing_content_length_emits_no_progress(self, config: ServerConfig) -> None:
        events = []
        http = MagicMock()
        http.get.return_value = _stream_response([b"abc"])
        manager = DownloadManager(config, http=http, progress_callback=lambda *e: events.append(e))

        manager.fetch_model()

        assert events == []
        assert config.model_path.read_bytes() == b"abc"

    def test_failing_progress_callback_does_not_stop_download(self, config: ServerConfig) -> None:
        def closed_window(event_type, progress):
            raise RuntimeError("window closed")

        http = MagicMock()
        http.get.return_value = _stream_response([b"abc", b"def"], length=6)
        manager = DownloadManager(config, http=http, progress_callback=closed_window)

        status = manager.fetch_model()

        assert status == f"Model downloaded to {config.model_path}"
        assert config.model_path.read_bytes() == b"abcdef"

    def test_http_error_status(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.return_value = _stream_response([], status=404)

        with pytest.raises(NetworkError, match="404"):
            DownloadManager(config, http=http).fetch_model()
        assert not config.model_path.exists()

    def test_connection_error(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.side_effect = requests.ConnectionError("unreachable")

        with pytest.raises(NetworkError, match="unreachable"):
            DownloadManager(config, http=http).fetch_model()


class TestFetchServerBundle:
    def test_extracts_flattened_files(self, config: ServerConfig) -> None:
        bundle = _zip(
            {"build/bin/llama-server": b"server", "build/bin/libllama.so": b"lib", "LICENSE": b"mit"},
            dirs=("build/", "build/bin/"),
        )
        http = MagicMock()
        http.get.side_effect = [_json_response(_release()), _bytes_response(bundle)]

        status = DownloadManager(config, http=http).fetch_server_bundle()

        assert status == "Server downloaded and extracted"
        app_dir = config.app_data_dir
        assert sorted(p.name for p in app_dir.iterdir()) == ["LICENSE", "libllama.so", "llama-server"]
        assert (app_dir / "llama-server").read_bytes() == b"server"
        assert http.get.call_args_list[0].kwargs["headers"] == {"User-Agent": "PseudoIDE"}
        assert http.get.call_args_list[1].args[0] == "https://x/bundle"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_server_binary_made_executable(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.side_effect = [
            _json_response(_release()),
            _bytes_response(_zip({"llama-server": b"server"})),
        ]

        DownloadManager(config, http=http).fetch_server_bundle()

        assert (config.app_data_dir / "llama-server").stat().st_mode & 0o100

    def test_tarball_asset(self, config: ServerConfig) -> None:
        name = "llama-b4000-bin-ubuntu-x64.tar.gz"
        http = MagicMock()
        http.get.side_effect = [
            _json_response(_release(name)),
            _bytes_response(_tar_gz({"llama-b4000/llama-server": b"server"})),
        ]

        DownloadManager(config, http=http).fetch_server_bundle()

        assert (config.app_data_dir / "llama-server").read_bytes() == b"server"

    def test_no_matching_asset(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.return_value = _json_response(
            {"assets": [{"name": "llama-bin-win-cpu-x64.zip", "browser_download_url": "u"}]}
        )

        with pytest.raises(AssetNotFoundError):
            DownloadManager(config, http=http).fetch_server_bundle()
        assert http.get.call_count == 1

    def test_metadata_without_assets(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.return_value = _json_response({"message": "rate limited"})

        with pytest.raises(AssetNotFoundError, match="No assets"):
            DownloadManager(config, http=http).fetch_server_bundle()

    def test_archive_without_server(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.side_effect = [
            _json_response(_release()),
            _bytes_response(_zip({"bin/libllama.so": b"lib"})),
        ]

        with pytest.raises(ArchiveError, match="llama-server"):
            DownloadManager(config, http=http).fetch_server_bundle()
        assert (config.app_data_dir / "libllama.so").exists()

    def test_corrupt_archive(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.side_effect = [_json_response(_release()), _bytes_response(b"not a zip")]

        with pytest.raises(ArchiveError):
            DownloadManager(config, http=http).fetch_server_bundle()

    def test_release_request_failure(self, config: ServerConfig) -> None:
        http = MagicMock()
        http.get.side_effect = requests.Timeout("slow")

        with pytest.raises(NetworkError, match="release info"):
            DownloadManager(config, http=http).fetch_server_bundle()


def test_select_asset_requires_archive_extension() -> None:
    assets = [
        {"name": "llama-bin-ubuntu-x64.zip.sha256"},
        {"name": "llama-bin-ubuntu-x64.zip"},
    ]

    assert select_asset(assets, "bin-ubuntu-x64") == {"name": "llama-bin-ubuntu-x64.zip"}
    assert select_asset(assets, "bin-macos-arm64") is None
