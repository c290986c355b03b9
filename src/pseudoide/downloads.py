"""
Download manager module.

Fetches the model weights and the inference server bundle into the
application data directory. Downloads are not verified beyond presence:
an existing model file is trusted as-is.
"""

import io
import logging
import os
import stat
import sys
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional

import requests

from pseudoide.config import ServerConfig
from pseudoide.errors import (
    ArchiveError,
    AssetNotFoundError,
    NetworkError,
    StorageError,
)

logger = logging.getLogger(__name__)

MODEL_PROGRESS_EVENT = "model-download-progress"
ARCHIVE_EXTENSIONS = (".zip", ".tar.gz", ".tgz")
CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class DownloadProgress:
    """Progress of the model download."""

    percent_complete: float
    bytes_so_far: int
    total_bytes: int


ProgressCallback = Callable[[str, DownloadProgress], None]


def select_asset(assets: List[Dict[str, Any]], pattern: str) -> Optional[Dict[str, Any]]:
    """
    Pick the first release asset built for this platform.

    Args:
        assets: Asset entries from the release metadata
        pattern: Platform/architecture substring the name must contain

    Returns:
        Matching asset entry or None
    """
    for asset in assets:
        name = str(asset.get("name") or "")
        if pattern in name and name.endswith(ARCHIVE_EXTENSIONS):
            return asset
    return None


def _base_name(archive_name: str) -> str:
    return PurePosixPath(archive_name.replace("\\", "/")).name


class DownloadManager:
    """Fetches model weights and server binaries."""

    def __init__(
        self,
        config: ServerConfig,
        http: Optional[requests.Session] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Initialize download manager.

        Args:
            config: Server installation settings
            http: HTTP session (default: new requests.Session)
            progress_callback: Receives (event_type, DownloadProgress) while
                the model streams in
        """
        self.config = config
        self.http = http or requests.Session()
        self.progress_callback = progress_callback

    def _ensure_app_data_dir(self) -> Path:
        app_dir = self.config.app_data_dir
        try:
            app_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create {app_dir}: {e}") from e
        return app_dir

    def _emit(self, progress: DownloadProgress) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(MODEL_PROGRESS_EVENT, progress)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def fetch_model(self) -> str:
        """
        Download the model weights unless they are already present.

        Returns:
            Status text

        Raises:
            NetworkError: If the download fails
            StorageError: If the file cannot be written
        """
        model_path = self.config.model_path
        if model_path.exists():
            logger.info(f"Model already present at {model_path}")
            return f"Model already exists at {model_path}"

        self._ensure_app_data_dir()
        logger.info(f"Downloading model from {self.config.model_url}")

        try:
            response = self.http.get(self.config.model_url, stream=True)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to download model: {e}") from e

        with response:
            if not response.ok:
                raise NetworkError(
                    f"Failed to download model: HTTP {response.status_code} {response.reason}"
                )

            total = int(response.headers.get("Content-Length") or 0)
            downloaded = 0
            try:
                with open(model_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        downloaded += len(chunk)
                        if total > 0:
                            self._emit(
                                DownloadProgress(
                                    percent_complete=downloaded / total * 100,
                                    bytes_so_far=downloaded,
                                    total_bytes=total,
                                )
                            )
            except requests.RequestException as e:
                raise NetworkError(f"Model download interrupted: {e}") from e
            except OSError as e:
                raise StorageError(f"Failed to write {model_path}: {e}") from e

        logger.info(f"Model downloaded to {model_path} ({downloaded} bytes)")
        return f"Model downloaded to {model_path}"

    def _fetch_release(self) -> Dict[str, Any]:
        try:
            response = self.http.get(
                self.config.release_url, headers={"User-Agent": self.config.user_agent}
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch release info: {e}") from e
        except ValueError as e:
            raise NetworkError(f"Malformed release info: {e}") from e

    def fetch_server_bundle(self) -> str:
        """
        Download the latest server release for this platform and install it.

        Every file in the archive is extracted flat into the application
        data directory.

        Returns:
            Status text

        Raises:
            NetworkError: If the metadata or archive cannot be fetched
            AssetNotFoundError: If no asset matches this platform
            ArchiveError: If extraction fails or the server binary is missing
        """
        release = self._fetch_release()
        assets = release.get("assets") if isinstance(release, dict) else None
        if not isinstance(assets, list):
            raise AssetNotFoundError("No assets found")

        asset = select_asset(assets, self.config.asset_pattern)
        if asset is None:
            raise AssetNotFoundError(
                f"No suitable {self.config.asset_pattern} binary found in latest release"
            )
        url = asset.get("browser_download_url")
        if not url:
            raise AssetNotFoundError("No download URL")

        name = str(asset["name"])
        logger.info(f"Downloading server bundle {name}")
        try:
            response = self.http.get(url, headers={"User-Agent": self.config.user_agent})
            response.raise_for_status()
            payload = response.content
        except requests.RequestException as e:
            raise NetworkError(f"Failed to download {name}: {e}") from e

        app_dir = self._ensure_app_data_dir()
        if name.endswith(".zip"):
            extracted = self._extract_zip(payload, app_dir)
        else:
            extracted = self._extract_tar(payload, app_dir)
        logger.info(f"Extracted {len(extracted)} files into {app_dir}")

        server_name = self.config.server_filename
        if server_name not in extracted:
            raise ArchiveError(f"{server_name} not found in the downloaded archive")

        if sys.platform != "win32":
            server_path = app_dir / server_name
            mode = server_path.stat().st_mode
            os.chmod(server_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        return "Server downloaded and extracted"

    def _extract_zip(self, payload: bytes, target: Path) -> List[str]:
        extracted: List[str] = []
        try:
            with zipfile.ZipFile(io.BytesIO(payload)) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    name = _base_name(info.filename)
                    if not name:
                        continue
                    with archive.open(info) as src, open(target / name, "wb") as dst:
                        dst.write(src.read())
                    extracted.append(name)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveError(f"Failed to extract server archive: {e}") from e
        return extracted

    def _extract_tar(self, payload: bytes, target: Path) -> List[str]:
        extracted: List[str] = []
        try:
            with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as archive:
                for member in archive.getmembers():
                    if not member.isfile():
                        continue
                    name = _base_name(member.name)
                    src = archive.extractfile(member)
                    if not name or src is None:
                        continue
                    out_path = target / name
                    with src, open(out_path, "wb") as dst:
                        dst.write(src.read())
                    os.chmod(out_path, member.mode & 0o777 or 0o644)
                    extracted.append(name)
        except (tarfile.TarError, OSError) as e:
            raise ArchiveError(f"Failed to extract server archive: {e}") from e
        return extracted
