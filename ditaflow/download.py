"""Download, verify and unpack DITA-OT releases."""

from __future__ import annotations

import hashlib
import os
import shutil
import stat
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from . import __version__, messages
from .errors import ConfigurationError, DitaFlowError
from .logging import get_logger
from .platform import Platform
from .process import detect_tool_version
from .retry import RetryPolicy

DEFAULT_VERSION = "4.2.3"
RELEASE_URL = "https://github.com/dita-ot/dita-ot/releases/download/{version}/dita-ot-{version}.zip"
DEFAULT_CACHE_DIR = Path("~/.dita-ot/cache")

_CHUNK_SIZE = 64 * 1024
_PART_SUFFIX = ".part"

# Accepted spellings mapped to hashlib names.
CHECKSUM_ALGORITHMS: Dict[str, str] = {
    "md5": "md5",
    "sha1": "sha1",
    "sha-1": "sha1",
    "sha256": "sha256",
    "sha-256": "sha256",
    "sha512": "sha512",
    "sha-512": "sha512",
}


class DownloadError(DitaFlowError):
    """Raised when a DITA-OT release cannot be fetched, verified or unpacked."""


@dataclass
class DownloadRequest:
    """Which release to fetch and where to unpack it.

    The release is unpacked into ``destination / "dita-ot-<version>"``.
    """

    version: str = DEFAULT_VERSION
    destination: Path = Path("build/dita-ot")
    url: Optional[str] = None
    checksum: Optional[str] = None
    force: bool = False
    skip_if_exists: bool = True
    timeout: float = 60.0

    @property
    def tool_home(self) -> Path:
        return Path(self.destination) / f"dita-ot-{self.version}"

    @property
    def download_url(self) -> str:
        return self.url or RELEASE_URL.format(version=self.version)


@dataclass
class DownloadResult:
    tool_home: Path
    version: str
    skipped: bool = False
    downloaded: bool = False
    archive: Optional[Path] = None
    size: int = 0
    checksum_verified: bool = False
    launcher: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_home": str(self.tool_home),
            "version": self.version,
            "skipped": self.skipped,
            "downloaded": self.downloaded,
            "archive": str(self.archive) if self.archive else None,
            "size": self.size,
            "checksum_verified": self.checksum_verified,
            "launcher": str(self.launcher) if self.launcher else None,
        }


def parse_checksum(value: str) -> Tuple[str, str]:
    """Split ``algorithm:hash`` into a hashlib name and a lower-case digest."""
    algorithm, separator, digest = value.strip().partition(":")
    if not separator or not digest.strip():
        raise ConfigurationError(
            f"Invalid checksum format: {value!r}; expected algorithm:hash "
            "(for example sha256:abc123...). Supported algorithms: md5, sha1, sha256, sha512"
        )
    name = CHECKSUM_ALGORITHMS.get(algorithm.strip().lower())
    if name is None:
        raise ConfigurationError(
            f"Unsupported checksum algorithm: {algorithm!r}. Supported: md5, sha1, sha256, sha512"
        )
    return name, digest.strip().lower()


def file_digest(path: Path, algorithm: str) -> str:
    digest = hashlib.new(algorithm)
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(archive: Path, checksum: str) -> None:
    """Raise ``DownloadError`` and delete ``archive`` when its digest does not match."""
    algorithm, expected = parse_checksum(checksum)
    actual = file_digest(archive, algorithm)
    if actual != expected:
        archive.unlink()
        raise DownloadError(messages.checksum_mismatch(archive, algorithm, expected, actual))


def is_valid_installation(tool_home: Path) -> bool:
    tool_home = Path(tool_home)
    return tool_home.is_dir() and (tool_home / "build.xml").is_file() and (tool_home / "bin").is_dir()


def extract_archive(archive: Path, destination: Path) -> None:
    """Unpack ``archive`` below ``destination``, keeping executable bits.

    Every entry is checked before anything is written; an entry that would land
    outside ``destination`` aborts the extraction.
    """
    root = Path(destination).resolve()
    try:
        with zipfile.ZipFile(archive) as bundle:
            members = bundle.infolist()
            for info in members:
                target = (root / info.filename).resolve()
                if target != root and root not in target.parents:
                    raise DownloadError(f"ZIP entry is outside of the target directory: {info.filename}")
            root.mkdir(parents=True, exist_ok=True)
            bundle.extractall(root)
    except zipfile.BadZipFile as exc:
        raise DownloadError(f"Failed to extract DITA-OT from {archive}: {exc}") from exc

    for info in members:
        mode = (info.external_attr >> 16) & 0o777
        if mode & 0o111 and not info.is_dir():
            path = root / info.filename
            path.chmod(path.stat().st_mode | (mode & 0o111))


class DitaOtDownloader:
    """Fetches DITA-OT releases into a shared cache and unpacks them."""

    def __init__(
        self,
        *,
        cache_dir: Path | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        platform: Platform | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir or DEFAULT_CACHE_DIR).expanduser()
        self.retry = retry or RetryPolicy(attempts=4, max_delay=10.0)
        self.platform = platform or Platform.current()
        self._sleep = sleep
        self.logger = get_logger("download")

    def download(self, request: DownloadRequest) -> DownloadResult:
        if request.checksum:
            parse_checksum(request.checksum)
        home = request.tool_home
        self.logger.info("DITA-OT %s -> %s", request.version, home.absolute())

        if request.skip_if_exists and not request.force and home.exists():
            if is_valid_installation(home):
                self.logger.info("DITA-OT %s already installed; skipping download", request.version)
                return self._result(request, skipped=True)
            self.logger.warning("Existing installation at %s looks invalid; downloading again", home)
        if request.force and home.exists():
            self.logger.info("Removing existing installation at %s", home)
            shutil.rmtree(home)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        archive = self.cache_dir / f"dita-ot-{request.version}.zip"
        downloaded = False
        if request.force or not archive.is_file():
            self._fetch_with_retry(request, archive)
            downloaded = True
        else:
            self.logger.info("Using cached archive %s", archive)

        if request.checksum:
            verify_checksum(archive, request.checksum)
            self.logger.info("Checksum verified for %s", archive.name)

        self.logger.info("Extracting %s to %s", archive.name, request.destination)
        extract_archive(archive, Path(request.destination))
        if not is_valid_installation(home):
            raise DownloadError(messages.invalid_installation(home.absolute()))
        self._make_launchers_executable(home)

        return self._result(
            request,
            downloaded=downloaded,
            archive=archive,
            checksum_verified=bool(request.checksum),
        )

    def _result(self, request: DownloadRequest, **values: Any) -> DownloadResult:
        home = request.tool_home
        detected = detect_tool_version(home)
        archive = values.get("archive")
        launcher = home / "bin" / self.platform.script_name
        return DownloadResult(
            tool_home=home,
            version=request.version if detected == "unknown" else detected,
            size=archive.stat().st_size if archive is not None else 0,
            launcher=launcher if launcher.exists() else None,
            **values,
        )

    def _fetch_with_retry(self, request: DownloadRequest, archive: Path) -> None:
        url = request.download_url

        def attempt(number: int) -> Optional[DownloadError]:
            self.logger.info("Downloading %s (attempt %d)", url, number)
            try:
                self._fetch(url, archive, request)
            except DownloadError as exc:
                self.logger.warning("Download failed: %s", exc)
                return exc
            return None

        failure = self.retry.run(attempt, should_retry=lambda error: error is not None, sleep=self._sleep)
        if failure is not None:
            attempts = max(1, self.retry.attempts)
            raise DownloadError(
                f"Failed to download DITA-OT {request.version} after {attempts} attempt(s): {failure}"
            ) from failure

    def _fetch(self, url: str, archive: Path, request: DownloadRequest) -> None:
        part = archive.with_name(archive.name + _PART_SUFFIX)
        http_request = Request(url, headers={"User-Agent": f"ditaflow/{__version__}"})
        try:
            with urlopen(http_request, timeout=request.timeout) as response, part.open("wb") as handle:
                total = int(response.headers.get("Content-Length") or 0)
                received = 0
                reported = -1
                for chunk in iter(lambda: response.read(_CHUNK_SIZE), b""):
                    handle.write(chunk)
                    received += len(chunk)
                    if total:
                        percent = received * 100 // total
                        if percent // 10 > reported // 10:
                            self.logger.debug("  Progress: %d%%", percent)
                            reported = percent
        except HTTPError as exc:
            _discard(part)
            raise DownloadError(messages.download_http_error(exc.code, url, request.version)) from exc
        except URLError as exc:
            _discard(part)
            raise DownloadError(f"Failed to download DITA-OT from {url}: {exc.reason}") from exc
        except OSError as exc:
            _discard(part)
            raise DownloadError(f"Failed to download DITA-OT from {url}: {exc}") from exc
        os.replace(part, archive)
        self.logger.info("Downloaded %s (%s)", archive.name, format_size(archive.stat().st_size))

    def _make_launchers_executable(self, home: Path) -> None:
        if self.platform.is_windows:
            return
        script = home / "bin" / self.platform.script_name
        if script.is_file():
            script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size // 1024} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


__all__ = [
    "CHECKSUM_ALGORITHMS",
    "DEFAULT_VERSION",
    "DitaOtDownloader",
    "DownloadError",
    "DownloadRequest",
    "DownloadResult",
    "RELEASE_URL",
    "extract_archive",
    "file_digest",
    "format_size",
    "is_valid_installation",
    "parse_checksum",
    "verify_checksum",
]
