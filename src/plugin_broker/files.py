"""Filesystem and network primitives used by the materialiser.

Each concern is a small protocol so tests can swap in fakes: fetching and
downloading over HTTP, unpacking archives, copying files and creating
temporary directories.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import unquote, urlparse

import httpx

logger = logging.getLogger(__name__)

TAR_SUFFIXES = (".tar.gz", ".tgz")
ZIP_SUFFIXES = (".vsix", ".theia", ".zip")


class Downloader(Protocol):
    async def fetch(self, url: str) -> bytes: ...

    async def download(self, url: str, dest: Path) -> Path: ...


class Archiver(Protocol):
    def unzip(self, archive: Path, dest: Path) -> None: ...

    def untar(self, archive: Path, dest: Path) -> None: ...


class FileCopier(Protocol):
    def copy_file(self, src: Path, dest: Path) -> None: ...

    def copy_resource(self, src: Path, dest_dir: Path) -> None: ...

    def make_dirs(self, path: Path) -> None: ...


class TempProvider(Protocol):
    def temp_dir(self, prefix: str) -> Path: ...


class HttpDownloader:
    """HTTP(S) fetches through a shared ``httpx.AsyncClient``.

    Non-2xx replies raise ``httpx.HTTPStatusError`` so callers can inspect the
    status code; transport failures raise ``httpx.RequestError``.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(self, url: str) -> bytes:
        response = await self._client.get(url)
        response.raise_for_status()
        return response.content

    async def download(self, url: str, dest: Path) -> Path:
        async with self._client.stream("GET", url) as response:
            if response.status_code >= 400:
                await response.aread()
                response.raise_for_status()
            with open(dest, "wb") as out:
                async for chunk in response.aiter_bytes():
                    out.write(chunk)
        return dest


class LocalArchiver:
    """Zip and gzip-tar extraction that refuses entries escaping ``dest``."""

    def unzip(self, archive: Path, dest: Path) -> None:
        dest.mkdir(parents=True, exist_ok=True)
        root = dest.resolve()
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                target = (dest / member).resolve()
                if not target.is_relative_to(root):
                    raise ValueError(f"Archive entry escapes destination: {member}")
            zf.extractall(dest)

    def untar(self, archive: Path, dest: Path) -> None:
        dest.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tf:
            tf.extractall(dest, filter="data")


class LocalFileCopier:
    def copy_file(self, src: Path, dest: Path) -> None:
        shutil.copyfile(src, dest)

    def copy_resource(self, src: Path, dest_dir: Path) -> None:
        """Copy a file or a directory tree into ``dest_dir``."""
        target = dest_dir / src.name
        if src.is_dir():
            shutil.copytree(src, target, dirs_exist_ok=True)
        else:
            shutil.copyfile(src, target)

    def make_dirs(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)


class SystemTempProvider:
    """Temporary directories under the system temp root.

    Directories are left in place after the run for post-mortem inspection.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = base_dir

    def temp_dir(self, prefix: str) -> Path:
        return Path(tempfile.mkdtemp(prefix=prefix, dir=self.base_dir))


def url_basename(url: str, default: str = "extension") -> str:
    """Last path segment of a URL, without query or fragment."""
    path = unquote(urlparse(url).path)
    name = PurePosixPath(path).name
    return name or default


def is_tar_archive(path: Path) -> bool:
    return path.name.lower().endswith(TAR_SUFFIXES)


def is_zip_package(path: Path) -> bool:
    return path.name.lower().endswith(ZIP_SUFFIXES)


def clear_dir(directory: Path) -> list[tuple[Path, OSError]]:
    """Remove every entry in ``directory``, keeping the directory itself.

    Returns:
        Entries that could not be removed, with the error for each
    """
    failures: list[tuple[Path, OSError]] = []
    for entry in sorted(directory.glob("*")):
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as e:
            failures.append((entry, e))
    return failures
