"""Download and placement of extension artifacts.

Artifacts of plugins without a sidecar are copied next to each other under
the plugins directory. Artifacts of sidecar plugins land in a per-plugin
directory under ``sidecars/``, unpacked when they are tarballs (or zip
packages, when unpacking is enabled).
"""

from __future__ import annotations

import logging
import tarfile
import zipfile
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from plugin_broker.errors import DownloadFailedError, ExtractionError, FilesystemError
from plugin_broker.files import (
    Archiver,
    Downloader,
    FileCopier,
    TempProvider,
    is_tar_archive,
    is_zip_package,
    url_basename,
)
from plugin_broker.model import PluginMeta
from plugin_broker.randomness import Random
from plugin_broker.retry import RateLimitPolicy
from plugin_broker.sidecar import SIDECARS_DIR, plugin_unique_key

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "vscode-extension-broker-"
ARTIFACT_SUFFIX_LENGTH = 10


def local_artifact_name(meta: PluginMeta, suffix: str, url: str) -> str:
    """``<publisher>.<name>.<version>.<suffix>.<basename>``"""
    return f"{meta.publisher}.{meta.name}.{meta.version}.{suffix}.{url_basename(url)}"


def unpacked_dir_name(archive: Path) -> str:
    name = archive.name
    for suffix in (".tar.gz", ".tgz", ".vsix", ".theia", ".zip"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)] or name
    return name


class Materializer:
    """Places the artifacts of one meta at a time under ``plugins_dir``."""

    def __init__(
        self,
        downloader: Downloader,
        archiver: Archiver,
        copier: FileCopier,
        temp: TempProvider,
        rand: Random,
        plugins_dir: Path = Path("/plugins"),
        rate_limit: RateLimitPolicy | None = None,
        unpack_extensions: bool = False,
        on_rate_limit: Callable[[int, int], Awaitable[None]] | None = None,
    ) -> None:
        self.downloader = downloader
        self.archiver = archiver
        self.copier = copier
        self.temp = temp
        self.rand = rand
        self.plugins_dir = Path(plugins_dir)
        self.rate_limit = rate_limit or RateLimitPolicy()
        self.unpack_extensions = unpack_extensions
        self.on_rate_limit = on_rate_limit

    def sidecar_dir(self, meta: PluginMeta) -> Path:
        key = plugin_unique_key(meta.publisher, meta.name, meta.version)
        return self.plugins_dir / SIDECARS_DIR / key

    async def materialize(self, meta: PluginMeta, urls: list[str]) -> list[Path]:
        """Download and place every artifact of ``meta``, in order.

        Returns:
            Paths of the placed files or unpacked directories

        Raises:
            RateLimitedError: If a download stays rate limited
            DownloadFailedError: On any other failed download
            ExtractionError: If an archive cannot be unpacked
            FilesystemError: If a directory or copy cannot be made
        """
        if not urls:
            return []
        work_dir = self.work_dir()

        placed = []
        for url in urls:
            archive = await self.download(meta, url, work_dir)
            if meta.spec.containers:
                placed.append(self._place_in_sidecar(meta, archive))
            else:
                placed.append(self._place_local(meta, archive, url))
        return placed

    def work_dir(self) -> Path:
        """Fresh temp directory shared by the downloads of one plugin."""
        try:
            return self.temp.temp_dir(TEMP_DIR_PREFIX)
        except OSError as e:
            raise FilesystemError("create temp directory for", TEMP_DIR_PREFIX, str(e)) from e

    async def download(self, meta: PluginMeta, url: str, work_dir: Path) -> Path:
        """Fetch ``url`` into ``work_dir``."""
        try:
            dest = work_dir / url_basename(url)
        except ValueError as e:
            raise DownloadFailedError(url, reason=str(e)) from e

        logger.debug("Downloading %s to %s", url, dest)
        try:
            return await self.rate_limit.run(
                lambda: self.downloader.download(url, dest),
                meta.id,
                on_retry=self.on_rate_limit,
            )
        except httpx.HTTPStatusError as e:
            raise DownloadFailedError(url, status=e.response.status_code) from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise DownloadFailedError(url, reason=str(e)) from e
        except OSError as e:
            raise FilesystemError("write", str(dest), str(e)) from e

    def _place_local(self, meta: PluginMeta, archive: Path, url: str) -> Path:
        name = local_artifact_name(meta, self.rand.string(ARTIFACT_SUFFIX_LENGTH), url)
        dest = self.plugins_dir / name
        try:
            self.copier.make_dirs(self.plugins_dir)
            self.copier.copy_file(archive, dest)
        except OSError as e:
            raise FilesystemError("copy artifact to", str(dest), str(e)) from e
        logger.info("Copied %s to %s", archive.name, dest)
        return dest

    def _place_in_sidecar(self, meta: PluginMeta, archive: Path) -> Path:
        sidecar_dir = self.sidecar_dir(meta)
        try:
            self.copier.make_dirs(sidecar_dir)
        except OSError as e:
            raise FilesystemError("create directory", str(sidecar_dir), str(e)) from e

        if is_tar_archive(archive):
            self._extract(self.archiver.untar, archive, sidecar_dir)
            return sidecar_dir
        if self.unpack_extensions and is_zip_package(archive):
            dest = sidecar_dir / unpacked_dir_name(archive)
            self._extract(self.archiver.unzip, archive, dest)
            return dest

        try:
            self.copier.copy_resource(archive, sidecar_dir)
        except OSError as e:
            raise FilesystemError("copy artifact to", str(sidecar_dir), str(e)) from e
        return sidecar_dir / archive.name

    @staticmethod
    def _extract(extract: Callable[[Path, Path], None], archive: Path, dest: Path) -> None:
        try:
            extract(archive, dest)
        except (zipfile.BadZipFile, tarfile.TarError, ValueError, OSError) as e:
            raise ExtractionError(str(archive), str(e)) from e
        logger.debug("Unpacked %s to %s", archive.name, dest)
