"""Tests for filesystem and HTTP primitives."""

import io
import tarfile
import zipfile

import httpx
import pytest
import respx
from httpx import Response

from plugin_broker.files import (
    HttpDownloader,
    LocalArchiver,
    LocalFileCopier,
    SystemTempProvider,
    clear_dir,
    is_tar_archive,
    is_zip_package,
    url_basename,
)


def make_zip(path, entries: dict[str, bytes]):
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def make_tar(path, entries: dict[str, bytes]):
    with tarfile.open(path, "w:gz") as tf:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return path


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://example.com/a/b/vscode-java-0.46.0.vsix", "vscode-java-0.46.0.vsix"),
        ("https://example.com/a/ext.theia?token=abc#frag", "ext.theia"),
        ("https://example.com/a/my%20ext.vsix", "my ext.vsix"),
        ("https://example.com/", "extension"),
    ],
)
def test_url_basename(url, expected):
    assert url_basename(url) == expected


def test_archive_kinds(tmp_path):
    assert is_tar_archive(tmp_path / "ext.tar.gz")
    assert is_tar_archive(tmp_path / "EXT.TGZ")
    assert not is_tar_archive(tmp_path / "ext.vsix")
    assert is_zip_package(tmp_path / "ext.vsix")
    assert is_zip_package(tmp_path / "ext.theia")
    assert not is_zip_package(tmp_path / "ext.tar.gz")


def test_unzip(tmp_path):
    archive = make_zip(tmp_path / "ext.vsix", {"extension/package.json": b"{}"})

    LocalArchiver().unzip(archive, tmp_path / "out")

    assert (tmp_path / "out" / "extension" / "package.json").read_bytes() == b"{}"


def test_unzip_rejects_path_traversal(tmp_path):
    archive = make_zip(tmp_path / "evil.zip", {"../escape.txt": b"x"})

    with pytest.raises(ValueError, match="escapes"):
        LocalArchiver().unzip(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_untar(tmp_path):
    archive = make_tar(tmp_path / "ext.tar.gz", {"package/index.js": b"module.exports = {}"})

    LocalArchiver().untar(archive, tmp_path / "out")

    assert (tmp_path / "out" / "package" / "index.js").exists()


def test_copy_resource_file_and_tree(tmp_path):
    copier = LocalFileCopier()
    src_file = tmp_path / "ext.vsix"
    src_file.write_bytes(b"vsix")
    src_dir = tmp_path / "tree"
    (src_dir / "nested").mkdir(parents=True)
    (src_dir / "nested" / "a.txt").write_text("a")
    dest = tmp_path / "dest"
    copier.make_dirs(dest)

    copier.copy_resource(src_file, dest)
    copier.copy_resource(src_dir, dest)

    assert (dest / "ext.vsix").read_bytes() == b"vsix"
    assert (dest / "tree" / "nested" / "a.txt").read_text() == "a"


def test_temp_dir_prefix(tmp_path):
    tmp = SystemTempProvider(base_dir=tmp_path).temp_dir("vscode-extension-broker-")
    assert tmp.is_dir()
    assert tmp.parent == tmp_path
    assert tmp.name.startswith("vscode-extension-broker-")


def test_clear_dir_removes_entries_and_keeps_dir(tmp_path):
    (tmp_path / "old.vsix").write_bytes(b"x")
    (tmp_path / "sidecars" / "key").mkdir(parents=True)

    failures = clear_dir(tmp_path)

    assert failures == []
    assert tmp_path.is_dir()
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
@respx.mock
async def test_http_downloader_fetch():
    respx.get("https://registry.example.com/meta.yaml").mock(
        return_value=Response(200, text="apiVersion: v2")
    )

    async with httpx.AsyncClient() as client:
        data = await HttpDownloader(client).fetch("https://registry.example.com/meta.yaml")

    assert data == b"apiVersion: v2"


@pytest.mark.asyncio
@respx.mock
async def test_http_downloader_fetch_error_status():
    respx.get("https://registry.example.com/meta.yaml").mock(return_value=Response(404))

    async with httpx.AsyncClient() as client:
        with pytest.raises(httpx.HTTPStatusError):
            await HttpDownloader(client).fetch("https://registry.example.com/meta.yaml")


@pytest.mark.asyncio
@respx.mock
async def test_http_downloader_download_writes_file(tmp_path):
    respx.get("https://download.example.com/ext.vsix").mock(
        return_value=Response(200, content=b"vsix-bytes")
    )

    async with httpx.AsyncClient() as client:
        dest = await HttpDownloader(client).download(
            "https://download.example.com/ext.vsix", tmp_path / "ext.vsix"
        )

    assert dest.read_bytes() == b"vsix-bytes"


@pytest.mark.asyncio
@respx.mock
async def test_http_downloader_download_error_leaves_no_file(tmp_path):
    respx.get("https://download.example.com/ext.vsix").mock(return_value=Response(500))

    async with httpx.AsyncClient() as client:
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await HttpDownloader(client).download(
                "https://download.example.com/ext.vsix", tmp_path / "ext.vsix"
            )

    assert exc_info.value.response.status_code == 500
    assert not (tmp_path / "ext.vsix").exists()
