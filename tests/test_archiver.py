from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path

import pytest
from fakes import JPEG_BYTES, PNG_BYTES, ImageHost, image_urls

from image_scraper_api.app.archiver import ImageArchiver, extension_for, reset_output_dir
from image_scraper_api.app.models import Task


def _archiver(output_dir: Path, host: ImageHost, retention_s: float | None = None) -> ImageArchiver:
    return ImageArchiver(
        output_dir=output_dir,
        client_factory=host.client_factory(),
        retention_s=retention_s,
    )


@pytest.mark.parametrize(
    ("content_type", "data", "expected"),
    [
        ("image/png", b"", "png"),
        ("image/jpeg; charset=binary", b"", "jpeg"),
        ("image/svg+xml", b"", "svg"),
        ("", JPEG_BYTES, "jpg"),
        ("application/octet-stream", PNG_BYTES, "png"),
        ("application/octet-stream", b"???", "bin"),
        ("image/x/../../tmp/evil", b"???", "bin"),
        ("image/..", PNG_BYTES, "png"),
        (None, b"???", "bin"),
    ],
)
def test_extension_for(content_type: str | None, data: bytes, expected: str) -> None:
    assert extension_for(content_type, data) == expected


def test_archive_contains_only_successful_downloads(tmp_path: Path) -> None:
    urls = image_urls(5)
    host = ImageHost(failing={urls[1]}, unreachable={urls[3]})
    task = Task()

    path = asyncio.run(_archiver(tmp_path, host).download_and_archive(urls, task))

    assert path == tmp_path / f"{task.task_id}.zip"
    with zipfile.ZipFile(path) as archive:
        names = archive.namelist()
        contents = sorted(archive.read(name) for name in names)
    assert len(names) == 3
    assert all(name.endswith(".png") for name in names)
    assert len(set(names)) == 3
    assert contents == sorted(PNG_BYTES + urls[i].encode("utf-8") for i in (0, 2, 4))
    assert sorted(host.requested) == sorted(urls)
    # Failed downloads still advance the counter.
    assert task.progress == "5/5 Images Downloaded"
    assert task.msg == "Downloading Images..."
    assert task.status == "LOADING"


def test_all_downloads_failing_yields_empty_archive(tmp_path: Path) -> None:
    urls = image_urls(3)
    host = ImageHost(failing=set(urls))
    task = Task()

    path = asyncio.run(_archiver(tmp_path, host).download_and_archive(urls, task))

    with zipfile.ZipFile(path) as archive:
        assert archive.namelist() == []
    assert task.progress == "3/3 Images Downloaded"


def test_no_references_yields_empty_archive(tmp_path: Path) -> None:
    task = Task()
    path = asyncio.run(_archiver(tmp_path, ImageHost()).download_and_archive([], task))

    assert path.is_file()
    assert task.progress == "0/0 Images Downloaded"


def test_archive_is_compressed_and_no_partial_file_left(tmp_path: Path) -> None:
    urls = image_urls(2)
    task = Task()

    path = asyncio.run(_archiver(tmp_path, ImageHost()).download_and_archive(urls, task))

    with zipfile.ZipFile(path) as archive:
        assert {info.compress_type for info in archive.infolist()} == {zipfile.ZIP_DEFLATED}
    assert list(tmp_path.iterdir()) == [path]


def test_archive_removed_after_retention(tmp_path: Path) -> None:
    archiver = _archiver(tmp_path, ImageHost(), retention_s=0.05)
    task = Task()

    async def scenario() -> tuple[bool, bool]:
        path = await archiver.download_and_archive(image_urls(1), task)
        existed = path.exists()
        await asyncio.sleep(0.3)
        return existed, path.exists()

    assert asyncio.run(scenario()) == (True, False)


def test_cancelled_cleanup_keeps_archive(tmp_path: Path) -> None:
    archiver = _archiver(tmp_path, ImageHost(), retention_s=0.05)
    task = Task()

    async def scenario() -> Path:
        path = await archiver.download_and_archive(image_urls(1), task)
        archiver.cancel_pending_cleanups()
        await asyncio.sleep(0.2)
        return path

    assert asyncio.run(scenario()).exists()


def test_cleanup_tolerates_missing_file(tmp_path: Path) -> None:
    archiver = _archiver(tmp_path, ImageHost(), retention_s=0.01)
    missing = tmp_path / "gone.zip"

    async def scenario() -> None:
        archiver.schedule_cleanup(missing)
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert not missing.exists()


def test_reset_output_dir_clears_stale_archives(tmp_path: Path) -> None:
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    (output_dir / "stale.zip").write_bytes(b"old")

    reset_output_dir(output_dir)

    assert output_dir.is_dir()
    assert list(output_dir.iterdir()) == []


def test_hostile_content_type_cannot_shape_entry_names(tmp_path: Path) -> None:
    host = ImageHost(content_type="image/x/../../../../tmp/evil", body=b"???")
    task = Task()

    path = asyncio.run(_archiver(tmp_path, host).download_and_archive(image_urls(2), task))

    with zipfile.ZipFile(path) as archive:
        names = archive.namelist()
    assert len(names) == 2
    assert all("/" not in name and ".." not in name for name in names)
    assert all(name.endswith(".bin") for name in names)
