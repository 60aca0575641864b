"""Concurrent image download and zip packaging for finished collections."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

import filetype
import httpx

from .models import Task

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]

# Declared subtypes become part of archive entry names.
SAFE_SUBTYPE = re.compile(r"[a-z0-9][a-z0-9.-]*")


@dataclass(frozen=True)
class DownloadedImage:
    url: str
    content_type: str
    data: bytes


def reset_output_dir(output_dir: Path) -> None:
    """Drop archives left by a previous process and recreate the directory."""
    shutil.rmtree(output_dir, ignore_errors=True)
    output_dir.mkdir(parents=True, exist_ok=True)


def extension_for(content_type: str | None, data: bytes) -> str:
    """Pick a file extension from the declared media type, sniffing as a fallback."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    major, _, subtype = media_type.partition("/")
    subtype = subtype.split("+", 1)[0]
    if major == "image" and SAFE_SUBTYPE.fullmatch(subtype) and ".." not in subtype:
        return subtype
    kind = filetype.guess(data)
    if kind is not None:
        return kind.extension
    return "bin"


class ImageArchiver:
    """Downloads references concurrently and bundles the successes into a zip.

    Every fetch settles independently; a failed fetch only means one entry
    fewer in the archive.
    """

    def __init__(
        self,
        *,
        output_dir: Path,
        client_factory: ClientFactory,
        retention_s: float | None = 30 * 60,
    ) -> None:
        self.output_dir = output_dir
        self.client_factory = client_factory
        self.retention_s = retention_s
        self._cleanups: set[asyncio.TimerHandle] = set()

    def archive_path(self, task_id: str) -> Path:
        return self.output_dir / f"{task_id}.zip"

    async def download_and_archive(self, references: list[str], task: Task) -> Path:
        total = len(references)
        settled = 0
        task.set_phase("Downloading Images...")
        task.report(f"0/{total} Images Downloaded")

        async with self.client_factory() as client:

            async def fetch_and_count(url: str) -> DownloadedImage:
                nonlocal settled
                try:
                    return await self._fetch(client, url)
                finally:
                    # Counts settlements, so it reaches `total` even when some fail.
                    settled += 1
                    task.report(f"{settled}/{total} Images Downloaded")

            results = await asyncio.gather(
                *(fetch_and_count(url) for url in references),
                return_exceptions=True,
            )

        images: list[DownloadedImage] = []
        for url, result in zip(references, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "scrape event=download_failed task_id=%s url=%s reason=%s: %s",
                    task.task_id,
                    url,
                    type(result).__name__,
                    result,
                )
                continue
            images.append(result)

        archive_path = await asyncio.to_thread(self._write_archive, task.task_id, images)
        logger.info(
            "scrape event=archive_written task_id=%s entries=%d failed=%d path=%s",
            task.task_id,
            len(images),
            total - len(images),
            archive_path,
        )
        self.schedule_cleanup(archive_path)
        return archive_path

    def schedule_cleanup(self, path: Path) -> asyncio.TimerHandle | None:
        """Remove `path` after the retention window; lost if the process exits first."""
        if self.retention_s is None:
            return None
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def expire() -> None:
            self._cleanups.discard(handle)
            if path.exists():
                path.unlink(missing_ok=True)
                logger.info("scrape event=archive_expired path=%s", path)

        handle = loop.call_later(self.retention_s, expire)
        self._cleanups.add(handle)
        return handle

    def cancel_pending_cleanups(self) -> None:
        for handle in list(self._cleanups):
            handle.cancel()
        self._cleanups.clear()

    @staticmethod
    async def _fetch(client: httpx.AsyncClient, url: str) -> DownloadedImage:
        response = await client.get(url)
        response.raise_for_status()
        return DownloadedImage(
            url=url,
            content_type=response.headers.get("content-type", ""),
            data=response.content,
        )

    def _write_archive(self, task_id: str, images: list[DownloadedImage]) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        final_path = self.archive_path(task_id)
        # Renamed into place only once every entry is written.
        part_path = final_path.with_name(f"{final_path.name}.part")
        with zipfile.ZipFile(
            part_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=9,
        ) as archive:
            for image in images:
                name = f"{uuid4()}.{extension_for(image.content_type, image.data)}"
                archive.writestr(name, image.data)
        part_path.replace(final_path)
        return final_path
