from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import get_args

import httpx

from .app.archiver import ImageArchiver
from .app.browser import build_playwright_session_factory
from .app.models import (
    ImageColor,
    ImageRecency,
    ImageSize,
    ImageType,
    SearchFilter,
    Task,
    UsageRights,
)
from .app.orchestrator import ScrapeOrchestrator
from .app.settings import Settings, get_settings


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape image search results into a zip archive.")
    parser.add_argument("--search", required=True, help="Search query.")
    parser.add_argument(
        "--num-images",
        type=int,
        required=True,
        help="Number of images to collect.",
    )
    parser.add_argument("--size", choices=get_args(ImageSize), default=None)
    parser.add_argument("--color", choices=get_args(ImageColor), default=None)
    parser.add_argument("--type", choices=get_args(ImageType), default=None)
    parser.add_argument("--time", choices=get_args(ImageRecency), default=None)
    parser.add_argument("--user-rights", choices=get_args(UsageRights), default=None)
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the archive (defaults to the configured output dir).",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=0.5,
        help="Seconds between progress checks.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level.")
    args = parser.parse_args(argv)
    if args.num_images < 1:
        parser.error("--num-images must be at least 1")
    return args


def _build_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.download_timeout_s, follow_redirects=True)


async def _scrape(args: argparse.Namespace, settings: Settings) -> tuple[Task | None, Path]:
    output_dir = args.output_dir or settings.output_dir
    archiver = ImageArchiver(
        output_dir=output_dir,
        client_factory=lambda: _build_client(settings),
        # The process exits right after, so the archive is kept.
        retention_s=None,
    )
    orchestrator = ScrapeOrchestrator(
        session_factory=build_playwright_session_factory(settings),
        archiver=archiver,
        search_base_url=settings.search_base_url,
    )
    search_filter = SearchFilter(
        size=args.size,
        color=args.color,
        type=args.type,
        time=args.time,
        user_rights=args.user_rights,
    )

    created: list[Task] = []

    def on_task_created(task: Task) -> Task:
        created.append(task)
        print(f"Task {task.task_id} created")
        return task

    job = asyncio.create_task(
        orchestrator.scrape(args.search, args.num_images, on_task_created, search_filter)
    )
    last_state: tuple[str, str, str] | None = None
    while True:
        await asyncio.wait({job}, timeout=args.poll_interval)
        if created:
            task = created[0]
            state = (task.status, task.msg, task.progress)
            if state != last_state:
                print(f"[{task.status}] {task.msg} {task.progress}".rstrip())
                last_state = state
        if job.done():
            break
    await job

    task = created[0] if created else None
    return task, archiver.archive_path(task.task_id) if task else output_dir


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    task, archive_path = asyncio.run(_scrape(args, get_settings()))
    if task is None or task.status != "SUCCESS":
        return 1
    print(f"Archive: {archive_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
