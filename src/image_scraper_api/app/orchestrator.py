"""Task lifecycle for one scrape-and-download job.

States: LOADING -> SUCCESS or LOADING -> FAIL. The task is created and handed
to the caller synchronously; everything after that runs as a detached asyncio
job that is the task's only writer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .archiver import ImageArchiver
from .browser import BrowseSessionError, NavigationError, SessionFactory
from .collector import NoResultsFound, ResultCollector
from .filters import build_search_url
from .models import SearchFilter, Task

logger = logging.getLogger(__name__)

OnTaskCreated = Callable[[Task], Task]

MSG_INIT_FAILED = "Initialization Failed"
MSG_NO_IMAGES = "No Images Found"
MSG_LOADING_FAILED = "Loading Images Failed"
MSG_UNEXPECTED_FAILURE = "Scraping Failed"
MSG_READY = "Your Images Are Ready"


class ScrapeOrchestrator:
    """Sequences session open -> collect -> session close -> download/archive."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        archiver: ImageArchiver,
        collector: ResultCollector | None = None,
        search_base_url: str = "https://www.google.com/search",
    ) -> None:
        self.session_factory = session_factory
        self.archiver = archiver
        self.collector = collector or ResultCollector()
        self.search_base_url = search_base_url
        # Strong references so detached jobs are not garbage collected mid-run.
        self._jobs: set[asyncio.Task[list[str]]] = set()

    @property
    def active_jobs(self) -> int:
        return len(self._jobs)

    def start(
        self,
        search: str,
        num_of_images: int,
        on_task_created: OnTaskCreated,
        search_filter: SearchFilter | None = None,
    ) -> Task:
        """Create the task, hand it to `on_task_created`, and run the job detached.

        Must be called from inside a running event loop.
        """
        task = on_task_created(Task())
        job = asyncio.create_task(
            self.run(task, search, num_of_images, search_filter),
            name=f"scrape-{task.task_id}",
        )
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)
        return task

    async def scrape(
        self,
        search: str,
        num_of_images: int,
        on_task_created: OnTaskCreated,
        search_filter: SearchFilter | None = None,
    ) -> list[str]:
        """Same lifecycle as `start`, awaited in the caller's coroutine."""
        task = on_task_created(Task())
        return await self.run(task, search, num_of_images, search_filter)

    async def run(
        self,
        task: Task,
        search: str,
        num_of_images: int,
        search_filter: SearchFilter | None = None,
    ) -> list[str]:
        try:
            return await self._run(task, search, num_of_images, search_filter)
        except Exception:  # noqa: BLE001
            logger.exception("scrape event=crashed task_id=%s", task.task_id)
            if not task.is_terminal:
                task.fail(MSG_UNEXPECTED_FAILURE)
            return []

    async def shutdown(self) -> None:
        """Cancel running jobs and pending archive cleanups."""
        jobs = list(self._jobs)
        for job in jobs:
            job.cancel()
        await asyncio.gather(*jobs, return_exceptions=True)
        self.archiver.cancel_pending_cleanups()

    async def _run(
        self,
        task: Task,
        search: str,
        num_of_images: int,
        search_filter: SearchFilter | None,
    ) -> list[str]:
        search_url = build_search_url(search, search_filter, base_url=self.search_base_url)
        logger.info(
            "scrape event=start task_id=%s search=%r num_of_images=%d url=%s",
            task.task_id,
            search,
            num_of_images,
            search_url,
        )

        try:
            session = await self.session_factory()
        except BrowseSessionError as exc:
            self._fail(task, MSG_INIT_FAILED, exc)
            return []

        try:
            try:
                await session.navigate(search_url)
            except NavigationError as exc:
                self._fail(task, MSG_INIT_FAILED, exc)
                return []

            try:
                references = await self.collector.collect(session, task, num_of_images)
            except NoResultsFound as exc:
                self._fail(task, MSG_NO_IMAGES, exc)
                return []
            except BrowseSessionError as exc:
                self._fail(task, MSG_LOADING_FAILED, exc)
                return []
        finally:
            await session.close()

        await self.archiver.download_and_archive(references, task)
        task.succeed(MSG_READY)
        logger.info(
            "scrape event=completed task_id=%s status=%s references=%d",
            task.task_id,
            task.status,
            len(references),
        )
        return references

    @staticmethod
    def _fail(task: Task, msg: str, exc: Exception) -> None:
        task.fail(msg)
        logger.info(
            "scrape event=failed task_id=%s status=%s msg=%r reason=%s",
            task.task_id,
            task.status,
            msg,
            exc,
        )
