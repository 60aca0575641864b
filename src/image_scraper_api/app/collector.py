"""Incremental collection of image references from a browsing session.

Flow:
1) Scan the initial result grid; nothing found means the task cannot proceed.
2) Keep triggering lazy loads until enough candidates exist or the page
   reports the end of its results.
3) Reveal each candidate's link in discovery order and pull the full-size
   image URL out of its query string, skipping candidates that fail.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib import parse

from .browser import BrowseSession, BrowseSessionError
from .models import Task

logger = logging.getLogger(__name__)

IMAGE_URL_PARAM = "imgurl"


class NoResultsFound(RuntimeError):
    """The search produced no candidate images."""


class ElementExtractionError(ValueError):
    """A candidate's link did not carry a usable image URL."""


def parse_image_url(href: str) -> str:
    """Return the full-resolution image URL embedded in a result link."""
    if not href:
        raise ElementExtractionError("Result link is empty")
    query = parse.parse_qs(parse.urlsplit(href).query)
    values = query.get(IMAGE_URL_PARAM, [])
    if not values or not values[0]:
        raise ElementExtractionError(f"Result link has no '{IMAGE_URL_PARAM}' parameter")
    return values[0]


class ResultCollector:
    """Accumulates up to `target_count` image references from one session."""

    def __init__(self, *, max_stalled_rounds: int = 3) -> None:
        # Load-more rounds without new candidates before giving up on the page.
        self.max_stalled_rounds = max(1, max_stalled_rounds)

    async def collect(self, session: BrowseSession, task: Task, target_count: int) -> list[str]:
        candidates = await session.find_candidates()
        if not candidates:
            raise NoResultsFound("Initial scan found no images")

        task.set_phase("Loading Images...")
        task.report(f"{len(candidates)} Images Found")

        candidates = await self._load_more(session, task, candidates, target_count)
        if not candidates:
            raise NoResultsFound("Result grid emptied while loading more images")

        return await self._extract(session, task, candidates, target_count)

    async def _load_more(
        self,
        session: BrowseSession,
        task: Task,
        candidates: list[Any],
        target_count: int,
    ) -> list[Any]:
        stalled_rounds = 0
        while len(candidates) < target_count:
            try:
                await session.wait_for_more_results()
            except BrowseSessionError as exc:
                logger.warning(
                    "scrape event=load_more_stopped task_id=%s found=%d reason=%s",
                    task.task_id,
                    len(candidates),
                    exc,
                )
                break

            await session.click_load_more()
            reached_end = await session.is_end_of_results()

            previous_count = len(candidates)
            candidates = await session.find_candidates()
            task.report(f"{len(candidates)} Images Found")

            if reached_end:
                logger.info(
                    "scrape event=end_of_results task_id=%s found=%d",
                    task.task_id,
                    len(candidates),
                )
                break

            stalled_rounds = stalled_rounds + 1 if len(candidates) <= previous_count else 0
            if stalled_rounds >= self.max_stalled_rounds:
                logger.info(
                    "scrape event=load_more_stalled task_id=%s found=%d rounds=%d",
                    task.task_id,
                    len(candidates),
                    stalled_rounds,
                )
                break
        return candidates

    async def _extract(
        self,
        session: BrowseSession,
        task: Task,
        candidates: list[Any],
        target_count: int,
    ) -> list[str]:
        effective_target = min(target_count, len(candidates))
        references: list[str] = []
        task.set_phase("Getting Image Links...")
        task.report(f"0/{effective_target} Images Loaded")

        for index, candidate in enumerate(candidates):
            if len(references) >= effective_target:
                break
            try:
                href = await session.reveal_link(candidate)
                references.append(parse_image_url(href))
            except (BrowseSessionError, ElementExtractionError) as exc:
                logger.warning(
                    "scrape event=extract_failed task_id=%s index=%d reason=%s",
                    task.task_id,
                    index,
                    exc,
                )
                continue
            task.report(f"{len(references)}/{effective_target} Images Loaded")
        return references
