from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

from image_scraper_api.app import browser as browser_module
from image_scraper_api.app.archiver import ImageArchiver
from image_scraper_api.app.browser import BrowseSessionError, PlaywrightBrowseSession
from image_scraper_api.app.models import Task
from image_scraper_api.app.orchestrator import ScrapeOrchestrator
from image_scraper_api.app.settings import Settings


class _FailingStarter:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def start(self) -> None:
        raise self.error


class _FakeChromium:
    async def launch(self, **_: object) -> None:
        raise PlaywrightError("Executable doesn't exist")


class _FakePlaywright:
    def __init__(self) -> None:
        self.chromium = _FakeChromium()
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class _LaunchFailingStarter:
    def __init__(self) -> None:
        self.playwright = _FakePlaywright()

    async def start(self) -> _FakePlaywright:
        return self.playwright


@pytest.mark.parametrize(
    "error",
    [PlaywrightError("Driver exited"), FileNotFoundError("playwright driver not found")],
)
def test_driver_start_failure_is_a_session_error(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    error: Exception,
) -> None:
    monkeypatch.setattr(browser_module, "async_playwright", lambda: _FailingStarter(error))

    with pytest.raises(BrowseSessionError, match="Could not start Playwright"):
        asyncio.run(PlaywrightBrowseSession.open(Settings(output_dir=tmp_path)))


def test_launch_failure_stops_driver(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    starter = _LaunchFailingStarter()
    monkeypatch.setattr(browser_module, "async_playwright", lambda: starter)

    with pytest.raises(BrowseSessionError, match="Could not launch browser"):
        asyncio.run(PlaywrightBrowseSession.open(Settings(output_dir=tmp_path)))
    assert starter.playwright.stopped


def test_driver_start_failure_reports_initialization_failed(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setattr(
        browser_module,
        "async_playwright",
        lambda: _FailingStarter(PlaywrightError("Driver exited")),
    )
    settings = Settings(output_dir=tmp_path)
    orchestrator = ScrapeOrchestrator(
        session_factory=browser_module.build_playwright_session_factory(settings),
        archiver=ImageArchiver(
            output_dir=tmp_path,
            client_factory=lambda: pytest.fail("no downloads expected"),
            retention_s=None,
        ),
    )
    created: list[Task] = []

    def on_task_created(task: Task) -> Task:
        created.append(task)
        return task

    references = asyncio.run(orchestrator.scrape("cats", 2, on_task_created))

    assert references == []
    assert created[0].status == "FAIL"
    assert created[0].msg == "Initialization Failed"
