"""Browsing-session capability used by the collector, plus its Playwright backend.

The collector only depends on `BrowseSession`; page structure (selectors, label
text) lives entirely in `PlaywrightBrowseSession`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from playwright.async_api import (
    Browser,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from .settings import Settings

logger = logging.getLogger(__name__)

IMG_SELECTOR = "#islrg > div.islrc > div > a:nth-child(2)"
STATUS_SELECTOR = "#islmp .Bqq24e"
LOAD_MORE_SELECTOR = "#islmp input[type=button]"
SEE_MORE_ANYWAY_SELECTOR = "#islmp > div > div > div > div.WYR1I > span"
BUSY_TEXT = "Wait while more content is being loaded"
END_TEXT = "Looks like you've reached the end"
SEE_MORE_ANYWAY_TEXT = "See more anyway"

_SELECTORS = {
    "status": STATUS_SELECTOR,
    "loadMore": LOAD_MORE_SELECTOR,
    "seeMoreAnyway": SEE_MORE_ANYWAY_SELECTOR,
    "busyText": BUSY_TEXT,
    "endText": END_TEXT,
    "seeMoreAnywayText": SEE_MORE_ANYWAY_TEXT,
}

# Scroll to the bottom and report whether the page settled after a lazy load.
_MORE_RESULTS_READY_JS = """
(s) => {
  window.scrollTo(0, document.body.scrollHeight);
  const status = document.querySelector(s.status);
  const loadMore = document.querySelector(s.loadMore);
  const loadMoreActionable = Boolean(
    loadMore && loadMore.parentElement && loadMore.parentElement.style.display === ''
  );
  const seeMoreAnyway = document.querySelector(s.seeMoreAnyway);
  return loadMoreActionable || Boolean(seeMoreAnyway) || !status || status.textContent !== s.busyText;
}
"""

_CLICK_LOAD_MORE_JS = """
(s) => {
  const el = document.querySelector(s.loadMore);
  if (el && el.parentElement && el.parentElement.style.display === '') {
    el.click();
    return true;
  }
  return false;
}
"""

_END_OF_RESULTS_JS = """
(s) => {
  window.scrollTo(0, document.body.scrollHeight);
  const status = document.querySelector(s.status);
  const seeMoreAnyway = document.querySelector(s.seeMoreAnyway);
  const reachedEnd = Boolean(status) && status.innerText === s.endText;
  return reachedEnd || Boolean(seeMoreAnyway && seeMoreAnyway.textContent === s.seeMoreAnywayText);
}
"""


class BrowseSessionError(RuntimeError):
    """Browsing layer failed (launch, page crash, wait timeout)."""


class NavigationError(BrowseSessionError):
    """The search page could not be loaded."""


class BrowseSession(Protocol):
    """Page-inspection capability the collector drives."""

    async def navigate(self, url: str) -> None: ...

    async def find_candidates(self) -> list[Any]: ...

    async def wait_for_more_results(self) -> None: ...

    async def click_load_more(self) -> bool: ...

    async def is_end_of_results(self) -> bool: ...

    async def reveal_link(self, candidate: Any) -> str: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[], Awaitable[BrowseSession]]


class PlaywrightBrowseSession:
    """One headless Chromium page driven through Playwright's async API."""

    def __init__(
        self,
        *,
        playwright: Playwright,
        browser: Browser,
        page: Page,
        navigation_timeout_s: float,
        load_more_timeout_s: float,
        link_timeout_s: float,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self._load_more_timeout_ms = load_more_timeout_s * 1000
        self._link_timeout_ms = link_timeout_s * 1000
        self._closed = False
        page.set_default_navigation_timeout(navigation_timeout_s * 1000)

    @classmethod
    async def open(cls, settings: Settings) -> PlaywrightBrowseSession:
        try:
            playwright = await async_playwright().start()
        except (PlaywrightError, OSError) as exc:
            raise BrowseSessionError(f"Could not start Playwright: {exc}") from exc
        try:
            browser = await playwright.chromium.launch(
                headless=settings.browser_headless,
                args=["--no-sandbox"],
            )
            page = await browser.new_page()
        except PlaywrightError as exc:
            await playwright.stop()
            raise BrowseSessionError(f"Could not launch browser: {exc}") from exc
        return cls(
            playwright=playwright,
            browser=browser,
            page=page,
            navigation_timeout_s=settings.navigation_timeout_s,
            load_more_timeout_s=settings.load_more_timeout_s,
            link_timeout_s=settings.link_timeout_s,
        )

    async def navigate(self, url: str) -> None:
        try:
            await self._page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise NavigationError(f"Could not load {url}: {exc}") from exc

    async def find_candidates(self) -> list[ElementHandle]:
        try:
            return await self._page.query_selector_all(IMG_SELECTOR)
        except PlaywrightError as exc:
            raise BrowseSessionError(f"Could not query image results: {exc}") from exc

    async def wait_for_more_results(self) -> None:
        try:
            await self._page.wait_for_function(
                _MORE_RESULTS_READY_JS,
                arg=_SELECTORS,
                timeout=self._load_more_timeout_ms,
            )
        except PlaywrightError as exc:
            raise BrowseSessionError(f"Page did not finish loading more results: {exc}") from exc

    async def click_load_more(self) -> bool:
        try:
            return bool(await self._page.evaluate(_CLICK_LOAD_MORE_JS, _SELECTORS))
        except PlaywrightError as exc:
            raise BrowseSessionError(f"Could not click load more: {exc}") from exc

    async def is_end_of_results(self) -> bool:
        try:
            return bool(await self._page.evaluate(_END_OF_RESULTS_JS, _SELECTORS))
        except PlaywrightError as exc:
            raise BrowseSessionError(f"Could not read end-of-results state: {exc}") from exc

    async def reveal_link(self, candidate: ElementHandle) -> str:
        """Click a result so the page fills in its href, then read it."""
        try:
            await candidate.click()
            await self._page.wait_for_function(
                "(el) => Boolean(el.href)",
                arg=candidate,
                timeout=self._link_timeout_ms,
            )
            href = await candidate.evaluate("(el) => el.href")
        except PlaywrightError as exc:
            raise BrowseSessionError(f"Could not reveal image link: {exc}") from exc
        return str(href or "")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._browser.close()
        except PlaywrightError as exc:
            logger.warning("browser_close event=failed reason=%s", exc)
        finally:
            await self._playwright.stop()


def build_playwright_session_factory(settings: Settings) -> SessionFactory:
    async def open_session() -> BrowseSession:
        return await PlaywrightBrowseSession.open(settings)

    return open_session
