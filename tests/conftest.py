from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import pytest
from fakes import FakeSessionFactory, ImageHost
from fastapi.testclient import TestClient

from image_scraper_api.app.settings import Settings
from image_scraper_api.main import create_app


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def settings(output_dir: Path) -> Settings:
    return Settings(output_dir=output_dir, archive_retention_s=60.0)


@pytest.fixture
def make_client(
    settings: Settings,
) -> Iterator[Callable[..., TestClient]]:
    """Build an app around fakes; the client stays open for the whole test.

    Using TestClient as a context manager keeps the app's event loop alive, so
    detached scrape jobs keep running between requests.
    """
    stack = ExitStack()

    def build(
        session_factory: FakeSessionFactory,
        image_host: ImageHost | None = None,
        **settings_updates: Any,
    ) -> TestClient:
        app = create_app(
            settings_override=settings.model_copy(update=settings_updates),
            session_factory=session_factory,
            client_factory=(image_host or ImageHost()).client_factory(),
        )
        return stack.enter_context(TestClient(app))

    with stack:
        yield build

