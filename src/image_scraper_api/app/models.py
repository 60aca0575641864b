"""Pydantic models shared across the API, orchestrator, collector, and archiver.

Terms used in this file:
- Task: the tracked unit of work for one scrape request (status/msg/progress).
- SearchFilter: optional knobs narrowing the image search (size, color, ...).
- Envelope: the `{status, message, data}` shape every HTTP response uses.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# LOADING is initial; SUCCESS and FAIL are terminal.
TaskStatus = Literal["LOADING", "SUCCESS", "FAIL"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"SUCCESS", "FAIL"})

ImageColor = Literal[
    "gray",
    "trans",
    "specific,isc:red",
    "specific,isc:orange",
    "specific,isc:yellow",
    "specific,isc:green",
    "specific,isc:teal",
    "specific,isc:blue",
    "specific,isc:purple",
    "specific,isc:pink",
    "specific,isc:white",
    "specific,isc:gray",
    "specific,isc:black",
    "specific,isc:brown",
]
ImageSize = Literal["l", "m", "i"]
ImageType = Literal["clipart", "lineart", "animated"]
ImageRecency = Literal["d", "w", "m", "y"]
UsageRights = Literal["cl", "ol"]

FILTER_FIELDS: tuple[str, ...] = ("size", "color", "type", "time", "user_rights")


class InvalidTaskTransition(RuntimeError):
    """Raised when something tries to mutate a task that already finished."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Task(BaseModel):
    """Live task record.

    The orchestrator is the only writer; the store and HTTP pollers read it
    through `snapshot()`, which returns a detached copy.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    task_id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    status: TaskStatus = "LOADING"
    # Current phase, e.g. "Loading Images...".
    msg: str = "Initializing..."
    # Counter text, e.g. "12 Images Found"; overwritten, never appended.
    progress: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def set_phase(self, msg: str) -> None:
        self._ensure_active()
        self.msg = msg
        self.updated_at = _utcnow()

    def report(self, progress: str) -> None:
        self._ensure_active()
        self.progress = progress
        self.updated_at = _utcnow()

    def succeed(self, msg: str) -> None:
        self._finish("SUCCESS", msg)

    def fail(self, msg: str) -> None:
        self._finish("FAIL", msg)

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready copy with the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)

    def _finish(self, status: TaskStatus, msg: str) -> None:
        self._ensure_active()
        self.msg = msg
        self.status = status
        self.updated_at = _utcnow()

    def _ensure_active(self) -> None:
        if self.is_terminal:
            raise InvalidTaskTransition(
                f"Task {self.task_id} is already {self.status} and cannot change"
            )


class SearchFilter(BaseModel):
    """Immutable set of optional search knobs; absent fields are not encoded."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    size: ImageSize | None = None
    color: ImageColor | None = None
    type: ImageType | None = None
    time: ImageRecency | None = None
    user_rights: UsageRights | None = None


class ScrapeRequest(BaseModel):
    """Request body for POST /scrape-google-images.

    `search` and `numOfImages` are optional here so the handler can answer a
    missing value with the fail envelope instead of a validation error.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    search: str | None = None
    num_of_images: int | None = None
    size: ImageSize | None = None
    color: ImageColor | None = None
    type: ImageType | None = None
    time: ImageRecency | None = None
    user_rights: UsageRights | None = None

    def search_filter(self) -> SearchFilter:
        return SearchFilter(**self.model_dump(include=set(FILTER_FIELDS)))


class APIResponse(BaseModel):
    """Envelope returned by every scrape endpoint."""

    status: Literal["success", "fail", "error"]
    message: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
