"""In-memory registry of live scrape tasks.

The store holds the same Task object the orchestrator mutates, so lookups see
progress as it happens. Callers that hand data out of the process should use
`Task.snapshot()` rather than the live object.
"""

from __future__ import annotations

import threading

from .models import Task


class InMemoryTaskStorage:
    """Thread-safe task registry keyed by task id."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        # Guards inserts/lookups; task fields are only written by their own job.
        self._lock = threading.Lock()

    def add_task(self, task: Task) -> Task:
        with self._lock:
            if task.task_id in self._tasks:
                raise KeyError(f"Task {task.task_id} already exists")
            self._tasks[task.task_id] = task
        return task

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
