"""Microsoft To Do adapter — implements TaskSource via Microsoft Graph.

Task lists are looked up once and cached on the adapter instance; open
tasks are re-read every cycle.
"""

from __future__ import annotations

import logging

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.models.todo_task import TodoTask as GraphTodoTask
from msgraph.generated.users.item.todo.lists.item.tasks.tasks_request_builder import (
    TasksRequestBuilder,
)

from src.data.models import TodoTask
from src.ports.source_port import SourceError

logger = logging.getLogger(__name__)


def _enum_value(value: object, default: str) -> str:
    if value is None:
        return default
    return str(getattr(value, "value", value))


def normalize_importance(value: str) -> str:
    value = value.lower()
    return value if value in ("low", "normal", "high") else "normal"


def _normalize_task(task: GraphTodoTask, list_id: str, list_name: str) -> TodoTask:
    due = task.due_date_time.date_time if task.due_date_time else None
    return TodoTask(
        id=task.id or "",
        list_id=list_id,
        list_name=list_name,
        title=task.title or "(untitled)",
        due=due or None,
        importance=normalize_importance(_enum_value(task.importance, "normal")),
        status=_enum_value(task.status, "notStarted"),
    )


class OutlookTasksAdapter:
    """Microsoft To Do implementation of TaskSource."""

    def __init__(self, client: GraphServiceClient, user_id: str) -> None:
        self._client = client
        self._user_id = user_id
        self._lists: list[tuple[str, str]] | None = None

    def _todo(self):
        return self._client.users.by_user_id(self._user_id).todo

    async def fetch_lists(self) -> list[tuple[str, str]]:
        """Return [(list_id, display_name)], fetched once per adapter."""
        if self._lists is not None:
            return self._lists
        try:
            result = await self._todo().lists.get()
        except Exception as exc:
            logger.error("Outlook API error (fetch To Do lists): %s", exc)
            raise SourceError(f"Failed to fetch To Do lists: {exc}") from exc

        self._lists = [
            (lst.id or "", lst.display_name or "")
            for lst in (result.value if result else None) or []
        ]
        logger.info("Fetched To Do lists: %s", [name for _, name in self._lists])
        return self._lists

    async def fetch(self) -> list[TodoTask]:
        lists = await self.fetch_lists()
        query = TasksRequestBuilder.TasksRequestBuilderGetQueryParameters(
            filter="status ne 'completed'",
            select=["id", "title", "dueDateTime", "importance", "status"],
        )

        tasks: list[TodoTask] = []
        failures = 0
        for list_id, list_name in lists:
            try:
                result = await self._todo().lists.by_todo_task_list_id(list_id).tasks.get(
                    request_configuration=RequestConfiguration(query_parameters=query),
                )
            except Exception as exc:
                failures += 1
                logger.warning("Failed to fetch tasks for list '%s': %s", list_name, exc)
                continue
            tasks.extend(
                _normalize_task(t, list_id, list_name)
                for t in (result.value if result else None) or []
            )

        if lists and failures == len(lists):
            raise SourceError("Failed to fetch tasks from every To Do list")

        logger.info("Fetched %d open task(s) from %d list(s)", len(tasks), len(lists))
        return tasks
