"""Out-of-band retrieval of completed compression results.

A task's result can be large; the ``logpare://`` resources let a client fetch
all of it, only the templates, or only the statistics.
"""

import json
import re
from typing import Any

from logpare_mcp.shared.exceptions import LogpareError
from logpare_mcp.tasks.store import TaskStore
from logpare_mcp.types import TaskRecord

MIME_TYPE = "application/json"

RESOURCE_TEMPLATES: list[dict[str, str]] = [
    {
        "uriTemplate": "logpare://results/{taskId}",
        "name": "compression-result",
        "title": "Compression Result",
        "description": "Full compression output for a completed task",
        "mimeType": MIME_TYPE,
    },
    {
        "uriTemplate": "logpare://templates/{taskId}",
        "name": "templates",
        "title": "Template List",
        "description": "Extracted templates from a completed compression task",
        "mimeType": MIME_TYPE,
    },
    {
        "uriTemplate": "logpare://stats/{taskId}",
        "name": "stats",
        "title": "Compression Statistics",
        "description": "Statistics from a completed compression task",
        "mimeType": MIME_TYPE,
    },
]

_URI_RE = re.compile(r"^logpare://(?P<kind>results|templates|stats)/(?P<task_id>[^/?#]+)$")


async def _completed_task(store: TaskStore, task_id: str) -> TaskRecord:
    task = await store.get_task(task_id)
    if task is None:
        raise LogpareError.invalid_params(f"Task {task_id} not found")
    if task.status != "completed":
        raise LogpareError.invalid_params(f"Task {task_id} is not completed (status: {task.status})")
    if task.result is None:
        raise LogpareError.invalid_params(f"Task {task_id} has no result")
    return task


def _payload(kind: str, task: TaskRecord) -> dict[str, Any]:
    assert task.result is not None
    structured = dict(task.result.structuredContent)
    if kind == "results":
        return {
            "taskId": task.taskId,
            "status": task.status,
            "createdAt": task.createdAt.isoformat(),
            "completedAt": task.lastUpdatedAt.isoformat(),
            **structured,
        }
    if kind == "templates":
        templates = structured.get("templates", [])
        return {"taskId": task.taskId, "templateCount": len(templates), "templates": templates}

    structured.pop("templates", None)
    return {
        "taskId": task.taskId,
        "createdAt": task.createdAt.isoformat(),
        "completedAt": task.lastUpdatedAt.isoformat(),
        **structured,
    }


async def read_resource(store: TaskStore, uri: str) -> dict[str, Any]:
    """Serve ``resources/read`` for a ``logpare://`` URI.

    Raises:
        LogpareError: With INVALID_PARAMS if the URI is unknown, or the task
            does not exist or has not completed
    """
    match = _URI_RE.match(uri)
    if match is None:
        raise LogpareError.invalid_params(f"Unknown resource: {uri}")

    task = await _completed_task(store, match["task_id"])
    text = json.dumps(_payload(match["kind"], task), indent=2)
    return {"contents": [{"uri": uri, "mimeType": MIME_TYPE, "text": text}]}
