"""
Asynchronous task support: task records, storage, and the background runner.
"""

from logpare_mcp.tasks.helpers import cancel_task, classify_failure, is_terminal
from logpare_mcp.tasks.in_memory_task_store import InMemoryTaskStore
from logpare_mcp.tasks.progress import ProgressChannel
from logpare_mcp.tasks.runner import Job, ProgressCallback, TaskRunner
from logpare_mcp.tasks.store import TaskStore

__all__ = [
    "InMemoryTaskStore",
    "Job",
    "ProgressCallback",
    "ProgressChannel",
    "TaskRunner",
    "TaskStore",
    "cancel_task",
    "classify_failure",
    "is_terminal",
]
