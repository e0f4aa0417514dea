"""
ProgressChannel - carries progress events from a job's worker thread to the
event loop, where they are applied to the task store.
"""

import math

import anyio
import anyio.from_thread
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from logpare_mcp.types import ProgressEvent, TaskProgress


class ProgressChannel:
    """
    One-way channel from a job to the runner.

    The job calls :meth:`report` from its worker thread. Events are buffered on
    the event loop and consumed by iterating :attr:`receive_stream`. Once the
    job returns, :meth:`close` ends the iteration after every event posted so
    far has been delivered.
    """

    def __init__(self) -> None:
        self._send_stream: MemoryObjectSendStream[ProgressEvent]
        self.receive_stream: MemoryObjectReceiveStream[ProgressEvent]
        self._send_stream, self.receive_stream = anyio.create_memory_object_stream(math.inf)

    def report(self, event: ProgressEvent) -> None:
        """Post an event. Must be called from an anyio worker thread."""
        try:
            anyio.from_thread.run_sync(self._send_stream.send_nowait, event)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # The runner stopped listening; the job keeps running regardless.
            pass

    def close(self) -> None:
        self._send_stream.close()


def to_task_progress(event: ProgressEvent) -> TaskProgress:
    """Translate a job progress event into the snapshot stored on the task."""
    total = event.total_lines or 0
    processed = event.processed_lines
    if event.percent_complete is not None:
        percent = event.percent_complete
    elif total > 0:
        percent = round(processed / total * 100)
    else:
        percent = 0

    status_message = f"Processing {processed:,}"
    if total:
        status_message += f" / {total:,}"
    status_message += " lines"

    return TaskProgress(
        percent=max(0, min(100, percent)),
        statusMessage=status_message,
        currentPhase=event.current_phase,
        processedLines=processed,
        totalLines=total or None,
    )
