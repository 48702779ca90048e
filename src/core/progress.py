"""
Progress events and the one-way channel that carries them to a streaming client.

Every event is tagged with an explicit ProgressStatus where it is emitted,
so clients never have to guess from the step code.
"""
import asyncio
import json
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Literal, Optional

from pydantic import BaseModel


class ProgressStatus(str, Enum):
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProgressEvent(BaseModel):
    """A `status` notification; step codes look like `finviz_navigating`."""

    kind: Literal["status"] = "status"
    message: str
    step: str
    status: ProgressStatus = ProgressStatus.STARTED
    website: Optional[str] = None
    variant: Optional[str] = None
    url: Optional[str] = None
    ticker: Optional[str] = None
    success: Optional[bool] = None

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"kind"}, exclude_none=True)


ProgressCallback = Callable[[ProgressEvent], Any]


def report(on_progress: Optional[ProgressCallback], event: ProgressEvent) -> None:
    """Hand an event to the callback; a failing callback never breaks the caller."""
    if on_progress is None:
        return
    try:
        on_progress(event)
    except Exception as e:
        print(f"[WARN] Progress callback failed for {event.step}: {e}")


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


_END = object()


class ProgressChannel:
    """
    Queue-backed event stream for one request.

    publish() frames status events immediately; complete() or fail() sends the
    single terminal event and ends the stream. Anything after that is dropped.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(format_sse(event.kind, event.payload()))

    def _terminate(self, event: str, data: Dict[str, Any]) -> bool:
        if self._closed:
            return False
        self._closed = True
        self._queue.put_nowait(format_sse(event, data))
        self._queue.put_nowait(_END)
        return True

    def complete(self, result: Dict[str, Any]) -> bool:
        return self._terminate("complete", result)

    def fail(self, error: str, message: Optional[str] = None) -> bool:
        data = {"error": error}
        if message is not None:
            data["message"] = message
        return self._terminate("error", data)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is _END:
                return
            yield frame
