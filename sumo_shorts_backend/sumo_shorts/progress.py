"""In-process progress channels and their Server-Sent Events framing.

A channel is opened when a job starts and closed when it ends. Subscribers
each get their own queue; a late subscriber first receives the latest event
so it never waits on a stage that already finished.
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from .models import ProgressEvent
from .settings import SSE_PING_INTERVAL_S

logger = logging.getLogger(__name__)

PING_FRAME = ": ping\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


def sse_frame(event: ProgressEvent) -> str:
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


class ProgressChannel:
    def __init__(self, job_id: str):
        self.job_id = job_id
        self.latest: Optional[ProgressEvent] = None
        self.closed = False
        self._subscribers: List[asyncio.Queue] = []

    def publish(self, event: ProgressEvent) -> None:
        if self.closed:
            logger.warning(f"Dropping event for closed channel {self.job_id}: {event.step}/{event.status}")
            return
        self.latest = event
        for q in self._subscribers:
            q.put_nowait(event)

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue()
        if self.latest is not None:
            q.put_nowait(self.latest)
        if self.closed:
            q.put_nowait(None)
        else:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        self.closed = True
        for q in self._subscribers:
            q.put_nowait(None)
        self._subscribers.clear()

    async def stream(self, ping_interval: float = SSE_PING_INTERVAL_S) -> AsyncIterator[str]:
        """Yield SSE frames until the ``complete`` event or channel close."""
        q = self.subscribe()
        try:
            while True:
                try:
                    event = await asyncio.wait_for(q.get(), timeout=ping_interval)
                except asyncio.TimeoutError:
                    yield PING_FRAME
                    continue
                if event is None:
                    break
                yield sse_frame(event)
                if event.step == "complete":
                    break
        finally:
            self.unsubscribe(q)


class ProgressRegistry:
    """Active channels by job id. Single process only."""

    def __init__(self):
        self._channels: Dict[str, ProgressChannel] = {}

    def open(self, job_id: str) -> ProgressChannel:
        channel = ProgressChannel(job_id)
        self._channels[job_id] = channel
        return channel

    def get(self, job_id: str) -> Optional[ProgressChannel]:
        return self._channels.get(job_id)

    def close(self, job_id: str) -> None:
        channel = self._channels.pop(job_id, None)
        if channel is not None:
            channel.close()
