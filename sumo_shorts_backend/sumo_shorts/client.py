"""Follows a job's progress: event stream first, snapshot polling as fallback."""
import json
import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from .models import ProgressEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ProgressEvent], None]


class WatchError(RuntimeError):
    """Progress could not be retrieved from the server."""


class StreamEnded(Exception):
    pass


async def _read_stream(client: httpx.AsyncClient, url: str, on_event: EventHandler) -> Optional[ProgressEvent]:
    """Consume one stream connection. Returns the terminal event, or None when the server has no stream."""
    async with client.stream("GET", url, headers={"Accept": "text/event-stream"}) as r:
        r.raise_for_status()
        if "text/event-stream" not in r.headers.get("content-type", ""):
            # No live channel on the server: this is a snapshot
            await r.aread()
            event = ProgressEvent.model_validate(r.json())
            on_event(event)
            return event if event.step == "complete" else None
        async for line in r.aiter_lines():
            if not line.startswith("data:"):
                continue
            event = ProgressEvent.model_validate(json.loads(line[len("data:"):].strip()))
            on_event(event)
            if event.step == "complete":
                return event
    raise StreamEnded("Event stream closed before completion")


async def watch_job(
    base_url: str,
    job_id: str,
    client: Optional[httpx.AsyncClient] = None,
    on_event: Optional[EventHandler] = None,
    max_stream_failures: int = 3,
    max_poll_failures: int = 3,
    poll_interval: float = 2.0,
    retry_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ProgressEvent:
    """Return the job's terminal ``complete`` event.

    The stream is retried until ``max_stream_failures`` consecutive failures,
    then the status route is polled with ``Accept: application/json``.
    ``max_poll_failures`` consecutive polling failures raise WatchError.
    """
    url = f"{base_url.rstrip('/')}/api/video/status/{job_id}"
    handler = on_event or (lambda e: logger.info(f"[{e.step}] {e.status} {e.progress}% {e.message}"))
    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(timeout=httpx.Timeout(10, read=60))
    try:
        failures = 0
        received = []

        def on_stream_event(event: ProgressEvent):
            received.append(event)
            handler(event)

        while failures < max_stream_failures:
            received.clear()
            try:
                event = await _read_stream(client, url, on_stream_event)
            except (httpx.HTTPError, StreamEnded, ValueError) as e:
                # A connection that delivered events before dropping starts a fresh count
                failures = 1 if received else failures + 1
                logger.warning(f"Event stream failed ({failures}/{max_stream_failures}): {e}")
                if failures < max_stream_failures:
                    await sleep(retry_delay)
                continue
            if event is not None:
                return event
            break

        logger.info("Switching to polling mode")
        failures = 0
        while True:
            try:
                r = await client.get(url, headers={"Accept": "application/json"})
                r.raise_for_status()
                event = ProgressEvent.model_validate(r.json())
            except (httpx.HTTPError, ValueError) as e:
                failures += 1
                logger.warning(f"Polling failed ({failures}/{max_poll_failures}): {e}")
                if failures >= max_poll_failures:
                    raise WatchError(f"Could not retrieve progress for job {job_id}") from e
            else:
                failures = 0
                handler(event)
                if event.step == "complete":
                    return event
            await sleep(poll_interval)
    finally:
        if own_client:
            await client.aclose()
