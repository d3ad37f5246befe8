import asyncio
import json

import httpx
import pytest

from sumo_shorts.client import WatchError, watch_job

BASE = "http://backend.test"
COMPLETE = {"step": "complete", "status": "completed", "progress": 100,
            "message": "Video generation complete", "data": {"videoPath": "/api/video/download/j1"}}
RUNNING = {"step": "audio", "status": "in_progress", "progress": 58, "message": "Generating audio (1/5)...", "data": None}


async def no_sleep(seconds):
    return None


def sse(*events):
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events)


def watch(handler, **kwargs):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            seen = []
            result = await watch_job(BASE, "j1", client=client, on_event=seen.append, sleep=no_sleep, **kwargs)
            return result, seen
    return asyncio.run(go())


def test_stream_delivers_terminal_event():
    def handler(request):
        assert request.url.path == "/api/video/status/j1"
        body = sse(RUNNING, COMPLETE)
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body.encode())

    result, seen = watch(handler)
    assert result.status == "completed"
    assert result.data == {"videoPath": "/api/video/download/j1"}
    assert [e.step for e in seen] == ["audio", "complete"]


def test_snapshot_response_to_stream_request_is_accepted():
    def handler(request):
        return httpx.Response(200, json=COMPLETE)

    result, seen = watch(handler)
    assert result.step == "complete"
    assert len(seen) == 1


def test_falls_back_to_polling_after_stream_failures():
    requests = []
    polls = iter([RUNNING, COMPLETE])

    def handler(request):
        accept = request.headers.get("accept", "")
        requests.append(accept)
        if "text/event-stream" in accept:
            return httpx.Response(502)
        return httpx.Response(200, json=next(polls))

    result, seen = watch(handler)
    assert result.step == "complete"
    assert requests[:3] == ["text/event-stream"] * 3
    assert requests[3:] == ["application/json"] * 2
    assert [e.progress for e in seen] == [58, 100]


def test_stream_without_terminal_event_counts_as_failure():
    calls = {"stream": 0}

    def handler(request):
        if "text/event-stream" in request.headers.get("accept", ""):
            calls["stream"] += 1
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=b": ping\n\n")
        return httpx.Response(200, json=COMPLETE)

    result, _ = watch(handler)
    assert calls["stream"] == 3
    assert result.status == "completed"


def test_polling_gives_up_after_consecutive_failures():
    calls = []

    def handler(request):
        calls.append(request.headers.get("accept"))
        return httpx.Response(503)

    with pytest.raises(WatchError):
        watch(handler)
    assert calls.count("application/json") == 3


def test_error_terminal_event_is_returned():
    failed = {"step": "complete", "status": "error", "progress": 0, "message": "Image generation failed", "data": None}

    def handler(request):
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=sse(failed).encode())

    result, _ = watch(handler)
    assert result.status == "error"
    assert result.message == "Image generation failed"
