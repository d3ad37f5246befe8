import asyncio
import json

from sumo_shorts.models import ProgressEvent
from sumo_shorts.progress import PING_FRAME, ProgressChannel, ProgressRegistry, sse_frame


def event(step, status="in_progress", progress=10, message="", data=None):
    return ProgressEvent(step=step, status=status, progress=progress, message=message, data=data)


async def collect(channel, ping_interval=5.0):
    return [frame async for frame in channel.stream(ping_interval=ping_interval)]


def test_sse_frame_format():
    frame = sse_frame(event("images", progress=33, message="Generating images (1/5)..."))
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    payload = json.loads(frame[len("data: "):])
    assert payload == {
        "step": "images", "status": "in_progress", "progress": 33,
        "message": "Generating images (1/5)...", "data": None,
    }


def test_stream_ends_after_complete_event():
    async def go():
        channel = ProgressChannel("job")
        reader = asyncio.ensure_future(collect(channel))
        await asyncio.sleep(0)
        channel.publish(event("scenario", progress=5))
        channel.publish(event("complete", "completed", 100, data={"videoPath": "/api/video/download/job"}))
        channel.publish(event("bgm", progress=92))
        return await asyncio.wait_for(reader, 1)

    frames = asyncio.run(go())
    steps = [json.loads(f[len("data: "):])["step"] for f in frames]
    assert steps == ["scenario", "complete"]


def test_late_subscriber_gets_latest_event_first():
    async def go():
        channel = ProgressChannel("job")
        channel.publish(event("scenario", "completed", 25))
        channel.publish(event("images", progress=30))
        q = channel.subscribe()
        return q.get_nowait()

    assert asyncio.run(go()).step == "images"


def test_subscriber_to_closed_channel_gets_replay_then_end():
    async def go():
        channel = ProgressChannel("job")
        channel.publish(event("complete", "error", 0, message="boom"))
        channel.close()
        channel.publish(event("audio", progress=55))
        return await asyncio.wait_for(collect(channel), 1)

    frames = asyncio.run(go())
    assert len(frames) == 1
    assert json.loads(frames[0][len("data: "):])["message"] == "boom"


def test_close_ends_open_streams():
    async def go():
        channel = ProgressChannel("job")
        reader = asyncio.ensure_future(collect(channel))
        await asyncio.sleep(0)
        channel.close()
        return await asyncio.wait_for(reader, 1)

    assert asyncio.run(go()) == []


def test_ping_sent_while_idle():
    async def go():
        channel = ProgressChannel("job")
        frames = []

        async def read():
            async for frame in channel.stream(ping_interval=0.01):
                frames.append(frame)

        reader = asyncio.ensure_future(read())
        await asyncio.sleep(0.05)
        channel.publish(event("complete", "completed", 100))
        await asyncio.wait_for(reader, 1)
        return frames

    frames = asyncio.run(go())
    assert frames[0] == PING_FRAME
    assert frames[-1].startswith("data: ")


def test_registry():
    registry = ProgressRegistry()
    channel = registry.open("a")
    assert registry.get("a") is channel
    registry.close("a")
    assert channel.closed
    assert registry.get("a") is None
    registry.close("a")
