"""Command line entry point.

    python -m sumo_shorts generate "大相撲特報！..."
    python -m sumo_shorts from-existing output/2025-01-12_10-00-00_topic --scenario scenario.json
    python -m sumo_shorts serve --port 8000
    python -m sumo_shorts watch 1736640000000-a1b2c3d
"""
import os
import sys
import json
import asyncio
import argparse
import logging
from typing import get_args

from .models import Provider, Scenario
from .settings import REFERENCE_IMAGE_PATH

logger = logging.getLogger("sumo_shorts")


def _load_scenario(path: str) -> Scenario:
    with open(path, "r", encoding="utf-8") as f:
        return Scenario.model_validate(json.load(f))


async def _log_event(event):
    logger.info(f"[{event.step}] {event.status} {event.progress}% {event.message}")


def cmd_generate(args) -> int:
    from .orchestrator import VideoAgent, make_output_dir

    reference_image = args.reference_image or REFERENCE_IMAGE_PATH
    if not os.path.exists(reference_image):
        logger.error(f"Reference image not found: {reference_image} (pass --reference-image or set REFERENCE_IMAGE_PATH)")
        return 1
    output_dir = args.output_dir or make_output_dir(args.input)
    scenario = _load_scenario(args.scenario) if args.scenario else None
    agent = VideoAgent(
        output_dir,
        provider=args.provider,
        voice_id=args.voice_id,
        reference_image_path=reference_image,
        bgm_path=args.bgm,
        progress_callback=_log_event,
    )
    video_path = asyncio.run(agent.run(args.input, scenario=scenario))
    print(video_path)
    return 0


def cmd_from_existing(args) -> int:
    from .orchestrator import VideoAgent

    scenario = _load_scenario(args.scenario)
    image_paths = [os.path.join(args.image_dir, f"scene_{i}.png") for i in range(len(scenario.scenes))]
    missing = [p for p in image_paths if not os.path.exists(p)]
    if missing:
        logger.error(f"Missing scene images: {', '.join(missing)}")
        return 1
    agent = VideoAgent(
        args.output_dir or args.image_dir,
        provider=args.provider,
        voice_id=args.voice_id,
        bgm_path=args.bgm,
        progress_callback=_log_event,
    )
    video_path = asyncio.run(agent.run(scenario.title, scenario=scenario, image_paths=image_paths))
    print(video_path)
    return 0


def cmd_serve(args) -> int:
    import uvicorn
    uvicorn.run("sumo_shorts.app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_watch(args) -> int:
    from .client import watch_job, WatchError

    def show(event):
        print(f"[{event.step}] {event.status} {event.progress}% {event.message}", flush=True)

    try:
        final = asyncio.run(watch_job(args.base_url, args.job_id, on_event=show))
    except WatchError as e:
        logger.error(str(e))
        return 1
    if final.status == "completed":
        print(f"{args.base_url.rstrip('/')}{final.data['videoPath']}")
        return 0
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sumo_shorts", description="Sumo news short video generator")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("generate", help="Generate a video from text or a URL")
    p.add_argument("input", help="News text or article URL")
    p.add_argument("--provider", choices=get_args(Provider), default="elevenlabs")
    p.add_argument("--voice-id", default="")
    p.add_argument("--scenario", help="Use this scenario JSON instead of generating one")
    p.add_argument("--reference-image", help="Character reference PNG; required unless REFERENCE_IMAGE_PATH points at one")
    p.add_argument("--bgm")
    p.add_argument("--output-dir")
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("from-existing", help="Build a video from existing scene images")
    p.add_argument("image_dir", help="Directory holding scene_<i>.png")
    p.add_argument("--scenario", required=True)
    p.add_argument("--provider", choices=get_args(Provider), default="elevenlabs")
    p.add_argument("--voice-id", default="")
    p.add_argument("--bgm")
    p.add_argument("--output-dir")
    p.set_defaults(func=cmd_from_existing)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("watch", help="Follow a job's progress")
    p.add_argument("job_id")
    p.add_argument("--base-url", default="http://localhost:8000")
    p.set_defaults(func=cmd_watch)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
