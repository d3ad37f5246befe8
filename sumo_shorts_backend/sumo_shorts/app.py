import os, json, asyncio
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
import logging
from typing import Optional, get_args

# Ensure .env is loaded before importing modules that initialize API clients
from .settings import (
    has_all_keys, ALLOWED_ORIGINS, OPENAI_API_KEY, GOOGLE_API_KEY, KV_REST_API_URL, KV_REST_API_TOKEN,
)
from .content import fetch_content
from .errors import PipelineError
from .jobs import JobManager
from .llm import get_scenario
from .models import ApiKeys, Job, JobStatus, PreviewRequest, Provider, Scenario
from .orchestrator import VideoAgent
from .progress import ProgressRegistry, SSE_HEADERS
from .runner import run_video_job, download_path

logger = logging.getLogger(__name__)

PROVIDERS = get_args(Provider)


def _job_summary(job: Job) -> dict:
    return {
        "jobId": job.id,
        "status": job.status.value,
        "currentStep": job.current_step,
        "currentProgress": job.current_progress,
        "currentMessage": job.current_message,
        "error": job.error,
        "createdAt": job.created_at.isoformat(),
        "completedAt": job.completed_at.isoformat() if job.completed_at else None,
        "hasOutput": bool(job.output_path),
    }


def snapshot(job: Job) -> dict:
    """Progress as a polling client sees it, derived from the stored job."""
    if job.status == JobStatus.COMPLETED:
        return {"step": "complete", "status": "completed", "progress": 100,
                "message": "Video generation complete", "data": {"videoPath": download_path(job.id)}}
    if job.status == JobStatus.ERROR:
        return {"step": "complete", "status": "error", "progress": 0,
                "message": job.error or "Video generation failed", "data": None}
    return {
        "step": job.current_step or "scenario",
        "status": "in_progress",
        "progress": job.current_progress or 0,
        "message": job.current_message or "Processing...",
        "data": None,
    }


async def _save_upload(upload: Optional[UploadFile], path: str) -> Optional[str]:
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    return path


def create_app(jobs: Optional[JobManager] = None, registry: Optional[ProgressRegistry] = None,
               agent_factory=VideoAgent) -> FastAPI:
    jobs = jobs or JobManager()
    registry = registry or ProgressRegistry()
    background = set()

    app = FastAPI(title="Sumo Shorts Backend")
    app.state.jobs = jobs
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        keys_ok = has_all_keys()
        logger.info(f"Health check: API keys present = {keys_ok}")
        return {"ok": True, "has_keys": keys_ok, "job_backend": jobs.backend}

    @app.post("/api/video/generate")
    async def generate_video(
        input: str = Form(""),
        provider: str = Form("elevenlabs"),
        voiceId: Optional[str] = Form(None),
        apiKeys: str = Form("{}"),
        scenario: Optional[str] = Form(None),
        referenceImage: Optional[UploadFile] = File(None),
        bgm: Optional[UploadFile] = File(None),
    ):
        try:
            keys = ApiKeys.model_validate(json.loads(apiKeys or "{}"))
            parsed_scenario = Scenario.model_validate(json.loads(scenario)) if scenario else None
        except (json.JSONDecodeError, ValidationError) as e:
            raise HTTPException(400, f"Invalid JSON form field: {e}")
        if not input.strip():
            raise HTTPException(400, "input is required")
        if provider not in PROVIDERS:
            raise HTTPException(400, f"provider must be one of {', '.join(PROVIDERS)}")
        if not (keys.openai or OPENAI_API_KEY) or not (keys.google or GOOGLE_API_KEY):
            raise HTTPException(400, "OpenAI and Google API keys are required")

        job_id = await jobs.create_job(input, provider)
        if parsed_scenario is not None:
            await jobs.update_job(job_id, scenario=parsed_scenario)
        job_dir = jobs.job_dir(job_id)
        reference_path = await _save_upload(referenceImage, os.path.join(job_dir, "reference.png"))
        bgm_path = await _save_upload(bgm, os.path.join(job_dir, "bgm.mp3"))

        registry.open(job_id)
        task = asyncio.create_task(run_video_job(
            job_id, input, provider, jobs, registry,
            voice_id=voiceId or "",
            api_keys=keys,
            scenario=parsed_scenario,
            reference_image_path=reference_path,
            bgm_path=bgm_path,
            agent_factory=agent_factory,
        ))
        background.add(task)
        task.add_done_callback(background.discard)
        logger.info(f"Started job {job_id} (provider={provider})")
        return {"jobId": job_id, "status": "pending"}

    @app.get("/api/video/status/{job_id}")
    async def video_status(job_id: str, request: Request):
        job = await jobs.get_job(job_id)
        if not job:
            raise HTTPException(404, "Job not found")
        wants_json = "application/json" in request.headers.get("accept", "")
        channel = registry.get(job_id)
        if wants_json or channel is None:
            return snapshot(job)
        return StreamingResponse(channel.stream(), media_type="text/event-stream", headers=SSE_HEADERS)

    @app.get("/api/video/download/{job_id}")
    async def video_download(job_id: str):
        job = await jobs.get_job(job_id)
        if not job:
            raise HTTPException(404, "Job not found")
        if job.status != JobStatus.COMPLETED:
            raise HTTPException(400, "Video is not ready yet")
        if not job.output_path or not os.path.exists(job.output_path):
            raise HTTPException(404, "Video file not found")

        def iterfile(path):
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(1024 * 1024), b""):
                    yield chunk
        headers = {
            "Content-Disposition": f'attachment; filename="sumo-video-{job_id}.mp4"',
            "Content-Length": str(os.path.getsize(job.output_path)),
        }
        return StreamingResponse(iterfile(job.output_path), media_type="video/mp4", headers=headers)

    @app.post("/api/scenario/preview")
    async def scenario_preview(req: PreviewRequest):
        if not req.input.strip():
            raise HTTPException(400, "Input is required")
        api_key = req.apiKeys.openai or OPENAI_API_KEY
        if not api_key:
            raise HTTPException(400, "OpenAI API key is required")
        try:
            content = await fetch_content(req.input)
            preview = await get_scenario(content, api_key=api_key)
        except PipelineError as e:
            logger.error(f"Scenario preview failed: {e}")
            raise HTTPException(500, str(e))
        return {"scenario": preview.model_dump(by_alias=True)}

    @app.get("/api/debug/jobs")
    async def debug_jobs():
        all_jobs = sorted(await jobs.get_all_jobs(), key=lambda j: j.created_at, reverse=True)
        return {"total": len(all_jobs), "jobs": [_job_summary(j) for j in all_jobs]}

    @app.get("/api/debug/job/{job_id}")
    async def debug_job(job_id: str):
        job = await jobs.get_job(job_id)
        if not job:
            raise HTTPException(404, "Job not found")
        return {**job.model_dump(mode="json", by_alias=True), "activeStream": registry.get(job_id) is not None}

    @app.get("/api/debug/kv")
    async def debug_kv():
        kv = jobs.kv
        env = {
            "hasUrl": bool(KV_REST_API_URL),
            "hasToken": bool(KV_REST_API_TOKEN),
            "urlLength": len(KV_REST_API_URL),
            "tokenLength": len(KV_REST_API_TOKEN),
        }
        if not kv.enabled:
            return {"status": "error", "message": "KV store not configured", "env": env}
        stored = await kv.set("test:connection", "ok", ttl=10)
        value = await kv.get("test:connection")
        if not stored or value != "ok":
            return {"status": "error", "message": "KV round trip failed", "testValue": value, "env": env}
        return {"status": "success", "message": "KV connection working", "testValue": value, "env": env}

    return app


app = create_app()
