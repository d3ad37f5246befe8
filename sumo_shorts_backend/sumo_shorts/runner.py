import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .jobs import JobManager
from .models import ApiKeys, JobStatus, ProgressEvent, Scenario
from .orchestrator import VideoAgent
from .progress import ProgressRegistry
from .settings import CLEANUP_AFTER_MINUTES

logger = logging.getLogger(__name__)

AgentFactory = Callable[..., VideoAgent]


def download_path(job_id: str) -> str:
    return f"/api/video/download/{job_id}"


async def run_video_job(
    job_id: str,
    input: str,
    provider: str,
    jobs: JobManager,
    registry: ProgressRegistry,
    voice_id: str = "",
    api_keys: Optional[ApiKeys] = None,
    scenario: Optional[Scenario] = None,
    reference_image_path: Optional[str] = None,
    bgm_path: Optional[str] = None,
    agent_factory: AgentFactory = VideoAgent,
    cleanup_minutes: float = CLEANUP_AFTER_MINUTES,
) -> None:
    """Background body of one job.

    Stage events go to the job's progress channel and are mirrored into the
    job record. The terminal ``complete`` event is held back until the final
    status is stored, so a client reacting to it always finds the job
    finished. Cleanup is scheduled for failed jobs too.
    """
    channel = registry.get(job_id) or registry.open(job_id)
    terminal = {}

    async def on_progress(event: ProgressEvent):
        if event.step == "complete":
            terminal["event"] = event
            return
        channel.publish(event)
        await jobs.update_job(
            job_id,
            current_step=event.step,
            current_progress=event.progress,
            current_message=event.message,
        )

    try:
        await jobs.update_job(job_id, status=JobStatus.PROCESSING)
        agent = agent_factory(
            output_dir=jobs.job_dir(job_id),
            provider=provider,
            voice_id=voice_id,
            api_keys=api_keys,
            reference_image_path=reference_image_path,
            bgm_path=bgm_path,
            progress_callback=on_progress,
        )
        video_path = await agent.run(input, scenario=scenario, job_id=job_id)
    except Exception as e:
        message = str(e) or "Video generation failed"
        logger.error(f"Job {job_id} failed: {message}")
        await jobs.update_job(job_id, status=JobStatus.ERROR, error=message)
        channel.publish(terminal.get("event") or ProgressEvent(step="complete", status="error", progress=0, message=message))
    else:
        await jobs.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            completed_at=datetime.now(timezone.utc),
            output_path=video_path,
            current_step="complete",
            current_progress=100,
            current_message="Video generation complete",
        )
        channel.publish(ProgressEvent(
            step="complete", status="completed", progress=100,
            message="Video generation complete", data={"videoPath": download_path(job_id)},
        ))
    finally:
        registry.close(job_id)
        jobs.schedule_cleanup(job_id, cleanup_minutes)
