"""Job records for polling clients and the cleanup schedule.

Records live in the KV store with a TTL when it is configured, otherwise as
``<jobs_dir>/<id>.json``. Each job's artifacts go in ``<jobs_dir>/<id>/``.
"""
import os
import time
import uuid
import shutil
import asyncio
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from .kv_storage import KVStorage
from .models import Job, JobStatus
from .settings import JOBS_DIR, JOB_TTL_S, CLEANUP_AFTER_MINUTES

logger = logging.getLogger(__name__)

KEY_PREFIX = "job:"


def new_job_id() -> str:
    # Sorts by creation time
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class JobManager:
    def __init__(self, kv: Optional[KVStorage] = None, jobs_dir: str = JOBS_DIR, ttl: int = JOB_TTL_S):
        self.kv = kv if kv is not None else KVStorage()
        self.jobs_dir = jobs_dir
        self.ttl = ttl
        self._cleanup_handles: Dict[str, asyncio.TimerHandle] = {}
        self._cleanup_tasks = set()
        os.makedirs(self.jobs_dir, exist_ok=True)

    @property
    def backend(self) -> str:
        return "kv" if self.kv.enabled else "file"

    def job_dir(self, job_id: str) -> str:
        return os.path.join(self.jobs_dir, job_id)

    def _job_file(self, job_id: str) -> str:
        return os.path.join(self.jobs_dir, f"{job_id}.json")

    async def _write(self, job: Job) -> bool:
        payload = job.model_dump_json(by_alias=True)
        if self.kv.enabled:
            return await self.kv.set(f"{KEY_PREFIX}{job.id}", payload, ttl=self.ttl)
        path = self._job_file(job.id)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_path, path)
        return True

    async def _read(self, job_id: str) -> Optional[str]:
        if self.kv.enabled:
            return await self.kv.get(f"{KEY_PREFIX}{job_id}")
        path = self._job_file(job_id)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    async def create_job(self, input: str, provider: str) -> str:
        job = Job(id=new_job_id(), input=input, provider=provider)
        await self._write(job)
        logger.info(f"Created job {job.id} ({self.backend} backend)")
        return job.id

    async def get_job(self, job_id: str) -> Optional[Job]:
        try:
            raw = await self._read(job_id)
            if not raw:
                return None
            return Job.model_validate_json(raw)
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to read job {job_id}: {e}")
            return None

    async def update_job(self, job_id: str, **fields) -> bool:
        """Merge fields into the stored job. No-op for unknown or finished jobs."""
        job = await self.get_job(job_id)
        if job is None:
            logger.warning(f"Cannot update job {job_id} - not found")
            return False
        if job.status.is_terminal:
            logger.warning(f"Ignoring update to finished job {job_id} ({job.status.value}): {sorted(fields)}")
            return False
        if "status" in fields:
            new_status = JobStatus(fields["status"])
            if new_status.rank < job.status.rank:
                logger.warning(f"Refusing to move job {job_id} back from {job.status.value} to {new_status.value}")
                return False
            fields["status"] = new_status
        updated = Job.model_validate({**job.model_dump(), **fields})
        return await self._write(updated)

    def schedule_cleanup(self, job_id: str, minutes: float = CLEANUP_AFTER_MINUTES) -> None:
        loop = asyncio.get_running_loop()
        existing = self._cleanup_handles.pop(job_id, None)
        if existing is not None:
            existing.cancel()
        self._cleanup_handles[job_id] = loop.call_later(minutes * 60, self._start_cleanup, job_id)
        logger.info(f"Scheduled cleanup of job {job_id} in {minutes} minutes")

    def _start_cleanup(self, job_id: str) -> None:
        task = asyncio.ensure_future(self.cleanup_job(job_id))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def cleanup_job(self, job_id: str) -> None:
        self._cleanup_handles.pop(job_id, None)
        d = self.job_dir(job_id)
        if os.path.isdir(d):
            try:
                shutil.rmtree(d)
                logger.info(f"Cleaned up job {job_id}: {d}")
            except OSError as e:
                logger.error(f"Failed to clean up {d} for job {job_id}: {e}")
        if self.kv.enabled:
            await self.kv.delete(f"{KEY_PREFIX}{job_id}")
        else:
            path = self._job_file(job_id)
            if os.path.exists(path):
                os.remove(path)

    async def get_all_jobs(self) -> List[Job]:
        if self.kv.enabled:
            ids = [k[len(KEY_PREFIX):] for k in await self.kv.keys(f"{KEY_PREFIX}*")]
        else:
            ids = [f[:-len(".json")] for f in os.listdir(self.jobs_dir) if f.endswith(".json")]
        jobs = []
        for job_id in ids:
            job = await self.get_job(job_id)
            if job:
                jobs.append(job)
        return jobs
