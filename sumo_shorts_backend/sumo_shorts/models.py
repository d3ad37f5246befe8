from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Step = Literal["scenario", "images", "audio", "assembly", "bgm", "complete"]
EventStatus = Literal["in_progress", "completed", "error"]
Provider = Literal["elevenlabs", "voicevox"]

# Stage order of the pipeline; progress events never move backwards through it
STEP_ORDER: List[str] = ["scenario", "images", "audio", "assembly", "bgm", "complete"]


class _CamelModel(BaseModel):
    # Wire format is camelCase; python attributes stay snake_case
    model_config = ConfigDict(populate_by_name=True)


class Scene(_CamelModel):
    text: str
    image_prompt: str = Field(default="", alias="imagePrompt")


class Scenario(_CamelModel):
    title: str
    scenes: List[Scene]


class ProgressEvent(_CamelModel):
    step: Step
    status: EventStatus
    progress: int = Field(ge=0, le=100)
    message: str
    data: Optional[Any] = None


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.ERROR: 2,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(_CamelModel):
    """One end-to-end generation run, persisted for polling clients."""

    id: str
    status: JobStatus = JobStatus.PENDING
    input: str
    provider: Provider
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    error: Optional[str] = None
    output_path: Optional[str] = Field(default=None, alias="outputPath")
    scenario: Optional[Scenario] = None
    current_step: Optional[str] = Field(default=None, alias="currentStep")
    current_progress: Optional[int] = Field(default=None, alias="currentProgress")
    current_message: Optional[str] = Field(default=None, alias="currentMessage")


class ApiKeys(BaseModel):
    openai: str = ""
    google: str = ""
    elevenlabs: str = ""


class PreviewRequest(BaseModel):
    input: str
    apiKeys: ApiKeys = Field(default_factory=ApiKeys)


class OrchestrationState(BaseModel):
    job_id: str
    output_dir: str
    input: str
    scenario: Optional[Scenario] = None
    image_paths: List[str] = Field(default_factory=list)
    audio_paths: List[str] = Field(default_factory=list)
    narration_path: Optional[str] = None
    final_path: Optional[str] = None
    readings: Dict[str, str] = Field(default_factory=dict)
