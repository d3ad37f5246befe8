"""Pipeline error taxonomy.

Everything except BgmMixError, WrestlerVerificationTimeout and
TranscriptionError ends the job: the orchestrator turns it into the terminal
error event and the job's ``error`` status.
"""


class PipelineError(RuntimeError):
    """Base class for failures raised by a pipeline stage."""


class ContentFetchError(PipelineError):
    pass


class ScenarioGenerationError(PipelineError):
    pass


class ImageSynthesisError(PipelineError):
    pass


class AudioSynthesisError(PipelineError):
    pass


class AssetCountMismatchError(PipelineError):
    def __init__(self, image_count: int, audio_count: int):
        super().__init__(
            f"Generated asset counts do not match: {image_count} images, {audio_count} audio tracks"
        )
        self.image_count = image_count
        self.audio_count = audio_count


class AssemblyError(PipelineError):
    pass


# Non-fatal: the assembler falls back to the narration-only video
class BgmMixError(PipelineError):
    pass


# Non-fatal: the reading pre-warm is skipped
class WrestlerVerificationTimeout(PipelineError):
    pass


# Non-fatal: the verification loop scores against an empty transcript
class TranscriptionError(PipelineError):
    pass
