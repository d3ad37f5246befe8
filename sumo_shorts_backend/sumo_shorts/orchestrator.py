import os, re, asyncio, logging, traceback
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from langgraph.graph import StateGraph, END

from .assembler import VideoAssembler
from .audio import AudioSynthesizer, build_synthesizer
from .content import fetch_content, is_url
from .errors import WrestlerVerificationTimeout
from .images import generate_images
from .llm import get_scenario, extract_readings
from .media import write_text
from .models import ApiKeys, OrchestrationState, ProgressEvent, Scenario
from .normalizer import TextNormalizer
from .reading_lookup import default_chain
from .settings import REFERENCE_IMAGE_PATH, DEFAULT_BGM_PATH, READING_PREWARM_TIMEOUT_S

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]
ScenarioGenerator = Callable[[str], Awaitable[Scenario]]


def make_output_dir(input: str, base_dir: str = "output") -> str:
    """output/YYYY-MM-DD_HH-MM-SS_<topic>, topic from the URL host or the text itself."""
    if is_url(input):
        topic = re.sub(r"^https?://", "", input).split("/")[0].replace("www.", "")
    else:
        topic = input[:50]
    sanitized = re.sub(r"[^a-zA-Z0-9぀-ゟ゠-ヿ一-龯]", "_", topic)[:30]
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return os.path.join(base_dir, f"{timestamp}_{sanitized}")


class VideoAgent:
    """Runs one video generation as a linear graph of stages.

    Stages emit progress in fixed bands: scenario 0-25, images 25-50,
    audio 50-75, assembly 75-90, bgm 90-100. Every stage failure except the
    reading pre-warm and the BGM mix ends the run.
    """

    def __init__(
        self,
        output_dir: str,
        provider: str = "elevenlabs",
        voice_id: str = "",
        api_keys: Optional[ApiKeys] = None,
        reference_image_path: Optional[str] = None,
        bgm_path: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        normalizer: Optional[TextNormalizer] = None,
        scenario_generator: Optional[ScenarioGenerator] = None,
        image_generator=None,
        audio_synthesizer: Optional[AudioSynthesizer] = None,
        assembler: Optional[VideoAssembler] = None,
        content_fetcher: Callable[[str], Awaitable[str]] = fetch_content,
        prewarm_timeout: float = READING_PREWARM_TIMEOUT_S,
    ):
        self.output_dir = output_dir
        self.api_keys = api_keys or ApiKeys()
        self.reference_image_path = reference_image_path or REFERENCE_IMAGE_PATH
        self.progress_callback = progress_callback
        self.image_generator = image_generator
        self.content_fetcher = content_fetcher
        self.prewarm_timeout = prewarm_timeout

        if normalizer is None:
            async def extractor(text: str):
                return await extract_readings(text, api_key=self.api_keys.openai)
            normalizer = TextNormalizer(extractor=extractor, lookup_chain=default_chain())
        self.normalizer = normalizer

        if scenario_generator is None:
            async def scenario_generator(content: str) -> Scenario:
                return await get_scenario(content, api_key=self.api_keys.openai)
        self.scenario_generator = scenario_generator

        self.audio_synthesizer = audio_synthesizer or build_synthesizer(
            provider, self.normalizer,
            openai_key=self.api_keys.openai,
            elevenlabs_key=self.api_keys.elevenlabs,
            voice_id=voice_id,
        )
        self.assembler = assembler or VideoAssembler(output_dir, bgm_path or DEFAULT_BGM_PATH)
        self.graph = self.build_graph()

    async def emit(self, step: str, status: str, progress: int, message: str, data=None):
        if self.progress_callback:
            await self.progress_callback(ProgressEvent(step=step, status=status, progress=progress, message=message, data=data))

    async def node_scenario(self, state: OrchestrationState) -> dict:
        if state.scenario is not None:
            scenario = state.scenario
            await self.emit("scenario", "completed", 25, "Using pre-generated scenario", scenario.model_dump(by_alias=True))
        else:
            await self.emit("scenario", "in_progress", 5, "Generating scenario...")
            content = await self.content_fetcher(state.input)
            scenario = await self.scenario_generator(content)
            await self.emit("scenario", "completed", 25, "Scenario generated", scenario.model_dump(by_alias=True))
        write_text(os.path.join(state.output_dir, "scenario.json"), scenario.model_dump_json(by_alias=True, indent=2))
        logger.info(f"Scenario for job {state.job_id}: '{scenario.title}' with {len(scenario.scenes)} scenes")
        return {"scenario": scenario}

    async def node_images(self, state: OrchestrationState) -> dict:
        total = len(state.scenario.scenes)
        if state.image_paths:
            await self.emit("images", "completed", 50, f"Using existing images ({len(state.image_paths)})")
            return {"image_paths": state.image_paths}
        await self.emit("images", "in_progress", 30, f"Generating images (0/{total})...")

        async def on_scene(done: int, total: int):
            await self.emit("images", "in_progress", 30 + 15 * done // total, f"Generating images ({done}/{total})...")

        paths = await generate_images(
            state.scenario, state.output_dir, self.reference_image_path,
            api_key=self.api_keys.google, generator=self.image_generator, on_scene=on_scene,
        )
        await self.emit("images", "completed", 50, f"All images generated ({len(paths)})")
        return {"image_paths": paths}

    async def _verify_readings(self, scenario: Scenario) -> dict:
        all_text = " ".join(s.text for s in scenario.scenes)
        readings = await self.normalizer.resolve_readings(all_text)
        stats = self.normalizer.get_dictionary_stats()
        logger.info(f"Reading pre-warm resolved {len(readings)} terms; cache holds {stats['cached_terms']} of {stats['total']}")
        return readings

    async def node_readings(self, state: OrchestrationState) -> dict:
        # Best effort: the audio stage resolves anything missed here
        try:
            readings = await asyncio.wait_for(self._verify_readings(state.scenario), timeout=self.prewarm_timeout)
        except asyncio.TimeoutError:
            err = WrestlerVerificationTimeout(f"Reading verification timed out after {self.prewarm_timeout}s")
            logger.warning(f"Skipping reading verification: {err}")
            return {"readings": {}}
        except Exception as e:
            logger.warning(f"Skipping reading verification: {e}")
            return {"readings": {}}
        return {"readings": readings}

    async def node_audio(self, state: OrchestrationState) -> dict:
        total = len(state.scenario.scenes)
        await self.emit("audio", "in_progress", 55, f"Generating audio (0/{total})...")

        async def on_scene(done: int, total: int):
            await self.emit("audio", "in_progress", 55 + 15 * done // total, f"Generating audio ({done}/{total})...")

        paths = await self.audio_synthesizer.synthesize_all(state.scenario, state.output_dir, on_scene=on_scene)
        await self.emit("audio", "completed", 75, f"All audio generated ({len(paths)})")
        return {"audio_paths": paths}

    async def node_assembly(self, state: OrchestrationState) -> dict:
        await self.emit("assembly", "in_progress", 80, "Assembling video...")
        narration_path = await self.assembler.assemble(state.image_paths, state.audio_paths)
        await self.emit("assembly", "completed", 90, "Video assembled")
        return {"narration_path": narration_path}

    async def node_bgm(self, state: OrchestrationState) -> dict:
        await self.emit("bgm", "in_progress", 92, "Adding background music...")
        final_path = await self.assembler.add_background_music_or_fallback(state.narration_path)
        if final_path == state.narration_path:
            await self.emit("bgm", "completed", 95, "Background music skipped")
        else:
            await self.emit("bgm", "completed", 95, "Background music added")
        return {"final_path": final_path}

    def build_graph(self):
        g = StateGraph(OrchestrationState)
        g.add_node("generate_scenario", self.node_scenario)
        g.add_node("generate_images", self.node_images)
        g.add_node("verify_readings", self.node_readings)
        g.add_node("generate_audio", self.node_audio)
        g.add_node("assemble_video", self.node_assembly)
        g.add_node("add_bgm", self.node_bgm)
        g.set_entry_point("generate_scenario")
        g.add_edge("generate_scenario", "generate_images")
        g.add_edge("generate_images", "verify_readings")
        g.add_edge("verify_readings", "generate_audio")
        g.add_edge("generate_audio", "assemble_video")
        g.add_edge("assemble_video", "add_bgm")
        g.add_edge("add_bgm", END)
        return g.compile()

    async def run(self, input: str, scenario: Optional[Scenario] = None,
                  image_paths: Optional[List[str]] = None, job_id: str = "") -> str:
        """Run every stage and return the final video path.

        Emits the terminal ``complete`` event either way; failures are re-raised.
        """
        state = OrchestrationState(
            job_id=job_id or os.path.basename(os.path.normpath(self.output_dir)),
            output_dir=self.output_dir,
            input=input,
            scenario=scenario,
            image_paths=image_paths or [],
        )
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            logger.info(f"Starting pipeline for job {state.job_id} in {self.output_dir}")
            final_state = await self.graph.ainvoke(state)
            if not isinstance(final_state, OrchestrationState):
                final_state = OrchestrationState.model_validate(dict(final_state))
        except Exception as e:
            logger.error(f"Pipeline failed for job {state.job_id}: {str(e)}")
            logger.error(f"Full traceback: {traceback.format_exc()}")
            await self.emit("complete", "error", 0, str(e) or "Video generation failed")
            raise
        await self.emit("complete", "completed", 100, "Video generation complete", {"videoPath": final_state.final_path})
        logger.info(f"Video generated for job {state.job_id}: {final_state.final_path}")
        return final_state.final_path
