import os, asyncio, logging
from typing import List, Optional

from .errors import AssemblyError, AssetCountMismatchError, BgmMixError
from .media import ffmpeg_scene_clip, ffmpeg_concat, ffmpeg_mix_bgm

logger = logging.getLogger(__name__)

NARRATION_FILENAME = "sumo_news.mp4"
WITH_BGM_FILENAME = "sumo_news_with_bgm.mp4"


class VideoAssembler:
    """Turns per-scene stills and narration into the final vertical video.

    ffmpeg runs in a worker thread so concurrent jobs keep streaming progress.
    """

    def __init__(self, output_dir: str, bgm_path: Optional[str] = None,
                 scene_clip=ffmpeg_scene_clip, concat=ffmpeg_concat, mix_bgm=ffmpeg_mix_bgm):
        self.output_dir = output_dir
        self.bgm_path = bgm_path
        self._scene_clip = scene_clip
        self._concat = concat
        self._mix_bgm = mix_bgm

    async def assemble(self, image_paths: List[str], audio_paths: List[str]) -> str:
        if len(image_paths) != len(audio_paths):
            raise AssetCountMismatchError(len(image_paths), len(audio_paths))
        logger.info(f"Assembling {len(image_paths)} scenes in {self.output_dir}")
        try:
            chunks = []
            for i, (img, audio) in enumerate(zip(image_paths, audio_paths)):
                chunk = os.path.join(self.output_dir, f"chunk_{i}.mp4")
                await asyncio.to_thread(self._scene_clip, img, audio, chunk)
                chunks.append(chunk)
            final_path = os.path.join(self.output_dir, NARRATION_FILENAME)
            await asyncio.to_thread(self._concat, chunks, final_path)
        except Exception as e:
            logger.error(f"Video assembly failed: {e}")
            raise AssemblyError(f"Video assembly failed: {e}") from e
        logger.info(f"Narration video written to {final_path}")
        return final_path

    async def add_background_music(self, video_path: str) -> str:
        """Mix the BGM under the narration; returns the input unchanged when no BGM is available."""
        if not self.bgm_path or not os.path.exists(self.bgm_path):
            logger.warning(f"BGM file not found ({self.bgm_path}), keeping narration-only video")
            return video_path
        out_path = os.path.join(self.output_dir, WITH_BGM_FILENAME)
        try:
            await asyncio.to_thread(self._mix_bgm, video_path, self.bgm_path, out_path)
        except Exception as e:
            raise BgmMixError(f"Background music mix failed: {e}") from e
        logger.info(f"BGM mixed video written to {out_path}")
        return out_path

    async def add_background_music_or_fallback(self, video_path: str) -> str:
        try:
            return await self.add_background_music(video_path)
        except BgmMixError as e:
            logger.warning(f"{e}; using narration-only video")
            return video_path
