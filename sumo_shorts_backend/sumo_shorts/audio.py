"""Per-scene narration with a transcribe-and-compare verification loop.

Each scene gets up to three synthesis attempts, one per NormalizationTier.
After every attempt the audio is transcribed and scored against the original
narration; the first attempt scoring at or above the threshold is kept, and
after the last tier the final audio is kept whatever its score.
"""
import os
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .errors import AudioSynthesisError
from .media import write_bytes
from .models import Scenario
from .normalizer import TextNormalizer
from .settings import MAX_AUDIO_ATTEMPTS, SIMILARITY_THRESHOLD

logger = logging.getLogger(__name__)

Synthesize = Callable[[str], Awaitable[bytes]]
Transcribe = Callable[[str], Awaitable[str]]
ToPhonetic = Callable[[str], Awaitable[str]]


class NormalizationTier(Enum):
    NORMAL = 1
    DIFFICULT_WORDS = 2
    FULL_PHONETIC = 3


TIERS = [NormalizationTier.NORMAL, NormalizationTier.DIFFICULT_WORDS, NormalizationTier.FULL_PHONETIC]

# Everyday words the speech engine tends to misread in news copy
DIFFICULT_WORDS = {
    "快挙": "かいきょ",
    "毎試合": "まいしあい",
    "稽古": "けいこ",
    "技術": "ぎじゅつ",
    "光り": "ひかり",
    "展開": "てんかい",
    "成し遂げ": "なしとげ",
    "評価": "ひょうか",
    "才能": "さいのう",
    "努力": "どりょく",
    "組み合わ": "くみあわ",
    "結果": "けっか",
    "活躍": "かつやく",
    "期待": "きたい",
    "挑戦": "ちょうせん",
    "宣言": "せんげん",
    "記録": "きろく",
    "達成": "たっせい",
    "圧倒的": "あっとうてき",
    "発揮": "はっき",
    "話題": "わだい",
    "近年": "きんねん",
    "稀有": "けう",
    "精神力": "せいしんりょく",
    "物語": "ものがた",
    "関係者": "かんけいしゃ",
}

_IGNORED = re.compile(r"[、。\s]")


def convert_difficult_words(text: str) -> str:
    for word, reading in DIFFICULT_WORDS.items():
        text = text.replace(word, reading)
    return text


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def calculate_similarity(expected: str, actual: str) -> float:
    """Percentage similarity ignoring whitespace and 、。, rounded to one decimal."""
    a = _IGNORED.sub("", expected)
    b = _IGNORED.sub("", actual)
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    return round((max_len - levenshtein(a, b)) / max_len * 100, 1)


@dataclass
class AttemptResult:
    tier: NormalizationTier
    spoken_text: str
    transcript: str
    similarity: float


class AudioSynthesizer:
    def __init__(
        self,
        normalizer: TextNormalizer,
        synthesize: Synthesize,
        transcribe: Transcribe,
        to_phonetic: ToPhonetic,
        extension: str = "mp3",
        threshold: float = SIMILARITY_THRESHOLD,
        max_attempts: int = MAX_AUDIO_ATTEMPTS,
    ):
        self.normalizer = normalizer
        self.synthesize = synthesize
        self.transcribe = transcribe
        self.to_phonetic = to_phonetic
        self.extension = extension
        self.threshold = threshold
        self.tiers = TIERS[:max_attempts]
        self.history: List[AttemptResult] = []

    async def prepare_text(self, text: str, tier: NormalizationTier) -> str:
        if tier is NormalizationTier.NORMAL:
            return await self.normalizer.normalize_with_log(text)
        if tier is NormalizationTier.DIFFICULT_WORDS:
            return await self.normalizer.normalize_with_log(convert_difficult_words(text))
        # Dictionary is bypassed: the whole line goes to the phonetic rewrite
        return await self.to_phonetic(text)

    async def _transcript(self, path: str) -> str:
        try:
            return await self.transcribe(path)
        except Exception as e:
            logger.warning(f"Transcription failed, scoring against empty transcript: {e}")
            return ""

    async def synthesize_scene(self, text: str, index: int, output_dir: str) -> str:
        path = os.path.join(output_dir, f"scene_{index}.{self.extension}")
        last = len(self.tiers)
        for attempt, tier in enumerate(self.tiers, 1):
            spoken = await self.prepare_text(text, tier)
            try:
                write_bytes(path, await self.synthesize(spoken))
            except Exception as e:
                logger.error(f"Speech synthesis failed for scene {index} (attempt {attempt}/{last}, {tier.name}): {e}")
                if attempt == last:
                    raise AudioSynthesisError(f"Audio generation failed for scene {index + 1}: {e}") from e
                continue

            transcript = await self._transcript(path)
            similarity = calculate_similarity(text, transcript)
            result = AttemptResult(tier, spoken, transcript, similarity)
            self.history.append(result)
            logger.info(f"Scene {index} attempt {attempt}/{last} ({tier.name}): similarity {similarity}%")
            if similarity >= self.threshold:
                return path
            if attempt == last:
                logger.warning(f"Scene {index}: attempts exhausted, keeping last audio ({similarity}%)")
                return path
            logger.info(f"Scene {index}: expected {text[:50]!r}, heard {transcript[:50]!r}; escalating")
        # Unreachable with at least one tier
        raise AudioSynthesisError(f"Audio generation failed for scene {index + 1}")

    async def synthesize_all(
        self,
        scenario: Scenario,
        output_dir: str,
        on_scene: Optional[Callable[[int, int], Awaitable[None]]] = None,
    ) -> List[str]:
        total = len(scenario.scenes)
        paths: List[str] = []
        for i, scene in enumerate(scenario.scenes):
            logger.info(f"Generating audio for scene {i + 1}/{total}")
            paths.append(await self.synthesize_scene(scene.text, i, output_dir))
            if on_scene:
                await on_scene(i + 1, total)
        return paths


def build_synthesizer(
    provider: str,
    normalizer: TextNormalizer,
    openai_key: str = "",
    elevenlabs_key: str = "",
    voice_id: str = "",
) -> AudioSynthesizer:
    """Wire the verification loop to the real speech and transcription services."""
    from . import elevenlabs_client, llm, voicevox_client

    async def transcribe(path: str) -> str:
        return await llm.transcribe_audio(path, api_key=openai_key)

    async def to_phonetic(text: str) -> str:
        return await llm.convert_to_hiragana(text, api_key=openai_key)

    if provider == "voicevox":
        async def synthesize(text: str) -> bytes:
            return await voicevox_client.tts_to_bytes(text)
        extension = "wav"
    elif provider == "elevenlabs":
        async def synthesize(text: str) -> bytes:
            return await elevenlabs_client.tts_to_bytes(text, voice_id=voice_id, api_key=elevenlabs_key)
        extension = "mp3"
    else:
        raise ValueError(f"Unknown voice provider: {provider}")

    return AudioSynthesizer(normalizer, synthesize, transcribe, to_phonetic, extension=extension)
