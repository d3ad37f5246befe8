import httpx, logging

from .settings import VOICEVOX_URL, VOICEVOX_API_KEY, VOICEVOX_SPEAKER

logger = logging.getLogger(__name__)

def _headers():
    # Hosted engines sit behind a key; a local engine needs none
    return {"X-API-Key": VOICEVOX_API_KEY} if VOICEVOX_API_KEY else {}

async def tts_to_bytes(text: str, speaker: int = VOICEVOX_SPEAKER, base_url: str = VOICEVOX_URL,
                       client: httpx.AsyncClient = None) -> bytes:
    """Synthesize WAV audio with a VOICEVOX engine (audio_query, then synthesis)."""
    base = base_url.rstrip("/")

    async def _synth(c: httpx.AsyncClient) -> bytes:
        q = await c.post(f"{base}/audio_query", params={"text": text, "speaker": speaker}, headers=_headers())
        q.raise_for_status()
        s = await c.post(f"{base}/synthesis", params={"speaker": speaker}, headers=_headers(), json=q.json())
        s.raise_for_status()
        return s.content

    logger.info(f"Requesting VOICEVOX synthesis (speaker {speaker})")
    if client is not None:
        return await _synth(client)
    async with httpx.AsyncClient(timeout=120) as c:
        return await _synth(c)
