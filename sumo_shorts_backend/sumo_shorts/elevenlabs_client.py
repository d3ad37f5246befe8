import httpx, asyncio, logging

from .settings import ELEVENLABS_API_KEY, ELEVENLABS_VOICE_ID, TTS_MODEL_ID

logger = logging.getLogger(__name__)

def _voice_id(voice_id: str = "") -> str:
    vid = voice_id or ELEVENLABS_VOICE_ID
    if not vid:
        raise RuntimeError("ELEVENLABS_VOICE_ID is not set; please configure your .env")
    return vid

def _headers(api_key: str = ""):
    key = api_key or ELEVENLABS_API_KEY
    if not key:
        raise RuntimeError("ELEVENLABS_API_KEY is not set; please configure your .env")
    return {
        "xi-api-key": key,
        "Content-Type": "application/json"
    }

def build_payload(text: str) -> dict:
    return {
        "text": text,
        "model_id": TTS_MODEL_ID,
        "language_code": "ja",
        "voice_settings": {
            "stability": 0.55,
            "similarity_boost": 0.85,
            "style": 0.4,
            "use_speaker_boost": True,
        },
        "pronunciation_dictionary_locators": [],
    }

async def tts_to_bytes(text: str, voice_id: str = "", api_key: str = "", max_retries: int = 3,
                       client: httpx.AsyncClient = None) -> bytes:
    url = f"https://api.elevenlabs.io/v1/text-to-speech/{_voice_id(voice_id)}"
    headers = _headers(api_key)
    payload = build_payload(text)

    for attempt in range(max_retries + 1):
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=60) as c:
                    r = await c.post(url, headers=headers, json=payload)
            else:
                r = await client.post(url, headers=headers, json=payload)
            r.raise_for_status()
            return r.content
        except httpx.HTTPStatusError as e:
            # Only rate limiting is retried here; everything else surfaces to the caller
            if e.response.status_code == 429 and attempt < max_retries:
                wait_time = 2 ** attempt
                logger.warning(f"ElevenLabs rate limited (429). Retrying in {wait_time} seconds... (attempt {attempt + 1}/{max_retries + 1})")
                await asyncio.sleep(wait_time)
                continue
            raise
