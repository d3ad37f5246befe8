import os
from dotenv import load_dotenv
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Load .env file if it exists (for local development)
env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    logger.info("Loaded .env file for local development")
else:
    logger.info("No .env file found, using environment variables")

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "")

VOICEVOX_URL = os.getenv("VOICEVOX_URL", "http://localhost:50021")
VOICEVOX_API_KEY = os.getenv("VOICEVOX_API_KEY", "")
VOICEVOX_SPEAKER = int(os.getenv("VOICEVOX_SPEAKER", "3"))

# KV store (Vercel KV / Upstash REST). Either naming works.
KV_REST_API_URL = (os.getenv("KV_REST_API_URL") or os.getenv("UPSTASH_REDIS_REST_URL") or "").strip()
KV_REST_API_TOKEN = (os.getenv("KV_REST_API_TOKEN") or os.getenv("UPSTASH_REDIS_REST_TOKEN") or "").strip()

# Per-job artifacts and the file-backed job store live here
JOBS_DIR = os.getenv("JOBS_DIR", "/tmp/jobs")
JOB_TTL_S = int(os.getenv("JOB_TTL_S", "3600"))
CLEANUP_AFTER_MINUTES = float(os.getenv("CLEANUP_AFTER_MINUTES", "60"))

SCENARIO_MODEL = os.getenv("SCENARIO_MODEL", "gpt-4-turbo-preview")
READING_MODEL = os.getenv("READING_MODEL", "gpt-4o")
HIRAGANA_MODEL = os.getenv("HIRAGANA_MODEL", "gpt-4o-mini")
TRANSCRIBE_MODEL = os.getenv("TRANSCRIBE_MODEL", "whisper-1")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "gemini-3-pro-image-preview")
IMAGE_SIZE = os.getenv("IMAGE_SIZE", "2K")
TTS_MODEL_ID = os.getenv("TTS_MODEL_ID", "eleven_multilingual_v2")

REFERENCE_IMAGE_PATH = os.getenv("REFERENCE_IMAGE_PATH", os.path.join(_PACKAGE_DIR, "data", "reference.png"))
DEFAULT_BGM_PATH = os.getenv("DEFAULT_BGM_PATH", os.path.join(_PACKAGE_DIR, "data", "bgm", "default.mp3"))
DICTIONARY_PATH = os.getenv("DICTIONARY_PATH", os.path.join(_PACKAGE_DIR, "data", "sumo_dictionary.json"))
# The package dir may be read-only on serverless hosts, so the cache defaults to /tmp there
TERM_CACHE_PATH = os.getenv(
    "TERM_CACHE_PATH",
    "/tmp/wrestler-cache.json" if os.getenv("VERCEL") else os.path.join(_PACKAGE_DIR, "data", "wrestler_cache.json"),
)
PROMPT_TEMPLATE_PATH = os.getenv("PROMPT_TEMPLATE_PATH", "")

VIDEO_WIDTH = int(os.getenv("VIDEO_WIDTH", "1080"))
VIDEO_HEIGHT = int(os.getenv("VIDEO_HEIGHT", "1920"))
FPS = int(os.getenv("FPS", "30"))
BGM_VOLUME = float(os.getenv("BGM_VOLUME", "0.05"))

CONTENT_MAX_CHARS = int(os.getenv("CONTENT_MAX_CHARS", "4000"))
PROMPT_CONTENT_CHARS = int(os.getenv("PROMPT_CONTENT_CHARS", "2000"))
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "85.0"))
MAX_AUDIO_ATTEMPTS = 3
SSE_PING_INTERVAL_S = float(os.getenv("SSE_PING_INTERVAL_S", "15"))
READING_PREWARM_TIMEOUT_S = float(os.getenv("READING_PREWARM_TIMEOUT_S", "15"))

# Comma-separated list of allowed origins for CORS (e.g., "https://app.vercel.app,https://www.example.com").
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "").strip()
if _allowed_origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _allowed_origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = ["*"]

def has_all_keys() -> bool:
    keys_present = all([OPENAI_API_KEY, GOOGLE_API_KEY, ELEVENLABS_API_KEY, ELEVENLABS_VOICE_ID])
    if not keys_present:
        missing = []
        if not OPENAI_API_KEY: missing.append("OPENAI_API_KEY")
        if not GOOGLE_API_KEY: missing.append("GOOGLE_API_KEY")
        if not ELEVENLABS_API_KEY: missing.append("ELEVENLABS_API_KEY")
        if not ELEVENLABS_VOICE_ID: missing.append("ELEVENLABS_VOICE_ID")
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    return keys_present
