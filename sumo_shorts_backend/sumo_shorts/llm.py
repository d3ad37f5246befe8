import os, json, logging
from typing import Dict

from pydantic import ValidationError

from .errors import ScenarioGenerationError, TranscriptionError
from .models import Scenario
from .prompts import (
    SCENARIO_SCHEMA, SCENARIO_PROMPT_TEMPLATE, SCENARIO_CONTENT_BLOCK,
    READING_EXTRACTION_PROMPT, HIRAGANA_SYSTEM_PROMPT, HIRAGANA_USER_TEMPLATE,
)
from .settings import (
    OPENAI_API_KEY, SCENARIO_MODEL, READING_MODEL, HIRAGANA_MODEL, TRANSCRIBE_MODEL,
    PROMPT_CONTENT_CHARS, PROMPT_TEMPLATE_PATH,
)

logger = logging.getLogger(__name__)

_clients = {}

def _get_client(api_key: str = ""):
    key = api_key or OPENAI_API_KEY
    if not key:
        raise RuntimeError("OPENAI_API_KEY is not set; please configure your .env")
    if key not in _clients:
        from openai import AsyncOpenAI
        _clients[key] = AsyncOpenAI(api_key=key)
    return _clients[key]

def _prompt_template() -> str:
    if PROMPT_TEMPLATE_PATH and os.path.exists(PROMPT_TEMPLATE_PATH):
        with open(PROMPT_TEMPLATE_PATH, "r", encoding="utf-8") as f:
            return f.read()
    return SCENARIO_PROMPT_TEMPLATE.format(schema=SCENARIO_SCHEMA)

def build_scenario_prompt(content: str) -> str:
    return _prompt_template() + SCENARIO_CONTENT_BLOCK.format(content=content[:PROMPT_CONTENT_CHARS])

def parse_scenario(raw: str) -> Scenario:
    if not raw:
        raise ScenarioGenerationError("Scenario generation returned no content")
    try:
        scenario = Scenario.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ScenarioGenerationError(f"Scenario generation returned invalid JSON: {e}") from e
    if not scenario.scenes:
        raise ScenarioGenerationError("Scenario generation returned no scenes")
    return scenario

async def get_scenario(content: str, api_key: str = "") -> Scenario:
    logger.info("Calling OpenAI API to generate scenario")
    try:
        client = _get_client(api_key)
        resp = await client.chat.completions.create(
            model=SCENARIO_MODEL,
            messages=[{"role": "user", "content": build_scenario_prompt(content)}],
            response_format={"type": "json_object"},
        )
        raw = resp.choices[0].message.content if resp.choices else None
    except Exception as e:
        logger.error(f"OpenAI API call failed: {str(e)}")
        raise ScenarioGenerationError(f"Scenario generation failed: {e}") from e
    scenario = parse_scenario(raw)
    logger.info(f"Scenario '{scenario.title}' generated with {len(scenario.scenes)} scenes")
    return scenario

async def extract_readings(text: str, api_key: str = "") -> Dict[str, str]:
    """Ask the model for proper noun -> hiragana reading pairs found in text."""
    client = _get_client(api_key)
    resp = await client.chat.completions.create(
        model=READING_MODEL,
        messages=[{"role": "user", "content": READING_EXTRACTION_PROMPT.format(text=text)}],
        response_format={"type": "json_object"},
    )
    raw = resp.choices[0].message.content if resp.choices else None
    if not raw:
        return {}
    data = json.loads(raw)
    return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str) and k and v}

async def convert_to_hiragana(text: str, api_key: str = "") -> str:
    try:
        client = _get_client(api_key)
        resp = await client.chat.completions.create(
            model=HIRAGANA_MODEL,
            messages=[
                {"role": "system", "content": HIRAGANA_SYSTEM_PROMPT},
                {"role": "user", "content": HIRAGANA_USER_TEMPLATE.format(text=text)},
            ],
            temperature=0,
        )
        return (resp.choices[0].message.content if resp.choices else None) or text
    except Exception as e:
        logger.warning(f"Hiragana conversion failed, using original text: {e}")
        return text

async def transcribe_audio(audio_path: str, api_key: str = "") -> str:
    try:
        client = _get_client(api_key)
        with open(audio_path, "rb") as f:
            resp = await client.audio.transcriptions.create(
                model=TRANSCRIBE_MODEL,
                file=f,
                language="ja",
            )
        return resp.text or ""
    except Exception as e:
        raise TranscriptionError(f"Transcription failed for {audio_path}: {e}") from e
